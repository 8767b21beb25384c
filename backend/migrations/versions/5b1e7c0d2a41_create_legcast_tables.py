from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "5b1e7c0d2a41"
down_revision = None
branch_labels = None
depends_on = None

JSON_PAYLOAD = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade():
    op.create_table(
        "completed_trips",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("vessel_abbrev", sa.String(length=16), nullable=False),
        sa.Column("departing", sa.String(length=8), nullable=False),
        sa.Column("arriving", sa.String(length=8), nullable=False),
        sa.Column("scheduled_departure", sa.DateTime(timezone=True), nullable=False),
        sa.Column("trip_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("left_dock", sa.DateTime(timezone=True), nullable=True),
        sa.Column("trip_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("prev_delay", sa.Float(), nullable=True),
        sa.UniqueConstraint("vessel_abbrev", "scheduled_departure", name="uq_completed_trip_vessel_sched"),
    )
    op.create_index("ix_completed_trips_scheduled", "completed_trips", ["scheduled_departure"])

    op.create_table(
        "model_parameters",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("bucket_type", sa.String(length=16), nullable=False),
        sa.Column("bucket_key", sa.String(length=64), nullable=False),
        sa.Column("model_type", sa.String(length=32), nullable=False),
        sa.Column("version_tag", sa.String(length=64), nullable=False),
        sa.Column("schema_version", sa.Integer(), nullable=False, server_default="2"),
        sa.Column("feature_keys", JSON_PAYLOAD, nullable=False),
        sa.Column("coefficients", JSON_PAYLOAD, nullable=False),
        sa.Column("intercept", sa.Float(), nullable=False),
        sa.Column("mae", sa.Float(), nullable=False),
        sa.Column("rmse", sa.Float(), nullable=False),
        sa.Column("r2", sa.Float(), nullable=True),
        sa.Column("std_dev", sa.Float(), nullable=True),
        sa.Column("total_records", sa.Integer(), nullable=False),
        sa.Column("sampled_records", sa.Integer(), nullable=False),
        sa.Column("bucket_means", JSON_PAYLOAD, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "bucket_type", "bucket_key", "model_type", "version_tag",
            name="uq_model_parameters_key",
        ),
    )
    op.create_index("ix_model_parameters_version_tag", "model_parameters", ["version_tag"])

    op.create_table(
        "model_config",
        sa.Column("key", sa.String(length=64), primary_key=True),
        sa.Column("production_version_tag", sa.String(length=64), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "training_runs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("version_tag", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("buckets_trained", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("models_written", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("warnings", JSON_PAYLOAD, nullable=False),
        sa.Column("excluded", JSON_PAYLOAD, nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_training_runs_tag_started", "training_runs", ["version_tag", "started_at"])

    op.create_table(
        "prediction_records",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("key", sa.String(length=128), nullable=False),
        sa.Column("vessel_abbrev", sa.String(length=16), nullable=False),
        sa.Column("departing", sa.String(length=8), nullable=False),
        sa.Column("arriving", sa.String(length=8), nullable=True),
        sa.Column("prediction_type", sa.String(length=32), nullable=False),
        sa.Column("trip_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("scheduled_departure", sa.DateTime(timezone=True), nullable=True),
        sa.Column("left_dock", sa.DateTime(timezone=True), nullable=True),
        sa.Column("trip_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("min_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("pred_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("max_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("mae", sa.Float(), nullable=False),
        sa.Column("std_dev", sa.Float(), nullable=True),
        sa.Column("actual", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delta_total", sa.Float(), nullable=True),
        sa.Column("delta_range", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("key", "prediction_type", name="uq_prediction_record"),
    )


def downgrade():
    op.drop_table("prediction_records")
    op.drop_index("ix_training_runs_tag_started", table_name="training_runs")
    op.drop_table("training_runs")
    op.drop_table("model_config")
    op.drop_index("ix_model_parameters_version_tag", table_name="model_parameters")
    op.drop_table("model_parameters")
    op.drop_index("ix_completed_trips_scheduled", table_name="completed_trips")
    op.drop_table("completed_trips")

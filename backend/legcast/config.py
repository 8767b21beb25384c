# backend/legcast/config.py
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    # environment: "dev" for running the app locally, "test" for pytest
    ENV: str = "dev"

    DATABASE_URL: str | None = None
    TEST_DATABASE_URL: str | None = None
    DB_REQUIRE_SSL: bool = False

    TRUSTED_HOSTS: list[str] = ["localhost", "127.0.0.1", "testserver", "test"]

    LOG_LEVEL: str = "INFO"

    # --- Scheduler ---
    # Toggle the background scheduler that runs the weekly retrain and housekeeping.
    SCHEDULER_ENABLED: bool = True
    # IANA timezone name used by APScheduler (e.g., "UTC", "America/Los_Angeles").
    SCHEDULER_TZ: str = "UTC"
    # Optional dedicated job store URL. If None, DATABASE_URL is used.
    SCHEDULER_DB_URL: str | None = None
    SCHEDULER_LOG_LEVEL: str = "INFO"

    # --- Training data loading ---
    DAYS_BACK: int = 365
    MAX_RECORDS_PER_VESSEL: int = 7500
    MAX_SAMPLES_PER_ROUTE: int = 7500

    # --- Data quality thresholds (minutes) ---
    MIN_AT_SEA_MINUTES: float = 2.0
    MAX_AT_SEA_MINUTES: float = 90.0
    MIN_AT_DOCK_MINUTES: float = 2.0
    MAX_AT_DOCK_MINUTES: float = 45.0
    MAX_TOTAL_MINUTES: float = 120.0
    MAX_SCHEDULE_SKEW_HOURS: float = 24.0
    EARLY_DEPARTURE_TOLERANCE_MINUTES: float = 5.0
    # next-leg departure targets only count when the vessel turns around promptly
    DEPART_NEXT_SLACK_FACTOR: float = 1.5
    DEPART_NEXT_MAX_SLACK_MINUTES: float = 720.0

    # --- Trainer ---
    MIN_BUCKET_RECORDS: int = 100
    TRAIN_RATIO: float = 0.8
    COEFFICIENT_ZERO_THRESHOLD: float = 1e-6
    MAX_COEFFICIENT_MAGNITUDE: float = 1e4

    # --- Chain buckets: leg class boundaries on mean at-sea minutes ---
    CHAIN_SHORT_MAX_MINUTES: float = 20.0
    CHAIN_MEDIUM_MAX_MINUTES: float = 45.0

    # --- Prediction ---
    FEATURE_TZ: str = "America/Los_Angeles"
    MIN_PREDICTION_GAP_MINUTES: float = 2.0
    PREDICTION_RETENTION_DAYS: int = 90

    # --- Version comparison ---
    COMPARE_MIN_RECORDS: int = 100

    @model_validator(mode="after")
    def _check_thresholds(self):
        if not 0.0 < self.TRAIN_RATIO < 1.0:
            raise ValueError("TRAIN_RATIO must be strictly between 0 and 1.")
        if self.MIN_AT_SEA_MINUTES > self.MAX_AT_SEA_MINUTES:
            raise ValueError("MIN_AT_SEA_MINUTES must not exceed MAX_AT_SEA_MINUTES.")
        if self.MIN_AT_DOCK_MINUTES > self.MAX_AT_DOCK_MINUTES:
            raise ValueError("MIN_AT_DOCK_MINUTES must not exceed MAX_AT_DOCK_MINUTES.")
        if self.CHAIN_SHORT_MAX_MINUTES > self.CHAIN_MEDIUM_MAX_MINUTES:
            raise ValueError("CHAIN_SHORT_MAX_MINUTES must not exceed CHAIN_MEDIUM_MAX_MINUTES.")
        if self.MIN_BUCKET_RECORDS < 2:
            raise ValueError("MIN_BUCKET_RECORDS must be at least 2 to allow a holdout split.")
        return self

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]

from __future__ import annotations

from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.types import JSON

# Plain JSON on sqlite, JSONB on Postgres so version payloads stay queryable.
JSON_PAYLOAD = JSON().with_variant(JSONB(), "postgresql")

from __future__ import annotations

from typing import Iterable, Dict, Any, Optional, List, Tuple
import io, csv, json

import structlog
from sqlalchemy.orm import Session

from legcast.db.upsert import upsert_rows
from legcast.models.completed_trip import CompletedTrip
from legcast.utils.numeric import coerce_float
from legcast.utils.timeutil import parse_timestamp

logger = structlog.get_logger(__name__)

MAX_WARNINGS = 50


# ---------------------------------------------------------------------------
# Flexible parsers (bytes -> row dicts)
# ---------------------------------------------------------------------------

def iter_csv_bytes(file_bytes: bytes) -> Iterable[Dict[str, Any]]:
    """Yield dictionaries from CSV bytes (UTF-8/BOM tolerant)."""
    text = file_bytes.decode("utf-8-sig", errors="replace")
    reader = csv.DictReader(io.StringIO(text))
    for row in reader:
        if not any((str(v or "").strip() for v in row.values())):
            continue
        yield row


def iter_json_bytes(file_bytes: bytes) -> Iterable[Dict[str, Any]]:
    """
    Yield dictionaries from JSON bytes.
    Supports:
      - JSON array: [ {...}, {...} ]
      - a single object
      - NDJSON: one JSON object per line
    """
    s = file_bytes.decode("utf-8-sig", errors="replace").strip()
    if not s:
        return
    try:
        obj = json.loads(s)
    except json.JSONDecodeError:
        obj = None
    if isinstance(obj, dict):
        yield obj
        return
    if isinstance(obj, list):
        for item in obj:
            if isinstance(item, dict):
                yield item
        return
    for ln in s.splitlines():
        ln = ln.strip()
        if not ln:
            continue
        try:
            item = json.loads(ln)
        except json.JSONDecodeError:
            yield {"__parse_error__": ln}
            continue
        if isinstance(item, dict):
            yield item


# ---------------------------------------------------------------------------
# Row cleaning (tolerant)
# ---------------------------------------------------------------------------

# accepted spellings per field, compared case-insensitively with '_' removed
_FIELD_ALIASES: Dict[str, Tuple[str, ...]] = {
    "vessel_abbrev": ("vesselabbrev", "vessel"),
    "departing": ("departing", "departingterminalabbrev", "departingterminal"),
    "arriving": ("arriving", "arrivingterminalabbrev", "arrivingterminal"),
    "scheduled_departure": ("scheduleddeparture", "scheduled"),
    "trip_start": ("tripstart", "arriveddock"),
    "left_dock": ("leftdock", "leftdockactual"),
    "trip_end": ("tripend", "eta_actual", "arrivedatnext"),
    "prev_delay": ("prevdelay", "previousdelay"),
}
_TIME_FIELDS = ("scheduled_departure", "trip_start", "left_dock", "trip_end")


def _normalize_key(key: Any) -> str:
    return str(key or "").strip().lower().replace("_", "").replace("-", "")


def _pick(row: Dict[str, Any], field: str) -> Any:
    normalized = {_normalize_key(k): v for k, v in row.items()}
    for alias in _FIELD_ALIASES[field]:
        value = normalized.get(alias.replace("_", ""))
        if value not in (None, ""):
            return value
    return None


def _try_clean_row(row: Dict[str, Any]) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """Return (clean_row | None, warning | None)."""
    if not row:
        return None, "Empty row"
    if "__parse_error__" in row:
        return None, "JSON parse error in NDJSON line"

    clean: Dict[str, Any] = {}
    for field in ("vessel_abbrev", "departing", "arriving"):
        value = _pick(row, field)
        if value is None:
            return None, f"Missing {field}"
        clean[field] = str(value).strip().upper()

    for field in _TIME_FIELDS:
        raw = _pick(row, field)
        ts = parse_timestamp(raw)
        if raw is not None and ts is None:
            return None, f"Invalid timestamp in {field}: {raw!r}"
        clean[field] = ts
    if clean["scheduled_departure"] is None:
        return None, "Missing scheduled_departure"

    clean["prev_delay"] = coerce_float(_pick(row, "prev_delay"))
    return clean, None


def ingest_trip_rows(db: Session, rows_iter: Iterable[Dict[str, Any]], *, batch_size: int = 500) -> Dict[str, Any]:
    """
    Tolerant ingest of completed trips; upsert on (vessel_abbrev, scheduled_departure).
    Returns stats suitable for the UI.
    """
    warnings: List[str] = []
    buffer: Dict[tuple, Dict[str, Any]] = {}
    skipped = 0
    written = 0

    def flush() -> None:
        nonlocal written
        if buffer:
            written += upsert_rows(
                db,
                CompletedTrip,
                list(buffer.values()),
                conflict_cols=("vessel_abbrev", "scheduled_departure"),
            )
            buffer.clear()

    try:
        for raw in rows_iter:
            clean, warn = _try_clean_row(raw)
            if warn:
                skipped += 1
                if len(warnings) < MAX_WARNINGS:
                    warnings.append(warn)
                continue
            # last occurrence of a duplicate within one payload wins
            buffer[(clean["vessel_abbrev"], clean["scheduled_departure"])] = clean
            if len(buffer) >= batch_size:
                flush()
        flush()
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("trips.ingested", ingested=written, skipped=skipped)
    return {"ingested_rows": written, "skipped_rows": skipped, "warnings": warnings}


def ingest_trip_file(db: Session, file_bytes: bytes, content_type: Optional[str]) -> Dict[str, Any]:
    """Detect CSV vs JSON/NDJSON from content_type and ingest."""
    is_json = "json" in (content_type or "").lower()
    rows_iter = iter_json_bytes(file_bytes) if is_json else iter_csv_bytes(file_bytes)
    return ingest_trip_rows(db, rows_iter)


__all__ = ["iter_csv_bytes", "iter_json_bytes", "ingest_trip_rows", "ingest_trip_file"]

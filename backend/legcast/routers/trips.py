# legcast/routers/trips.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from legcast.db.session import get_db
from legcast.schemas.common import ok, fail, meta_now
from legcast.services.trips_ingest import ingest_trip_file

router = APIRouter(prefix="/api/trips", tags=["trips"])

_CSV_TYPES = {"text/csv", "application/csv", "application/vnd.ms-excel"}
_JSON_TYPES = {"application/json", "application/ndjson", "application/x-ndjson", "text/json"}


@router.post("/ingest")
async def ingest_trips(request: Request, db: Session = Depends(get_db)):
    """
    Accept a multipart upload (`file` part) or a raw CSV/JSON/NDJSON body of completed trips.

    Tolerant: bad rows become warnings; a repeated (vessel, scheduled departure) is upserted.
    """
    ctype = (request.headers.get("content-type") or "").lower()

    if "multipart/form-data" in ctype:
        form = await request.form()
        file = form.get("file")
        if file is None or not hasattr(file, "read"):
            return fail(
                code="BAD_REQUEST",
                message="No 'file' part in multipart form-data.",
                status_code=400,
                meta=meta_now(),
            )
        file_ct = (getattr(file, "content_type", None) or "").lower()
        if file_ct not in _CSV_TYPES | _JSON_TYPES:
            return fail(
                code="UNSUPPORTED_MEDIA_TYPE",
                message=f"Upload expects CSV or JSON; got {file_ct or 'unknown'}.",
                status_code=415,
                meta=meta_now(),
            )
        body = await file.read()
        filename = getattr(file, "filename", None) or "upload"
    else:
        body = await request.body()
        file_ct = ctype
        filename = None

    if not body or not body.strip():
        return fail(
            code="EMPTY_BODY",
            message="Request body is empty. Send CSV (text/csv) or JSON (application/json).",
            status_code=400,
            meta=meta_now(),
        )

    stats = ingest_trip_file(db, body, file_ct)
    return ok(data=stats, meta=meta_now(filename=filename, content_type=file_ct or None))

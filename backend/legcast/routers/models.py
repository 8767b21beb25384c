# legcast/routers/models.py
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from legcast.db.session import get_db
from legcast.exceptions import DataQualityError
from legcast.schemas.api import ModelImportRequest
from legcast.schemas.common import ok, fail, meta_now
from legcast.schemas.model_document import parse_model_document
from legcast.services import model_store
from legcast.services.features import MODEL_TYPES
from legcast.services.versions import guard_import_targets

router = APIRouter(prefix="/api/models", tags=["models"])


@router.get("/lookup")
def lookup_models(
    route_key: str = Query(..., description='Terminal pair, e.g. "BBI->P52"'),
    model_types: Optional[List[str]] = Query(None),
    db: Session = Depends(get_db),
):
    """Resolve models for a route against the active tag. Missing models are null."""
    requested = model_types or list(MODEL_TYPES)
    active = model_store.get_production_version_tag(db)
    try:
        found = model_store.get_models_for_prediction(db, route_key, requested, version_tag=active)
    except ValueError as ex:
        return fail(code="INVALID_REQUEST", message=str(ex), status_code=422, meta=meta_now(route_key=route_key))
    data = {
        mt: (model_store.model_to_document(row).model_dump(mode="json", by_alias=True) if row else None)
        for mt, row in found.items()
    }
    return ok(data=data, meta=meta_now(version_tag=active, route_key=route_key))


@router.get("/export")
def export_models(version_tag: str = Query(...), db: Session = Depends(get_db)):
    docs = [
        model_store.model_to_document(row).model_dump(mode="json", by_alias=True)
        for row in model_store.list_models(db, version_tag)
    ]
    return ok(data=docs, meta=meta_now(version_tag=version_tag, count=len(docs)))


@router.post("/import")
def import_models(body: ModelImportRequest, db: Session = Depends(get_db)):
    """
    Import documents of any known schema version, upgrading them first.

    All documents are validated before anything is written; one bad document
    rejects the batch. Target tags must be empty and not active; imports never
    overwrite a stored version.
    """
    docs = []
    for index, raw in enumerate(body.documents):
        try:
            docs.append(parse_model_document(raw, version_tag=body.version_tag))
        except DataQualityError as ex:
            return fail(
                code="data_quality",
                message=f"document {index}: {ex}",
                status_code=422,
                details={"reason": ex.reason, "index": index},
                meta=meta_now(version_tag=body.version_tag),
            )
    tags = sorted({d.version_tag for d in docs})
    try:
        guard_import_targets(db, tags)
    except ValueError as ex:
        return fail(code="INVALID_REQUEST", message=str(ex), status_code=422, meta=meta_now(version_tag=body.version_tag))
    try:
        written = model_store.store_documents(db, docs)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return ok(data={"imported": written, "version_tags": tags}, meta=meta_now(version_tag=body.version_tag))

# legcast/routers/versions.py
"""
Version tag management.

VersionGuardError and ConsistencyError propagate to the app-level handler
(409 envelopes); malformed tags are answered here with 422.
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from legcast.db.session import get_db
from legcast.schemas.api import (
    PromoteDevRequest,
    PromoteProdRequest,
    RenameVersionRequest,
    SwitchVersionRequest,
)
from legcast.schemas.common import ok, fail, meta_now
from legcast.services import model_store, version_metrics, versions

router = APIRouter(prefix="/api/versions", tags=["versions"])


def _invalid(ex: ValueError, **params):
    return fail(code="INVALID_REQUEST", message=str(ex), status_code=422, meta=meta_now(**params))


@router.get("")
def list_versions(db: Session = Depends(get_db)):
    summaries = versions.list_versions(db)
    grouped = versions.group_versions(summaries)
    active = model_store.get_production_version_tag(db)
    return ok(
        data={
            "active": active,
            "groups": {g: [v.as_dict() for v in items] for g, items in grouped.items()},
        },
        meta=meta_now(version_tag=active),
    )


@router.post("/switch")
def switch_version(body: SwitchVersionRequest, db: Session = Depends(get_db)):
    try:
        versions.switch_production_version(db, body.version_tag)
    except ValueError as ex:
        return _invalid(ex, version_tag=body.version_tag)
    return ok(data={"active": body.version_tag}, meta=meta_now(version_tag=body.version_tag))


@router.post("/disable")
def disable_production(db: Session = Depends(get_db)):
    previous = versions.disable_production(db)
    return ok(data={"active": None, "previous": previous}, meta=meta_now())


@router.post("/promote-dev")
def promote_dev(body: Optional[PromoteDevRequest] = None, db: Session = Depends(get_db)):
    target = (body or PromoteDevRequest()).target_tag
    try:
        result = versions.promote_dev(db, target)
    except ValueError as ex:
        return _invalid(ex, target_tag=target)
    return ok(data=result.as_dict(), meta=meta_now(version_tag=result.to_tag))


@router.post("/promote-prod")
def promote_prod(body: PromoteProdRequest, db: Session = Depends(get_db)):
    try:
        result = versions.promote_prod(db, body.dev_tag, body.target_tag)
    except ValueError as ex:
        return _invalid(ex, dev_tag=body.dev_tag, target_tag=body.target_tag)
    return ok(data=result.as_dict(), meta=meta_now(version_tag=result.to_tag))


@router.post("/rename")
def rename_version(body: RenameVersionRequest, db: Session = Depends(get_db)):
    try:
        renamed = versions.rename_version(db, body.from_tag, body.to_tag)
    except ValueError as ex:
        return _invalid(ex, from_tag=body.from_tag, to_tag=body.to_tag)
    return ok(
        data={"from_tag": body.from_tag, "to_tag": body.to_tag, "renamed": renamed},
        meta=meta_now(version_tag=body.to_tag),
    )


@router.get("/compare")
def compare_versions(
    tag_a: str = Query(..., description="Baseline version tag"),
    tag_b: str = Query(..., description="Candidate version tag"),
    min_records: Optional[int] = Query(None, ge=0),
    show_all: bool = Query(False),
    db: Session = Depends(get_db),
):
    diff = version_metrics.diff_metrics(db, tag_a, tag_b, min_records=min_records, show_all=show_all)
    return ok(
        data=diff,
        meta=meta_now(tag_a=tag_a, tag_b=tag_b, min_records=min_records, show_all=show_all),
    )


@router.delete("/{tag}")
def delete_version(tag: str, db: Session = Depends(get_db)):
    deleted = versions.delete_version(db, tag)
    return ok(data={"version_tag": tag, "deleted": deleted}, meta=meta_now(version_tag=tag))


@router.get("/{tag}/metrics")
def version_metrics_json(tag: str, db: Session = Depends(get_db)):
    rows = version_metrics.export_metrics(db, tag)
    return ok(data=rows, meta=meta_now(version_tag=tag, count=len(rows)))


@router.get("/{tag}/metrics.csv", response_class=Response)
def version_metrics_csv(tag: str, db: Session = Depends(get_db)) -> Response:
    csv_text = version_metrics.to_csv(version_metrics.export_metrics(db, tag))
    return Response(
        content=csv_text,
        status_code=status.HTTP_200_OK,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="metrics_{tag}.csv"'},
    )

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from legcast.db.session import get_db
from legcast.schemas.common import ok, meta_now
from legcast.services import model_store

router = APIRouter(prefix="/api/health", tags=["health"])


@router.get("")
def healthcheck(db: Session = Depends(get_db)):
    """Liveness plus the active production tag (null while predictions are disabled)."""
    active = model_store.get_production_version_tag(db)
    return ok(data={"status": "ok", "active_version_tag": active}, meta=meta_now(version_tag=active))

# legcast/services/versions.py
"""
Version tag lifecycle.

    dev-temp --promote_dev--> dev-N --promote_prod--> prod-N --switch--> active

dev-temp is scratch and is replaced by every training run. Named tags are
immutable snapshots: they can be copied, renamed or deleted, never trained
into or overwritten. The active tag cannot be deleted or renamed.
"""
from __future__ import annotations

import re
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional

import structlog
from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session

from legcast.exceptions import ConsistencyError, VersionGuardError
from legcast.models.model_parameters import ModelParameters
from legcast.models.training_run import TrainingRun
from legcast.observability.instrument import log_job
from legcast.services import model_store
from legcast.utils.timeutil import as_utc

logger = structlog.get_logger(__name__)

SCRATCH_TAG = "dev-temp"
DEV_PREFIX = "dev-"
PROD_PREFIX = "prod-"
GROUPS = ("dev", "prod", "other")

_TAG_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,63}$")
_NUMBERED_RE = re.compile(r"^(dev|prod)-(\d+)$")


def validate_tag(tag: str) -> str:
    if not tag or not _TAG_RE.match(tag):
        raise ValueError(f"Invalid version tag {tag!r}: use letters, digits, '.', '_' or '-' (max 64)")
    return tag


def tag_group(tag: str) -> str:
    if tag.startswith(DEV_PREFIX):
        return "dev"
    if tag.startswith(PROD_PREFIX):
        return "prod"
    return "other"


def _sort_key(tag: str) -> tuple:
    match = _NUMBERED_RE.match(tag)
    if tag == SCRATCH_TAG:
        return (GROUPS.index("dev"), 0, 0, tag)
    if match:
        return (GROUPS.index(match.group(1)), 1, int(match.group(2)), tag)
    return (GROUPS.index(tag_group(tag)), 2, 0, tag)


@dataclass
class VersionSummary:
    tag: str
    group: str
    model_count: int
    created_at_min: Optional[datetime]
    created_at_max: Optional[datetime]
    is_active: bool

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class PromotionResult:
    from_tag: str
    to_tag: str
    model_count: int

    def as_dict(self) -> dict:
        return asdict(self)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def list_versions(db: Session) -> List[VersionSummary]:
    stmt = (
        select(
            ModelParameters.version_tag,
            func.count(ModelParameters.id),
            func.min(ModelParameters.created_at),
            func.max(ModelParameters.created_at),
        )
        .group_by(ModelParameters.version_tag)
    )
    active = model_store.get_production_version_tag(db)
    out = [
        VersionSummary(
            tag=tag,
            group=tag_group(tag),
            model_count=int(count),
            created_at_min=as_utc(first),
            created_at_max=as_utc(last),
            is_active=(tag == active),
        )
        for tag, count, first, last in db.execute(stmt).all()
    ]
    out.sort(key=lambda v: _sort_key(v.tag))
    return out


def group_versions(versions: List[VersionSummary]) -> Dict[str, List[VersionSummary]]:
    grouped: Dict[str, List[VersionSummary]] = {g: [] for g in GROUPS}
    for version in versions:
        grouped[version.group].append(version)
    return grouped


def next_tag(db: Session, prefix: str) -> str:
    """Next free numbered tag for `prefix` ("dev-" or "prod-")."""
    kind = prefix.rstrip("-")
    tags = db.execute(select(ModelParameters.version_tag).distinct()).scalars().all()
    numbers = [
        int(m.group(2))
        for m in (_NUMBERED_RE.match(t) for t in tags)
        if m and m.group(1) == kind
    ]
    return f"{prefix}{max(numbers, default=0) + 1}"


def latest_run(db: Session, version_tag: str) -> Optional[TrainingRun]:
    stmt = (
        select(TrainingRun)
        .where(TrainingRun.version_tag == version_tag)
        .order_by(desc(TrainingRun.started_at), desc(TrainingRun.id))
        .limit(1)
    )
    return db.execute(stmt).scalars().first()


# ---------------------------------------------------------------------------
# Guards
# ---------------------------------------------------------------------------

def _require_models(db: Session, tag: str, action: str) -> int:
    count = model_store.count_models(db, tag)
    if count == 0:
        raise VersionGuardError(
            f'Version tag "{tag}" has no models; cannot {action} it.',
            active_tag=model_store.get_production_version_tag(db),
        )
    return count


def _require_empty(db: Session, tag: str) -> None:
    count = model_store.count_models(db, tag)
    if count:
        raise VersionGuardError(
            f'Version tag "{tag}" already holds {count} models; named versions are not overwritten.'
        )


def _require_not_active(db: Session, tag: str, action: str) -> None:
    active = model_store.get_production_version_tag(db)
    if active and tag == active:
        raise VersionGuardError(
            f'Cannot {action} active production version tag "{active}". '
            "Switch to a different version first.",
            active_tag=active,
        )


def _require_promotable(db: Session, tag: str) -> None:
    """Scratch rows left by a run that did not complete are never snapshotted or activated."""
    if tag != SCRATCH_TAG:
        return
    run = latest_run(db, SCRATCH_TAG)
    if run is not None and run.status != "completed":
        raise VersionGuardError(
            f'Latest training run for "{SCRATCH_TAG}" is {run.status}; it cannot be promoted.',
            active_tag=model_store.get_production_version_tag(db),
        )


def guard_training_target(db: Session, version_tag: str) -> None:
    """Training may only replace scratch rows or fill a brand-new tag."""
    validate_tag(version_tag)
    _require_not_active(db, version_tag, "train into")
    if version_tag != SCRATCH_TAG:
        _require_empty(db, version_tag)


def guard_import_targets(db: Session, version_tags: Iterable[str]) -> None:
    """Imported documents may only fill tags that hold no rows and are not active."""
    for tag in sorted(set(version_tags)):
        validate_tag(tag)
        _require_not_active(db, tag, "import into")
        _require_empty(db, tag)


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------

def _move(db: Session, from_tag: str, to_tag: str) -> int:
    """Copy then delete inside one transaction; on any failure the source stays intact."""
    try:
        copied = model_store.copy_version_rows(db, from_tag, to_tag)
        removed = model_store.delete_version_rows(db, from_tag)
        if removed != copied:
            raise ConsistencyError(
                f"Moving {from_tag} -> {to_tag} copied {copied} rows but removed {removed}"
            )
        db.commit()
    except Exception:
        db.rollback()
        raise
    return copied


@log_job("versions.switch")
def switch_production_version(db: Session, version_tag: str) -> None:
    validate_tag(version_tag)
    _require_models(db, version_tag, "activate")
    _require_promotable(db, version_tag)
    previous = model_store.get_production_version_tag(db)
    model_store.set_production_version_tag(db, version_tag)
    db.commit()
    logger.info("versions.switched", previous=previous, current=version_tag)


def disable_production(db: Session) -> Optional[str]:
    """Clear the production pointer; predictions resolve to None until a tag is activated."""
    previous = model_store.get_production_version_tag(db)
    model_store.set_production_version_tag(db, None)
    db.commit()
    logger.info("versions.disabled", previous=previous)
    return previous


@log_job("versions.delete")
def delete_version(db: Session, version_tag: str) -> int:
    _require_not_active(db, version_tag, "delete")
    try:
        deleted = model_store.delete_version_rows(db, version_tag)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("versions.deleted", version_tag=version_tag, deleted=deleted)
    return deleted


@log_job("versions.rename")
def rename_version(db: Session, from_tag: str, to_tag: str) -> int:
    validate_tag(from_tag)
    validate_tag(to_tag)
    if from_tag == to_tag:
        raise ValueError("Source and target version tags are the same")
    _require_not_active(db, from_tag, "rename")
    _require_models(db, from_tag, "rename")
    _require_promotable(db, from_tag)
    _require_empty(db, to_tag)
    renamed = _move(db, from_tag, to_tag)
    logger.info("versions.renamed", from_tag=from_tag, to_tag=to_tag, renamed=renamed)
    return renamed


@log_job("versions.promote_dev")
def promote_dev(db: Session, target_tag: Optional[str] = None) -> PromotionResult:
    """Snapshot dev-temp as dev-N; the scratch rows are removed once copied."""
    _require_promotable(db, SCRATCH_TAG)
    target = validate_tag(target_tag) if target_tag else next_tag(db, DEV_PREFIX)
    _require_models(db, SCRATCH_TAG, "promote")
    _require_empty(db, target)
    moved = _move(db, SCRATCH_TAG, target)
    logger.info("versions.promoted", from_tag=SCRATCH_TAG, to_tag=target, models=moved)
    return PromotionResult(from_tag=SCRATCH_TAG, to_tag=target, model_count=moved)


@log_job("versions.promote_prod")
def promote_prod(db: Session, dev_tag: str, target_tag: Optional[str] = None) -> PromotionResult:
    """Copy a named dev snapshot to a prod candidate. The source is kept."""
    validate_tag(dev_tag)
    if target_tag:
        target = validate_tag(target_tag)
    else:
        match = _NUMBERED_RE.match(dev_tag)
        target = f"{PROD_PREFIX}{match.group(2)}" if match else next_tag(db, PROD_PREFIX)
    _require_models(db, dev_tag, "promote")
    _require_promotable(db, dev_tag)
    _require_empty(db, target)
    try:
        copied = model_store.copy_version_rows(db, dev_tag, target)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("versions.promoted", from_tag=dev_tag, to_tag=target, models=copied)
    return PromotionResult(from_tag=dev_tag, to_tag=target, model_count=copied)


__all__ = [
    "SCRATCH_TAG",
    "VersionSummary",
    "PromotionResult",
    "validate_tag",
    "tag_group",
    "list_versions",
    "group_versions",
    "next_tag",
    "latest_run",
    "guard_training_target",
    "guard_import_targets",
    "switch_production_version",
    "disable_production",
    "delete_version",
    "rename_version",
    "promote_dev",
    "promote_prod",
]

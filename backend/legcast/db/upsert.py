from __future__ import annotations

from typing import Any, Dict, Sequence

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def upsert_rows(
    db: Session,
    model,
    rows: Sequence[Dict[str, Any]],
    *,
    conflict_cols: Sequence[str],
    update_cols: Sequence[str] | None = None,
    batch_size: int = 200,
) -> int:
    """
    INSERT ... ON CONFLICT (conflict_cols) DO UPDATE, one statement per batch.

    `update_cols` defaults to every supplied column that is not part of the
    conflict key. Returns the number of rows submitted.
    """
    if not rows:
        return 0
    dialect = db.get_bind().dialect.name
    try:
        insert = _INSERTS[dialect]
    except KeyError:
        raise NotImplementedError(f"upsert is not supported for dialect {dialect!r}") from None

    if update_cols is None:
        update_cols = [c for c in rows[0].keys() if c not in conflict_cols]

    for start in range(0, len(rows), batch_size):
        stmt = insert(model.__table__).values(list(rows[start : start + batch_size]))
        stmt = stmt.on_conflict_do_update(
            index_elements=list(conflict_cols),
            set_={c: getattr(stmt.excluded, c) for c in update_cols},
        )
        db.execute(stmt)
    return len(rows)

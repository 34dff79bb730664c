# Batch "INSERT ... ON CONFLICT DO UPDATE" shared by the repositories

from __future__ import annotations
import logging
import math
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import case, func, or_
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

UPSERT_CHUNK_SIZE = 1000


def dialect_insert(db: Session, table):
    """
    Postgres in production, sqlite in tests/local runs; both support ON CONFLICT with the same API.
    """
    name = db.get_bind().dialect.name
    if name == "sqlite":
        return sqlite.insert(table)
    return postgresql.insert(table)


def _clean_row_values(row: Dict[str, Any]) -> Dict[str, Any]:
    # NaN/inf can't be stored in numeric columns
    clean: Dict[str, Any] = {}
    for key, value in row.items():
        if isinstance(value, Decimal) and not value.is_finite():
            value = None
        if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
            value = None
        clean[str(key)] = value
    return clean


def execute_upsert(
    db: Session,
    table,
    rows: List[Dict[str, Any]],
    *,
    conflict_keys: List[str],
    update_columns: List[str],
    touch_column: Optional[str] = None,
) -> int:
    """
    Upsert rows in chunks; conflict keys themselves are never overwritten.
    touch_column (updated_at) moves only when an updated column actually changed,
    so re-writing identical data leaves the row as it was.
    Does not commit: the caller owns the transaction.
    """
    if not rows:
        return 0

    update_cols = [c for c in update_columns if c not in conflict_keys]
    total = 0

    for idx in range(0, len(rows), UPSERT_CHUNK_SIZE):
        chunk = [_clean_row_values(row) for row in rows[idx: idx + UPSERT_CHUNK_SIZE]]
        stmt = dialect_insert(db, table).values(chunk)

        # on conflict overwrite with the incoming row (excluded.*)
        updates: Dict[str, Any] = {col: getattr(stmt.excluded, col) for col in update_cols}
        if touch_column:
            updates[touch_column] = touched_if_changed(table, stmt.excluded, update_cols, touch_column)

        upsert_stmt = stmt.on_conflict_do_update(index_elements=conflict_keys, set_=updates)
        res = db.execute(upsert_stmt)
        total += int(res.rowcount or 0)

    logger.debug("upsert table=%s rows=%d affected=%d", getattr(table, "name", table), len(rows), total)
    return total


def touched_if_changed(table, excluded, columns: List[str], touch_column: str = "updated_at"):
    """SET expression: now() when any of columns differs from the incoming row, else the stored value."""
    target = getattr(table, "__table__", table)
    if not columns:
        return target.c[touch_column]
    changed = or_(*[target.c[col].is_distinct_from(excluded[col]) for col in columns])
    return case((changed, func.now()), else_=target.c[touch_column])

# shop_sync_cursors repository

from __future__ import annotations

from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.db.model.sync_cursor import ShopSyncCursor
from app.db.upsert import execute_upsert


# column selects (not entities): upserts bypass the identity map
def _load(db: Session, shop_id: int, key: str):
    stmt = select(ShopSyncCursor.cursor, ShopSyncCursor.meta).where(
        ShopSyncCursor.shop_id == shop_id,
        ShopSyncCursor.key == key,
    )
    return db.execute(stmt).first()


def get(db: Session, shop_id: int, key: str, default: Optional[str] = None) -> Optional[str]:
    row = _load(db, shop_id, key)
    if row is None or row.cursor is None:
        return default
    return row.cursor


def get_meta(db: Session, shop_id: int, key: str) -> Dict[str, Any]:
    row = _load(db, shop_id, key)
    return dict(row.meta or {}) if row else {}


def put(
    db: Session,
    shop_id: int,
    key: str,
    cursor: Optional[str],
    meta: Optional[Dict[str, Any]] = None,
    *,
    commit: bool = True,
) -> None:
    """Create or overwrite the cursor; empty meta is stored as NULL."""
    execute_upsert(
        db,
        ShopSyncCursor,
        [{"shop_id": shop_id, "key": key, "cursor": cursor, "meta": meta or None}],
        conflict_keys=["shop_id", "key"],
        update_columns=["cursor", "meta"],
        touch_column="updated_at",
    )
    if commit:
        db.commit()


def touch_meta(db: Session, shop_id: int, key: str, meta: Dict[str, Any]) -> None:
    """Deep-merge meta into the stored map without moving the cursor."""
    row = _load(db, shop_id, key)
    current = dict(row.meta or {}) if row else {}
    merged = _deep_merge(current, meta)
    put(db, shop_id, key, row.cursor if row else None, merged)


def list_for_shop(db: Session, shop_id: int) -> Dict[str, Optional[str]]:
    stmt = select(ShopSyncCursor.key, ShopSyncCursor.cursor).where(ShopSyncCursor.shop_id == shop_id)
    return {k: c for k, c in db.execute(stmt).all()}


def _deep_merge(base: Dict[str, Any], extra: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(base)
    for key, value in extra.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _deep_merge(out[key], value)
        else:
            out[key] = value
    return out

# shops repository

from __future__ import annotations

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.db.model.shop import Shop


def get(db: Session, shop_id: int) -> Optional[Shop]:
    return db.get(Shop, shop_id)


def list_by_provider(db: Session, provider: str = "shoptet") -> List[Shop]:
    stmt = select(Shop).where(Shop.provider == provider).order_by(Shop.id.asc())
    return list(db.scalars(stmt))


def resolve_scope(db: Session, shop_id: Optional[int], provider: str = "shoptet") -> List[Shop]:
    """A schedule scoped to one shop runs for it alone; unscoped runs cover every shop of the provider."""
    if shop_id is not None:
        shop = get(db, shop_id)
        return [shop] if shop is not None else []
    return list_by_provider(db, provider)

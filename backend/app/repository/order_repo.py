# orders / order_items repository

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import delete, insert, select
from sqlalchemy.orm import Session

from app.db.model.order import Order, OrderItem
from app.db.model.product import Product, ProductVariant
from app.db.upsert import dialect_insert, touched_if_changed


ORDER_UPDATE_COLUMNS = [
    "guid", "shop_id", "customer_guid", "status", "source",
    "customer_name", "customer_email", "customer_phone",
    "ordered_at", "change_time", "currency_code",
    "total_with_vat", "total_without_vat", "total_vat",
    "total_with_vat_base", "total_without_vat_base", "total_vat_base",
    "price", "billing_address", "delivery_address", "payment", "shipping", "data",
]


# ---------- Query ----------
def get_by_code(db: Session, code: str) -> Optional[Order]:
    return db.scalars(select(Order).where(Order.code == code)).first()


def list_items(db: Session, order_id: int) -> List[OrderItem]:
    stmt = select(OrderItem).where(OrderItem.order_id == order_id).order_by(OrderItem.id.asc())
    return list(db.scalars(stmt))


def variant_ids_for_codes(db: Session, codes: Iterable[str], shop_id: Optional[int] = None) -> List[int]:
    """
    Variant ids whose code matches one of the line item codes; restricted to the shop's products when given.
    """
    unique_codes = sorted({c for c in codes if c})
    if not unique_codes:
        return []
    stmt = select(ProductVariant.id).where(ProductVariant.code.in_(unique_codes))
    if shop_id is not None:
        stmt = stmt.join(Product, Product.id == ProductVariant.product_id).where(Product.shop_id == shop_id)
    return sorted(set(db.scalars(stmt.distinct())))


# ---------- Mutations ----------
def upsert_order(db: Session, row: Dict[str, Any]) -> Tuple[int, datetime]:
    """
    Insert or overwrite the order matched by its natural key (code).
    Returns (orders.id, orders.created_at); created_at is the first-import time and never changes.
    Does not commit.
    """
    stmt = dialect_insert(db, Order.__table__).values(**row)
    update_cols = [c for c in ORDER_UPDATE_COLUMNS if c in row]
    updates = {col: getattr(stmt.excluded, col) for col in update_cols}
    table = Order.__table__
    # an unchanged re-import leaves the row byte-identical
    updates["updated_at"] = touched_if_changed(table, stmt.excluded, update_cols)
    stmt = stmt.on_conflict_do_update(index_elements=["code"], set_=updates).returning(table.c.id, table.c.created_at)
    order_id, created_at = db.execute(stmt).one()
    return int(order_id), created_at


def replace_items(db: Session, order_id: int, items: List[Dict[str, Any]]) -> int:
    """
    Delete every line item of the order and insert the given rows (never merged).
    Does not commit: runs inside the caller's per-order transaction.
    """
    db.execute(delete(OrderItem.__table__).where(OrderItem.__table__.c.order_id == order_id))
    if not items:
        return 0
    rows = [{**item, "order_id": order_id} for item in items]
    db.execute(insert(OrderItem.__table__), rows)
    return len(rows)

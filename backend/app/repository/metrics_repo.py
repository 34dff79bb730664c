# customer_metrics / inventory_variant_metrics repository

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import case, delete, distinct, func, select, tuple_
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.model.customer import Customer, CustomerMetric, CustomerTagRule
from app.db.model.inventory import InventoryVariantMetric
from app.db.model.order import Order, OrderItem
from app.db.model.product import ProductVariant
from app.db.upsert import execute_upsert


CUSTOMER_METRIC_COLUMNS = [
    "orders_count", "total_spent", "total_spent_base",
    "average_order_value", "average_order_value_base",
    "first_order_at", "last_order_at",
]

VARIANT_METRIC_COLUMNS = [
    "lifetime_orders_count", "lifetime_quantity", "lifetime_revenue",
    "last_30_orders_count", "last_30_quantity", "last_30_revenue",
    "last_90_orders_count", "last_90_quantity", "last_90_revenue",
    "average_daily_sales", "last_sale_at",
]


# ---------- Completed-order filter ----------
def completed_order_clause(column=Order.status):
    """
    An explicit allow-list wins; otherwise everything except the excluded statuses.
    NULL status counts as completed when only exclusions are configured.
    """
    completed = [s for s in settings.ORDER_COMPLETED_STATUSES if s]
    if completed:
        return column.in_(completed)
    excluded = [s for s in settings.ORDER_EXCLUDED_STATUSES if s]
    if excluded:
        return column.is_(None) | column.not_in(excluded)
    return None


def _with_completed(stmt):
    clause = completed_order_clause()
    return stmt.where(clause) if clause is not None else stmt


# ---------- Customers ----------
def aggregate_customer_facts(db: Session, guids: Sequence[str]) -> Dict[str, Dict[str, Any]]:
    """One grouped query over completed orders; guids without facts are absent from the result."""
    if not guids:
        return {}

    base_total = func.coalesce(Order.total_with_vat_base, Order.total_with_vat)
    stmt = (
        select(
            Order.customer_guid.label("guid"),
            func.count(Order.id).label("orders_count"),
            func.coalesce(func.sum(Order.total_with_vat), 0).label("total_spent"),
            func.coalesce(func.sum(base_total), 0).label("total_spent_base"),
            func.coalesce(func.avg(Order.total_with_vat), 0).label("average_order_value"),
            func.coalesce(func.avg(base_total), 0).label("average_order_value_base"),
            func.min(Order.ordered_at).label("first_order_at"),
            func.max(Order.ordered_at).label("last_order_at"),
        )
        .where(Order.customer_guid.in_(list(guids)))
        .group_by(Order.customer_guid)
    )
    stmt = _with_completed(stmt)

    out: Dict[str, Dict[str, Any]] = {}
    for row in db.execute(stmt).mappings():
        if not row["orders_count"]:
            continue
        out[row["guid"]] = {
            "customer_guid": row["guid"],
            "orders_count": int(row["orders_count"]),
            "total_spent": float(row["total_spent"] or 0),
            "total_spent_base": float(row["total_spent_base"] or 0),
            "average_order_value": float(row["average_order_value"] or 0),
            "average_order_value_base": float(row["average_order_value_base"] or 0),
            "first_order_at": row["first_order_at"],
            "last_order_at": row["last_order_at"],
        }
    return out


def upsert_customer_metrics(db: Session, rows: List[Dict[str, Any]]) -> int:
    return execute_upsert(
        db,
        CustomerMetric,
        rows,
        conflict_keys=["customer_guid"],
        update_columns=CUSTOMER_METRIC_COLUMNS,
        touch_column="updated_at",
    )


def delete_customer_metrics(db: Session, guids: Iterable[str]) -> int:
    guids = list(guids)
    if not guids:
        return 0
    res = db.execute(delete(CustomerMetric).where(CustomerMetric.customer_guid.in_(guids)))
    return int(res.rowcount or 0)


def get_customer_metric(db: Session, guid: str) -> Optional[CustomerMetric]:
    return db.get(CustomerMetric, guid)


def iter_customer_guid_chunks(db: Session, chunk_size: int):
    """
    Keyset walk over customers ordered by guid; yields lists of at most chunk_size guids.
    """
    last: Optional[str] = None
    while True:
        stmt = select(Customer.guid).order_by(Customer.guid.asc()).limit(chunk_size)
        if last is not None:
            stmt = stmt.where(Customer.guid > last)
        chunk = list(db.scalars(stmt))
        if not chunk:
            return
        yield chunk
        if len(chunk) < chunk_size:
            return
        last = chunk[-1]


def list_customers(db: Session, guids: Sequence[str]) -> List[Customer]:
    if not guids:
        return []
    return list(db.scalars(select(Customer).where(Customer.guid.in_(list(guids)))))


def list_active_tag_rules(db: Session) -> List[CustomerTagRule]:
    stmt = (
        select(CustomerTagRule)
        .where(CustomerTagRule.is_active.is_(True))
        .order_by(CustomerTagRule.priority.desc(), CustomerTagRule.label.asc())
    )
    return list(db.scalars(stmt))


# ---------- Inventory variants ----------
def variant_codes(db: Session, variant_ids: Sequence[int]) -> Dict[int, str]:
    if not variant_ids:
        return {}
    stmt = select(ProductVariant.id, ProductVariant.code).where(ProductVariant.id.in_(list(variant_ids)))
    return {int(vid): code for vid, code in db.execute(stmt).all()}


def aggregate_variant_facts(
    db: Session,
    codes: Sequence[str],
    now: datetime,
) -> Dict[Tuple[str, int], Dict[str, Any]]:
    """
    Sales aggregates per (item code, shop) over completed orders:
    lifetime / last 30 days / last 90 days; revenue is the line's price_with_vat.
    """
    if not codes:
        return {}

    since_30 = now - timedelta(days=30)
    since_90 = now - timedelta(days=90)
    in_30 = Order.ordered_at >= since_30
    in_90 = Order.ordered_at >= since_90
    revenue = func.coalesce(OrderItem.price_with_vat, 0)

    stmt = (
        select(
            OrderItem.code.label("code"),
            Order.shop_id.label("shop_id"),
            func.count(distinct(Order.id)).label("lifetime_orders_count"),
            func.coalesce(func.sum(OrderItem.amount), 0).label("lifetime_quantity"),
            func.coalesce(func.sum(revenue), 0).label("lifetime_revenue"),
            func.count(distinct(case((in_30, Order.id)))).label("last_30_orders_count"),
            func.coalesce(func.sum(case((in_30, OrderItem.amount), else_=0)), 0).label("last_30_quantity"),
            func.coalesce(func.sum(case((in_30, revenue), else_=0)), 0).label("last_30_revenue"),
            func.count(distinct(case((in_90, Order.id)))).label("last_90_orders_count"),
            func.coalesce(func.sum(case((in_90, OrderItem.amount), else_=0)), 0).label("last_90_quantity"),
            func.coalesce(func.sum(case((in_90, revenue), else_=0)), 0).label("last_90_revenue"),
            func.max(Order.ordered_at).label("last_sale_at"),
        )
        .select_from(OrderItem)
        .join(Order, Order.id == OrderItem.order_id)
        .where(OrderItem.code.in_(list(codes)), Order.shop_id.is_not(None))
        .group_by(OrderItem.code, Order.shop_id)
    )
    stmt = _with_completed(stmt)

    out: Dict[Tuple[str, int], Dict[str, Any]] = {}
    for row in db.execute(stmt).mappings():
        last_30_quantity = float(row["last_30_quantity"] or 0)
        out[(row["code"], int(row["shop_id"]))] = {
            "lifetime_orders_count": int(row["lifetime_orders_count"] or 0),
            "lifetime_quantity": float(row["lifetime_quantity"] or 0),
            "lifetime_revenue": float(row["lifetime_revenue"] or 0),
            "last_30_orders_count": int(row["last_30_orders_count"] or 0),
            "last_30_quantity": last_30_quantity,
            "last_30_revenue": float(row["last_30_revenue"] or 0),
            "last_90_orders_count": int(row["last_90_orders_count"] or 0),
            "last_90_quantity": float(row["last_90_quantity"] or 0),
            "last_90_revenue": float(row["last_90_revenue"] or 0),
            "average_daily_sales": last_30_quantity / 30 if last_30_quantity > 0 else 0.0,
            "last_sale_at": row["last_sale_at"],
        }
    return out


def upsert_variant_metrics(db: Session, rows: List[Dict[str, Any]]) -> int:
    return execute_upsert(
        db,
        InventoryVariantMetric,
        rows,
        conflict_keys=["product_variant_id", "shop_id"],
        update_columns=VARIANT_METRIC_COLUMNS,
        touch_column="updated_at",
    )


def delete_variant_metrics_except(
    db: Session,
    variant_ids: Sequence[int],
    keep: Iterable[Tuple[int, int]],
) -> int:
    """Delete every (variant, shop) row of the given variants that is not in keep."""
    if not variant_ids:
        return 0
    keep = list(keep)
    stmt = delete(InventoryVariantMetric).where(InventoryVariantMetric.product_variant_id.in_(list(variant_ids)))
    if keep:
        stmt = stmt.where(
            tuple_(InventoryVariantMetric.product_variant_id, InventoryVariantMetric.shop_id).not_in(keep)
        )
    res = db.execute(stmt)
    return int(res.rowcount or 0)


def list_variant_metrics(db: Session, variant_id: int) -> List[InventoryVariantMetric]:
    stmt = (
        select(InventoryVariantMetric)
        .where(InventoryVariantMetric.product_variant_id == variant_id)
        .order_by(InventoryVariantMetric.shop_id.asc())
    )
    return list(db.scalars(stmt))

from __future__ import annotations
import uuid
from datetime import datetime
from typing import Any, Optional
from sqlalchemy import String, Integer, Float, DateTime, ForeignKey, Index, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column
from app.db.base import Base, BigIntPK, JSONType


"""
  orders table
  - code: natural key from the storefront, upsert target
  - data: raw payload verbatim (audit / replay)
  - *_base: amounts converted to the base currency (filled by the converter, may be NULL)
"""
class Order(Base):

    __tablename__ = "orders"

    id:   Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    guid: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    shop_id:       Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("shops.id", ondelete="SET NULL"), nullable=True)
    customer_guid: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    status:        Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    source:        Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    customer_name:  Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    customer_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    customer_phone: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    ordered_at:       Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    change_time:      Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    currency_code:    Mapped[Optional[str]] = mapped_column(String(3), nullable=True)

    total_with_vat:         Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    total_without_vat:      Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    total_vat:              Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    total_with_vat_base:    Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    total_without_vat_base: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    total_vat_base:         Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    price:            Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    billing_address:  Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    delivery_address: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    payment:          Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    shipping:         Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    data:             Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("ix_orders_customer_guid_status", "customer_guid", "status"),
        Index("ix_orders_shop_id_ordered_at", "shop_id", "ordered_at"),
    )


"""
  order_items table, RANGE-partitioned on created_at in Postgres (quarterly, see services.partitions)
  - primary key includes the partition key
  - rows are replaced wholesale whenever the parent order is re-imported
  - id is derived from (order code, position) and created_at from the order, so a re-import writes identical rows
"""
class OrderItem(Base):

    __tablename__ = "order_items"

    id:         Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), primary_key=True)

    order_id:     Mapped[int] = mapped_column(BigIntPK, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    product_guid: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    item_type:    Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    name:         Mapped[str] = mapped_column(String(255), nullable=False, default="Unknown item")
    variant_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    code:         Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    ean:          Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    amount:       Mapped[float] = mapped_column(Float, nullable=False, default=0)
    amount_unit:  Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    price_with_vat:    Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    price_without_vat: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    vat:               Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    vat_rate:          Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    data:              Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)

    __table_args__ = (
        Index("ix_order_items_order_id", "order_id"),
        Index("ix_order_items_code", "code"),
    )

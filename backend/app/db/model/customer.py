from __future__ import annotations
from datetime import datetime
from typing import Any, Optional
from sqlalchemy import String, Integer, Float, Boolean, DateTime, ForeignKey, func, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column
from app.db.base import Base, BigIntPK, JSONType


class Customer(Base):

    __tablename__ = "customers"

    id:      Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    guid:    Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    shop_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("shops.id", ondelete="SET NULL"), nullable=True)
    email:   Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    is_vip:  Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    data:    Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)   # holds auto_tags

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())


"""
  customer_metrics table - fully derived from completed orders
  - never holds a zero row: a customer without completed orders has no record
"""
class CustomerMetric(Base):

    __tablename__ = "customer_metrics"

    customer_guid: Mapped[str] = mapped_column(String(64), primary_key=True)

    orders_count:             Mapped[int] = mapped_column(Integer, nullable=False)
    total_spent:              Mapped[float] = mapped_column(Float, nullable=False, default=0)
    total_spent_base:         Mapped[float] = mapped_column(Float, nullable=False, default=0)
    average_order_value:      Mapped[float] = mapped_column(Float, nullable=False, default=0)
    average_order_value_base: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    first_order_at:           Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_order_at:            Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("orders_count > 0", name="orders_count_positive"),
    )


"""
  customer_tag_rules table
  - conditions: [{"field": "orders_count", "operator": ">=", "value": 3, "type": "number"}, ...]
  - match_type: all | any
"""
class CustomerTagRule(Base):

    __tablename__ = "customer_tag_rules"

    id:         Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tag_key:    Mapped[str] = mapped_column(String(64), nullable=False)
    label:      Mapped[str] = mapped_column(String(255), nullable=False)
    color:      Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    priority:   Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active:  Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    set_vip:    Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    match_type: Mapped[str] = mapped_column(String(8), nullable=False, default="all")
    conditions: Mapped[Optional[list[dict[str, Any]]]] = mapped_column(JSONType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

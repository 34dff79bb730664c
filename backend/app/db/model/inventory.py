from __future__ import annotations
from datetime import datetime
from typing import Optional
from sqlalchemy import Integer, Float, DateTime, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column
from app.db.base import Base, BigIntPK


"""
  inventory_variant_metrics table - per (variant, shop) sales aggregates
  - rows only exist while the variant has completed sales in that shop
"""
class InventoryVariantMetric(Base):

    __tablename__ = "inventory_variant_metrics"

    product_variant_id: Mapped[int] = mapped_column(BigIntPK, ForeignKey("product_variants.id", ondelete="CASCADE"), primary_key=True)
    shop_id:            Mapped[int] = mapped_column(Integer, ForeignKey("shops.id", ondelete="CASCADE"), primary_key=True)

    lifetime_orders_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lifetime_quantity:     Mapped[float] = mapped_column(Float, nullable=False, default=0)
    lifetime_revenue:      Mapped[float] = mapped_column(Float, nullable=False, default=0)
    last_30_orders_count:  Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_30_quantity:      Mapped[float] = mapped_column(Float, nullable=False, default=0)
    last_30_revenue:       Mapped[float] = mapped_column(Float, nullable=False, default=0)
    last_90_orders_count:  Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_90_quantity:      Mapped[float] = mapped_column(Float, nullable=False, default=0)
    last_90_revenue:       Mapped[float] = mapped_column(Float, nullable=False, default=0)
    average_daily_sales:   Mapped[float] = mapped_column(Float, nullable=False, default=0)
    last_sale_at:          Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

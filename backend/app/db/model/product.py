from __future__ import annotations
from datetime import datetime
from typing import Optional
from sqlalchemy import String, Integer, DateTime, ForeignKey, Index, func
from sqlalchemy.orm import Mapped, mapped_column
from app.db.base import Base, BigIntPK


class Product(Base):

    __tablename__ = "products"

    id:      Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    guid:    Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    shop_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("shops.id", ondelete="SET NULL"), nullable=True)
    name:    Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())


# line items reference variants by code; the sync collects affected variant ids through it
class ProductVariant(Base):

    __tablename__ = "product_variants"

    id:         Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(BigIntPK, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    code:       Mapped[str] = mapped_column(String(128), nullable=False)
    name:       Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    stock:      Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("ix_product_variants_code", "code"),
    )

from __future__ import annotations
from datetime import datetime
from typing import Optional
from sqlalchemy import Integer, String, Boolean, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column
from app.db.base import Base


# connected storefronts; provider decides which remote client syncs it
class Shop(Base):

    __tablename__ = "shops"

    id:            Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name:          Mapped[str] = mapped_column(String(255), nullable=False)
    provider:      Mapped[str] = mapped_column(String(32), nullable=False, default="shoptet")   # shoptet / woocommerce
    base_url:      Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    api_token:     Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    timezone:      Mapped[str] = mapped_column(String(64), nullable=False, default="Europe/Prague")
    currency_code: Mapped[Optional[str]] = mapped_column(String(3), nullable=True)
    is_master:     Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

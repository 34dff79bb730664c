from __future__ import annotations
from datetime import datetime
from typing import Any, Optional
from sqlalchemy import Integer, String, Text, DateTime, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column
from app.db.base import Base, JSONType


"""
  shop_sync_cursors table
  - (shop_id, key) identifies one logical stream, e.g. (1, 'orders.change_time')
  - cursor is opaque (ISO timestamp or page token); only written after the run's data is committed
"""
class ShopSyncCursor(Base):

    __tablename__ = "shop_sync_cursors"

    shop_id: Mapped[int] = mapped_column(Integer, ForeignKey("shops.id", ondelete="CASCADE"), primary_key=True)
    key:     Mapped[str] = mapped_column(String(100), primary_key=True)
    cursor:  Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    meta:    Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

from __future__ import annotations
from datetime import datetime
from sqlalchemy import String, DateTime, Index
from sqlalchemy.orm import Mapped, mapped_column
from app.db.base import Base


"""
  job_locks table (shared lock store)
  - one row per lock_key; a row whose expires_at is in the past is free to take over
  - owner is a random token so only the holder can release
"""
class JobLock(Base):

    __tablename__ = "job_locks"

    lock_key:    Mapped[str] = mapped_column(String(255), primary_key=True)
    owner:       Mapped[str] = mapped_column(String(64), nullable=False)
    acquired_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at:  Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_job_locks_expires_at", "expires_at"),
    )

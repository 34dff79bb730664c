from __future__ import annotations
import uuid
from datetime import datetime
from typing import Any, Optional
from sqlalchemy import String, Boolean, Integer, DateTime, Text, ForeignKey, CheckConstraint, func, Index, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from app.db.base import Base, JSONType


RUN_STATUSES = ("idle", "queued", "running", "completed", "failed", "skipped")


"""
  job_schedules table
  - job_type: catalog key, e.g. orders.fetch_new / customers.recalculate_metrics
  - options: sanitized per-job options (see services.scheduling.catalog)
  - last_run_*: written by the tick (queued/skipped) and by the job itself (running/completed/failed)
"""
class JobSchedule(Base):

    __tablename__ = "job_schedules"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    name:      Mapped[str] = mapped_column(String(255), nullable=False)
    job_type:  Mapped[str] = mapped_column(String(100), nullable=False)
    shop_id:   Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("shops.id", ondelete="CASCADE"), nullable=True)
    options:   Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)

    frequency:       Mapped[str] = mapped_column(String(50), nullable=False, default="custom")
    cron_expression: Mapped[str] = mapped_column(String(100), nullable=False)
    timezone:        Mapped[str] = mapped_column(String(64), nullable=False, default="Europe/Prague")
    enabled:         Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # when the tick last fired it (UTC)
    last_run_at:         Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_run_started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_run_ended_at:   Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_run_status:     Mapped[str] = mapped_column(String(20), nullable=False, default="idle")
    last_run_message:    Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(
            "last_run_status IN ('idle','queued','running','completed','failed','skipped')",
            name="last_run_status",
        ),
        Index("ix_job_schedules_job_type_enabled", "job_type", "enabled"),
    )

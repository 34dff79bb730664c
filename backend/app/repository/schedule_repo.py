# job_schedules repository + run recorder

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.model.job_schedule import JobSchedule
from app.services.scheduling import catalog
from app.utils.clock import now_utc

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class JobScheduleDTO:
    name: str
    job_type: str
    cron_expression: Optional[str] = None
    timezone: Optional[str] = None
    shop_id: Optional[int] = None
    options: Optional[Dict[str, Any]] = None
    enabled: bool = True
    frequency: Optional[str] = None


# ---------- Query ----------
def list_all(db: Session) -> List[JobSchedule]:
    stmt = select(JobSchedule).order_by(JobSchedule.job_type.asc(), JobSchedule.name.asc())
    return list(db.scalars(stmt))


def list_enabled(db: Session, job_type: Optional[str] = None) -> List[JobSchedule]:
    stmt = select(JobSchedule).where(JobSchedule.enabled.is_(True))
    if job_type:
        stmt = stmt.where(JobSchedule.job_type == job_type)
    return list(db.scalars(stmt.order_by(JobSchedule.created_at.asc())))


def get(db: Session, schedule_id: uuid.UUID | str) -> Optional[JobSchedule]:
    return db.get(JobSchedule, _as_uuid(schedule_id))


def find_by_type_and_shop(db: Session, job_type: str, shop_id: Optional[int]) -> Optional[JobSchedule]:
    stmt = select(JobSchedule).where(JobSchedule.job_type == job_type)
    stmt = stmt.where(JobSchedule.shop_id.is_(None) if shop_id is None else JobSchedule.shop_id == shop_id)
    return db.scalars(stmt.limit(1)).first()


# ---------- Mutations ----------
def create(db: Session, dto: JobScheduleDTO) -> JobSchedule:
    """Insert a schedule; cron/timezone/options fall back to catalog defaults."""
    definition = catalog.definition(dto.job_type)
    _validate_shop_scope(definition, dto.shop_id)

    row = JobSchedule(
        name=dto.name,
        job_type=dto.job_type,
        shop_id=dto.shop_id,
        options=catalog.sanitize_options(dto.job_type, dto.options),
        frequency=dto.frequency or definition.default_frequency.value,
        cron_expression=dto.cron_expression or definition.default_cron,
        timezone=dto.timezone or definition.default_timezone,
        enabled=dto.enabled,
        last_run_status="idle",
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def update_partial(db: Session, schedule_id: uuid.UUID | str, **fields) -> Optional[JobSchedule]:
    """
    Update only the given fields; None when the schedule does not exist.
    Allowed: name, enabled, cron_expression, timezone, shop_id, options, frequency
    """
    row = get(db, schedule_id)
    if row is None:
        return None

    allowed = {"name", "enabled", "cron_expression", "timezone", "shop_id", "options", "frequency"}
    clean = {k: v for k, v in fields.items() if k in allowed}
    if not clean:
        return row

    definition = catalog.definition(row.job_type)
    if "shop_id" in clean:
        _validate_shop_scope(definition, clean["shop_id"])
    if "options" in clean:
        clean["options"] = catalog.sanitize_options(row.job_type, clean["options"])

    for key, value in clean.items():
        setattr(row, key, value)
    db.commit()
    db.refresh(row)
    return row


def delete(db: Session, schedule_id: uuid.UUID | str) -> bool:
    row = get(db, schedule_id)
    if row is None:
        return False
    db.delete(row)
    db.commit()
    return True


def mark_fired(db: Session, schedule_id: uuid.UUID | str, fired_at: Optional[datetime] = None) -> None:
    """Tick bookkeeping: remember when it fired and flag it queued."""
    _write_status(
        db,
        schedule_id,
        last_run_at=fired_at or now_utc(),
        last_run_status="queued",
        last_run_message=None,
        last_run_ended_at=None,
    )


# ---------- Run recorder ----------
'''
Each job writes its own status: running at start, completed/failed at the end.
Every write is a short committed transaction so the dashboard sees it immediately,
independent of the job's own unit of work.
'''
def mark_running(db: Session, schedule_id: uuid.UUID | str, message: Optional[str] = None) -> None:
    _write_status(
        db,
        schedule_id,
        last_run_status="running",
        last_run_started_at=now_utc(),
        last_run_ended_at=None,
        last_run_message=message,
    )


def mark_completed(db: Session, schedule_id: uuid.UUID | str, message: Optional[str] = None) -> None:
    _write_status(
        db,
        schedule_id,
        last_run_status="completed",
        last_run_ended_at=now_utc(),
        last_run_message=message,
    )


def mark_failed(db: Session, schedule_id: uuid.UUID | str, message: Optional[str] = None) -> None:
    _write_status(
        db,
        schedule_id,
        last_run_status="failed",
        last_run_ended_at=now_utc(),
        last_run_message=message,
    )


def mark_skipped(db: Session, schedule_id: uuid.UUID | str, message: Optional[str] = None) -> None:
    _write_status(
        db,
        schedule_id,
        last_run_status="skipped",
        last_run_ended_at=now_utc(),
        last_run_message=message,
    )


def _write_status(db: Session, schedule_id: uuid.UUID | str, **values) -> None:
    if "last_run_message" in values and values["last_run_message"] is not None:
        values["last_run_message"] = str(values["last_run_message"])[: settings.SCHEDULE_MESSAGE_MAX_LEN]

    result = db.execute(
        update(JobSchedule)
        .where(JobSchedule.id == _as_uuid(schedule_id))
        .values(**values, updated_at=now_utc())
    )
    db.commit()
    if result.rowcount == 0:
        logger.warning(
            "schedule status write hit 0 rows: schedule=%s status=%s",
            schedule_id,
            values.get("last_run_status"),
        )


# ---------- Validation ----------
def _validate_shop_scope(definition: catalog.JobScheduleDefinition, shop_id: Optional[int]) -> None:
    if shop_id is not None and not definition.supports_shop_scope:
        raise ValueError(f"job type {definition.job_type} does not support a shop scope")


def _as_uuid(value: uuid.UUID | str) -> uuid.UUID:
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))

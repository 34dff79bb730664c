# feature: beat fires run_due_schedules every SCHEDULE_TICK_SECONDS; it reads job_schedules
# and queues the handler of every enabled schedule whose cron matches the current minute

from __future__ import annotations
import datetime as dt
import logging
from typing import Any, Dict, Optional

import pytz
from celery import shared_task
from croniter import croniter

from app.core.config import settings
from app.db.model.job_schedule import JobSchedule
from app.db.session import SessionLocal
from app.orchestration.common import enqueue
from app.orchestration.customer_metrics.customer_metrics_task import dispatch_customer_metrics
from app.orchestration.order_sync.order_sync_task import (
    fetch_new_orders, refresh_order_statuses, refresh_order_statuses_deep,
)
from app.repository import schedule_repo
from app.services.scheduling import catalog
from app.utils.clock import ensure_utc, now_utc, parse_iso

logger = logging.getLogger(__name__)

UNSUPPORTED_MESSAGE = "Pro tento typ úlohy chybí handler."


# job_type -> Celery task taking the schedule id; catalog types missing here are "skipped"
JOB_HANDLERS = {
    "orders.fetch_new": fetch_new_orders,
    "orders.refresh_statuses": refresh_order_statuses,
    "orders.refresh_statuses_deep": refresh_order_statuses_deep,
    "customers.recalculate_metrics": dispatch_customer_metrics,
}


def has_handler(job_type: str) -> bool:
    return job_type in JOB_HANDLERS


def dispatch_schedule(db, schedule: JobSchedule, fired_at: Optional[dt.datetime] = None) -> bool:
    """
    Mark the schedule queued and queue its handler on the job type's queue.
    False (and status skipped) when no handler exists for the job type.
    """
    schedule_repo.mark_fired(db, schedule.id, fired_at)

    task = JOB_HANDLERS.get(schedule.job_type)
    if task is None:
        schedule_repo.mark_skipped(db, schedule.id, UNSUPPORTED_MESSAGE)
        logger.warning("No handler for job_type=%s schedule_id=%s", schedule.job_type, schedule.id)
        return False

    queue = catalog.definition(schedule.job_type).queue if catalog.contains(schedule.job_type) else None
    enqueue(task, str(schedule.id), queue=queue)
    logger.info("Schedule fired job_type=%s schedule_id=%s queue=%s", schedule.job_type, schedule.id, queue)
    return True


def is_due(schedule: JobSchedule, now: dt.datetime) -> bool:
    """
    Cron match at minute resolution in the schedule's own timezone,
    and not already fired in that same minute (beat may tick twice inside one minute).
    Raises ValueError for an invalid cron expression or timezone.
    """
    if not schedule.cron_expression:
        return False

    tz_name = schedule.timezone or settings.SCHEDULE_DEFAULT_TIMEZONE
    try:
        tz_local = pytz.timezone(tz_name)
    except pytz.UnknownTimeZoneError as e:
        raise ValueError(f"Neplatné časové pásmo: {tz_name}") from e

    if not croniter.is_valid(schedule.cron_expression):
        raise ValueError(f"Neplatný cron výraz: {schedule.cron_expression}")

    now_local = ensure_utc(now).astimezone(tz_local).replace(second=0, microsecond=0)
    if not croniter.match(schedule.cron_expression, now_local):
        return False

    last_run_at = ensure_utc(schedule.last_run_at)
    if last_run_at is not None:
        last_minute = last_run_at.astimezone(tz_local).replace(second=0, microsecond=0)
        if last_minute == now_local:
            return False
    return True


"""
feature: every tick
    - enabled schedules (optionally one job_type)
    - due -> last_run_at + queued, handler queued with the schedule id
    - unsupported job_type -> skipped; invalid cron/timezone -> failed with the reason
"""
@shared_task(name="app.orchestration.scheduler_tick.run_due_schedules")
def run_due_schedules(now: Optional[str] = None, job_type: Optional[str] = None) -> Dict[str, Any]:
    tick_at = parse_iso(now) if now else now_utc()
    summary: Dict[str, Any] = {"fired": [], "skipped": [], "failed": [], "not_due": 0}

    db = SessionLocal()
    try:
        for schedule in schedule_repo.list_enabled(db, job_type=job_type):
            sid = str(schedule.id)
            try:
                due = is_due(schedule, tick_at)
            except ValueError as e:
                logger.warning("Schedule has an invalid trigger schedule_id=%s: %s", sid, e)
                schedule_repo.mark_failed(db, schedule.id, str(e))
                summary["failed"].append(sid)
                continue

            if not due:
                summary["not_due"] += 1
                continue

            if dispatch_schedule(db, schedule, tick_at):
                summary["fired"].append(sid)
            else:
                summary["skipped"].append(sid)
    finally:
        db.close()

    if summary["fired"] or summary["skipped"] or summary["failed"]:
        logger.info(
            "Schedule tick fired=%d skipped=%d failed=%d",
            len(summary["fired"]), len(summary["skipped"]), len(summary["failed"]),
        )
    return summary

"""
Shared plumbing of the scheduled jobs.

Every scheduled job runs the same envelope:
    lock -> load schedule (missing/disabled: no-op) -> running -> body -> completed | failed -> unlock
A lock held elsewhere means "already running": the run is skipped and the schedule is
marked skipped, so it does not stay "queued" until the next fire.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple

from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.model.job_schedule import JobSchedule
from app.db.session import SessionLocal
from app.repository import schedule_repo
from app.services.locking import get_lock_manager, lock_key_for
from app.services.scheduling import catalog

logger = logging.getLogger(__name__)

LOCKED_MESSAGE = "Úloha již běží, toto spuštění bylo přeskočeno."


@dataclass
class JobContext:
    db: Session
    schedule: Optional[JobSchedule]
    options: Dict[str, Any] = field(default_factory=dict)

    @property
    def schedule_id(self) -> Optional[str]:
        return str(self.schedule.id) if self.schedule is not None else None


# body returns (run message, extra summary fields)
JobBody = Callable[[JobContext], Tuple[Optional[str], Dict[str, Any]]]


"""
  Debug switch: True runs child tasks in the current process (.run) instead of queueing them.
"""
def _inline_tasks_enabled() -> bool:
    return bool(getattr(settings, "SYNC_TASKS_INLINE", False))


def enqueue(task, *args, queue: Optional[str] = None) -> None:
    if _inline_tasks_enabled():
        task.run(*args)
        return
    if queue:
        task.apply_async(args=list(args), queue=queue)
    else:
        task.delay(*args)


def run_scheduled_job(
    job_name: str,
    schedule_id: Optional[str],
    body: JobBody,
    *,
    lock_key: Optional[str] = None,
    lock_ttl: Optional[int] = None,
    session_factory=None,
) -> Dict[str, Any]:
    locks = get_lock_manager()
    key = lock_key or lock_key_for(job_name)

    with locks.held(key, lock_ttl) as acquired:
        if not acquired:
            logger.info("%s is already running, skipping", job_name)
            if schedule_id:
                _mark_locked(schedule_id, session_factory)
            return {"status": "locked", "lock_key": key}

        db: Session = (session_factory or SessionLocal)()
        try:
            schedule = schedule_repo.get(db, schedule_id) if schedule_id else None
            if schedule_id and (schedule is None or not schedule.enabled):
                logger.info("%s skipped: schedule missing or disabled schedule_id=%s", job_name, schedule_id)
                return {"status": "skipped"}

            options = catalog.effective_options(schedule.job_type, schedule.options) if schedule else {}
            ctx = JobContext(db=db, schedule=schedule, options=options)
            if schedule_id:
                schedule_repo.mark_running(db, schedule_id)

            try:
                message, summary = body(ctx)
            except Exception as e:
                logger.exception("%s failed schedule_id=%s", job_name, schedule_id)
                db.rollback()
                if schedule_id:
                    schedule_repo.mark_failed(db, schedule_id, str(e) or e.__class__.__name__)
                raise

            if schedule_id:
                schedule_repo.mark_completed(db, schedule_id, message)
            logger.info("%s completed schedule_id=%s message=%s", job_name, schedule_id, message)
            return {"status": "completed", "message": message, **summary}
        finally:
            db.close()


def _mark_locked(schedule_id: str, session_factory=None) -> None:
    db: Session = (session_factory or SessionLocal)()
    try:
        if schedule_repo.get(db, schedule_id) is not None:
            schedule_repo.mark_skipped(db, schedule_id, LOCKED_MESSAGE)
    finally:
        db.close()

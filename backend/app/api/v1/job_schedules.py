# Job schedule endpoints -> admin "Plánovač úloh" page
from __future__ import annotations
from typing import Any, Dict, List, Optional

import pytz
from croniter import croniter
from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.db.model.job_schedule import JobSchedule
from app.db.session import get_db
from app.orchestration.scheduler_tick import UNSUPPORTED_MESSAGE, dispatch_schedule, has_handler
from app.repository import schedule_repo
from app.repository.schedule_repo import JobScheduleDTO
from app.services.scheduling import catalog

router = APIRouter(prefix="/job-schedules", tags=["job-schedules"])


class JobScheduleItem(BaseModel):
    id: str
    name: str
    job_type: str
    shop_id: Optional[int] = None
    options: Optional[Dict[str, Any]] = None
    frequency: str
    cron_expression: str
    timezone: str
    enabled: bool
    supported: bool
    last_run_at: Optional[str] = None
    last_run_started_at: Optional[str] = None
    last_run_ended_at: Optional[str] = None
    last_run_status: str
    last_run_message: Optional[str] = None


class JobScheduleCreate(BaseModel):
    job_type: str
    name: Optional[str] = Field(default=None, max_length=255)
    shop_id: Optional[int] = None
    frequency: Optional[str] = None
    cron_expression: Optional[str] = Field(default=None, max_length=100)
    timezone: Optional[str] = Field(default=None, max_length=64)
    options: Optional[Dict[str, Any]] = None
    enabled: bool = True


class JobScheduleUpdate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=255)
    shop_id: Optional[int] = None
    frequency: Optional[str] = None
    cron_expression: Optional[str] = Field(default=None, max_length=100)
    timezone: Optional[str] = Field(default=None, max_length=64)
    options: Optional[Dict[str, Any]] = None
    enabled: Optional[bool] = None


@router.get("/catalog")
def list_catalog(db: Session = Depends(get_db)) -> Dict[str, Any]:
    """
    Every schedulable job type with its defaults, the stored schedule (if any)
    and whether this deployment has a handler for it.
    """
    by_type: Dict[str, JobSchedule] = {}
    for row in schedule_repo.list_all(db):
        by_type.setdefault(row.job_type, row)

    jobs = []
    for entry in catalog.catalog():
        row = by_type.get(entry["job_type"])
        jobs.append({
            **entry,
            "supported": has_handler(entry["job_type"]),
            "schedule": _to_item(row).model_dump() if row is not None else None,
        })
    return {"jobs": jobs}


@router.get("", response_model=List[JobScheduleItem])
def list_schedules(db: Session = Depends(get_db)) -> List[JobScheduleItem]:
    return [_to_item(row) for row in schedule_repo.list_all(db)]


@router.post("", response_model=JobScheduleItem, status_code=status.HTTP_201_CREATED)
def create_schedule(body: JobScheduleCreate, response: Response, db: Session = Depends(get_db)) -> JobScheduleItem:
    """
    One schedule per (job_type, shop): posting an existing pair updates it in place.
    """
    if not catalog.contains(body.job_type):
        raise HTTPException(status_code=422, detail={"job_type": "Neznámý typ úlohy."})

    _validate_trigger(body.cron_expression, body.timezone)
    _validate_options(body.job_type, body.options)

    definition = catalog.definition(body.job_type)
    try:
        existing = schedule_repo.find_by_type_and_shop(db, body.job_type, body.shop_id)
        if existing is not None:
            fields = body.model_dump(exclude_unset=True, exclude={"job_type"})
            row = schedule_repo.update_partial(db, existing.id, **fields)
            response.status_code = status.HTTP_200_OK
        else:
            row = schedule_repo.create(
                db,
                JobScheduleDTO(
                    name=body.name or definition.label,
                    job_type=body.job_type,
                    cron_expression=body.cron_expression,
                    timezone=body.timezone,
                    shop_id=body.shop_id,
                    options=body.options,
                    enabled=body.enabled,
                    frequency=body.frequency,
                ),
            )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    return _to_item(row)


@router.put("/{schedule_id}", response_model=JobScheduleItem)
def update_schedule(schedule_id: str, body: JobScheduleUpdate, db: Session = Depends(get_db)) -> JobScheduleItem:
    row = _get_or_404(db, schedule_id)

    fields = body.model_dump(exclude_unset=True)
    _validate_trigger(fields.get("cron_expression"), fields.get("timezone"))
    if "options" in fields:
        _validate_options(row.job_type, fields["options"])

    try:
        updated = schedule_repo.update_partial(db, row.id, **fields)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return _to_item(updated)


@router.delete("/{schedule_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_schedule(schedule_id: str, db: Session = Depends(get_db)) -> Response:
    row = _get_or_404(db, schedule_id)
    schedule_repo.delete(db, row.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{schedule_id}/run", status_code=status.HTTP_202_ACCEPTED)
def run_schedule(schedule_id: str, db: Session = Depends(get_db)) -> Dict[str, Any]:
    """Manual trigger: same bookkeeping and queue as a cron hit."""
    row = _get_or_404(db, schedule_id)

    if not dispatch_schedule(db, row):
        raise HTTPException(status_code=422, detail=UNSUPPORTED_MESSAGE)

    db.refresh(row)
    return {"message": "Úloha byla zařazena do fronty.", "schedule": _to_item(row).model_dump()}


# ---------- helpers ----------
def _get_or_404(db: Session, schedule_id: str) -> JobSchedule:
    try:
        row = schedule_repo.get(db, schedule_id)
    except ValueError:
        row = None
    if row is None:
        raise HTTPException(status_code=404, detail="schedule not found")
    return row


def _validate_trigger(cron_expression: Optional[str], timezone: Optional[str]) -> None:
    errors: Dict[str, str] = {}
    if cron_expression is not None and not croniter.is_valid(cron_expression):
        errors["cron_expression"] = "Neplatný cron výraz."
    if timezone is not None and timezone not in pytz.all_timezones_set:
        errors["timezone"] = "Neplatné časové pásmo."
    if errors:
        raise HTTPException(status_code=422, detail=errors)


def _validate_options(job_type: str, options: Optional[Dict[str, Any]]) -> None:
    errors = catalog.validate_options(job_type, options)
    if errors:
        raise HTTPException(status_code=422, detail={f"options.{k}": v for k, v in errors.items()})


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _to_item(row: JobSchedule) -> JobScheduleItem:
    return JobScheduleItem(
        id=str(row.id),
        name=row.name,
        job_type=row.job_type,
        shop_id=row.shop_id,
        options=row.options,
        frequency=row.frequency,
        cron_expression=row.cron_expression,
        timezone=row.timezone,
        enabled=row.enabled,
        supported=has_handler(row.job_type),
        last_run_at=_iso(row.last_run_at),
        last_run_started_at=_iso(row.last_run_started_at),
        last_run_ended_at=_iso(row.last_run_ended_at),
        last_run_status=row.last_run_status,
        last_run_message=row.last_run_message,
    )

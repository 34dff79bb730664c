from datetime import timedelta

import pytest

from app.db.model.job_schedule import JobSchedule
from app.orchestration import scheduler_tick
from app.repository import schedule_repo
from app.repository.schedule_repo import JobScheduleDTO
from app.utils.clock import ensure_utc

from conftest import FIXED_NOW

TICK = FIXED_NOW.isoformat()


@pytest.fixture
def enqueued(monkeypatch):
    calls = []

    def record(task, *args, queue=None):
        calls.append((task.name, args, queue))

    monkeypatch.setattr(scheduler_tick, "enqueue", record)
    return calls


def _schedule(db, job_type="orders.fetch_new", cron="*/5 * * * *", tz="Europe/Prague", **extra):
    return schedule_repo.create(db, JobScheduleDTO(
        name=job_type, job_type=job_type, cron_expression=cron, timezone=tz, **extra,
    ))


def _reload(db, schedule):
    db.expire_all()
    return schedule_repo.get(db, schedule.id)


def test_due_schedule_is_queued_on_its_job_queue(db, patch_sessions, enqueued):
    schedule = _schedule(db)

    summary = scheduler_tick.run_due_schedules.run(now=TICK)

    assert summary["fired"] == [str(schedule.id)]
    assert enqueued == [("app.orchestration.order_sync.fetch_new_orders", (str(schedule.id),), "orders")]
    stored = _reload(db, schedule)
    assert stored.last_run_status == "queued"
    assert ensure_utc(stored.last_run_at) == FIXED_NOW


def test_cron_is_evaluated_in_the_schedule_timezone(db, patch_sessions, enqueued):
    # 10:00 UTC is 12:00 in Prague (CEST)
    prague = _schedule(db, job_type="orders.refresh_statuses_deep", cron="0 12 * * *")
    utc = _schedule(db, job_type="orders.refresh_statuses", cron="0 12 * * *", tz="UTC")

    summary = scheduler_tick.run_due_schedules.run(now=TICK)

    assert summary["fired"] == [str(prague.id)]
    assert summary["not_due"] == 1
    assert _reload(db, utc).last_run_status == "idle"


def test_not_due_schedule_is_left_alone(db, patch_sessions, enqueued):
    schedule = _schedule(db, cron="0 3 * * *")

    summary = scheduler_tick.run_due_schedules.run(now=TICK)

    assert summary == {"fired": [], "skipped": [], "failed": [], "not_due": 1}
    assert enqueued == []
    assert _reload(db, schedule).last_run_at is None


def test_schedule_fired_within_the_last_minute_is_not_refired(db, patch_sessions, enqueued):
    schedule = _schedule(db)
    scheduler_tick.run_due_schedules.run(now=TICK)

    # beat ticks again 30 seconds later, same cron minute
    summary = scheduler_tick.run_due_schedules.run(now=(FIXED_NOW + timedelta(seconds=30)).isoformat())

    assert summary["fired"] == []
    assert len(enqueued) == 1
    assert _reload(db, schedule).last_run_status == "queued"


def test_ticks_slightly_under_a_minute_apart_fire_each_minute(db, patch_sessions, enqueued):
    schedule = _schedule(db, cron="* * * * *")
    first = FIXED_NOW + timedelta(milliseconds=500)
    second = FIXED_NOW + timedelta(minutes=1, milliseconds=400)

    assert scheduler_tick.run_due_schedules.run(now=first.isoformat())["fired"] == [str(schedule.id)]
    summary = scheduler_tick.run_due_schedules.run(now=second.isoformat())

    assert summary["fired"] == [str(schedule.id)]
    assert summary["not_due"] == 0
    assert len(enqueued) == 2


def test_unsupported_job_type_is_marked_skipped(db, patch_sessions, enqueued):
    schedule = _schedule(db, job_type="products.import_master", cron="0 * * * *")

    summary = scheduler_tick.run_due_schedules.run(now=TICK)

    assert summary["skipped"] == [str(schedule.id)]
    assert enqueued == []
    stored = _reload(db, schedule)
    assert stored.last_run_status == "skipped"
    assert stored.last_run_message == scheduler_tick.UNSUPPORTED_MESSAGE
    assert ensure_utc(stored.last_run_at) == FIXED_NOW


def test_invalid_trigger_marks_the_schedule_failed(db, patch_sessions, enqueued):
    bad_cron = _schedule(db, cron="61 * * * *")
    bad_tz = _schedule(db, job_type="orders.refresh_statuses", tz="Mars/Olympus")
    healthy = _schedule(db, job_type="orders.refresh_statuses_deep", cron="* * * * *")

    summary = scheduler_tick.run_due_schedules.run(now=TICK)

    assert set(summary["failed"]) == {str(bad_cron.id), str(bad_tz.id)}
    assert summary["fired"] == [str(healthy.id)]
    assert _reload(db, bad_cron).last_run_message.startswith("Neplatný cron výraz")
    assert _reload(db, bad_tz).last_run_message == "Neplatné časové pásmo: Mars/Olympus"


def test_disabled_schedules_and_type_filter(db, patch_sessions, enqueued):
    _schedule(db, enabled=False)
    wanted = _schedule(db, job_type="customers.recalculate_metrics", cron="* * * * *")
    _schedule(db, job_type="orders.refresh_statuses", cron="* * * * *")

    summary = scheduler_tick.run_due_schedules.run(now=TICK, job_type="customers.recalculate_metrics")

    assert summary == {"fired": [str(wanted.id)], "skipped": [], "failed": [], "not_due": 0}
    assert enqueued == [
        ("app.orchestration.customer_metrics.dispatch_customer_metrics", (str(wanted.id),), "customers_metrics"),
    ]


def test_is_due_edge_cases():
    blank = JobSchedule(job_type="orders.fetch_new", cron_expression="", timezone="UTC")
    assert scheduler_tick.is_due(blank, FIXED_NOW) is False

    every_minute = JobSchedule(job_type="orders.fetch_new", cron_expression="* * * * *", timezone=None)
    assert scheduler_tick.is_due(every_minute, FIXED_NOW + timedelta(seconds=42))

    every_minute.last_run_at = (FIXED_NOW - timedelta(minutes=2)).replace(tzinfo=None)
    assert scheduler_tick.is_due(every_minute, FIXED_NOW)

    broken = JobSchedule(job_type="orders.fetch_new", cron_expression="* * * *", timezone="UTC")
    with pytest.raises(ValueError):
        scheduler_tick.is_due(broken, FIXED_NOW)


def test_handlers_cover_only_registered_job_types():
    from app.services.scheduling import catalog

    assert all(catalog.contains(job_type) for job_type in scheduler_tick.JOB_HANDLERS)
    assert scheduler_tick.has_handler("orders.fetch_new")
    assert not scheduler_tick.has_handler("inventory.stock_guard_sync")

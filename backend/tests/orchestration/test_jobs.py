import uuid

import pytest

from app.db.model.customer import Customer, CustomerMetric, CustomerTagRule
from app.integrations.shoptet.errors import RemoteListFailure
from app.integrations.shoptet.orders_api import OrderPage
from app.orchestration import common
from app.orchestration.customer_metrics import customer_metrics_task
from app.orchestration.inventory_metrics import inventory_metrics_task
from app.orchestration.order_sync import order_sync_task
from app.repository import cursor_repo, metrics_repo, schedule_repo
from app.repository.schedule_repo import JobScheduleDTO
from app.services.locking import JobLockManager, lock_key_for
from app.services.order_sync.window import CHANGE_TIME_CURSOR

from conftest import FakeOrderClient, make_customer, make_order, make_shop, make_variant, order_payload

ITEMS = [{"code": "SKU-1", "name": "Parfém", "amount": "2", "itemPrice": {"withVat": "100.00"}}]


def _schedule(db, job_type="orders.fetch_new", **extra):
    return schedule_repo.create(db, JobScheduleDTO(name=job_type, job_type=job_type, **extra))


def _reload(db, schedule):
    db.expire_all()
    return schedule_repo.get(db, schedule.id)


@pytest.fixture
def remote(monkeypatch):
    client = FakeOrderClient(pages=[
        OrderPage(orders=[order_payload("J1", "2026-10-19T09:40:00Z", items=ITEMS)], paginator={"pageCount": 1}),
    ])
    monkeypatch.setattr(order_sync_task, "_remote_client", lambda: client)
    return client


@pytest.fixture
def jobs(patch_sessions, lock_manager, inline_tasks):
    return lock_manager


def test_fetch_new_orders_records_a_completed_run(db, jobs, remote):
    shop = make_shop(db)
    variant = make_variant(db, shop, "SKU-1")
    schedule = _schedule(db)

    result = order_sync_task.fetch_new_orders.run(str(schedule.id))

    assert result["status"] == "completed"
    assert result["orders"] == 1
    assert result["variants"] == 1

    stored = _reload(db, schedule)
    assert stored.last_run_status == "completed"
    assert stored.last_run_message == "Objednávky synchronizovány pro 1 shop(ů)."
    assert stored.last_run_started_at is not None
    assert stored.last_run_ended_at is not None
    assert cursor_repo.get(db, shop.id, CHANGE_TIME_CURSOR) == "2026-10-19T09:40:00+00:00"

    # affected variants were recalculated by the inline fan-out
    rows = metrics_repo.list_variant_metrics(db, variant.id)
    assert [r.lifetime_quantity for r in rows] == [pytest.approx(2)]
    assert not jobs.is_held(lock_key_for("fetch_new_orders"))


def test_list_failure_marks_the_run_failed(db, jobs, monkeypatch):
    shop = make_shop(db)
    cursor_repo.put(db, shop.id, CHANGE_TIME_CURSOR, "2026-10-19T08:00:00+00:00")
    schedule = _schedule(db)
    failing = FakeOrderClient(list_error=RemoteListFailure("HTTP 503 after 3 attempts"))
    monkeypatch.setattr(order_sync_task, "_remote_client", lambda: failing)

    with pytest.raises(RemoteListFailure):
        order_sync_task.fetch_new_orders.run(str(schedule.id))

    stored = _reload(db, schedule)
    assert stored.last_run_status == "failed"
    assert stored.last_run_message == "HTTP 503 after 3 attempts"
    assert cursor_repo.get(db, shop.id, CHANGE_TIME_CURSOR) == "2026-10-19T08:00:00+00:00"

    # the lock was released, the next run may start
    assert JobLockManager(store=jobs.store).acquire(lock_key_for("fetch_new_orders"))


def test_run_is_skipped_while_another_instance_holds_the_lock(db, jobs, remote):
    make_shop(db)
    schedule = _schedule(db)
    other_worker = JobLockManager(store=jobs.store)
    assert other_worker.acquire(lock_key_for("fetch_new_orders"))

    result = order_sync_task.fetch_new_orders.run(str(schedule.id))

    assert result["status"] == "locked"
    assert remote.list_calls == []
    stored = _reload(db, schedule)
    assert stored.last_run_status == "skipped"
    assert stored.last_run_message == common.LOCKED_MESSAGE


def test_disabled_or_missing_schedule_is_a_no_op(db, jobs, remote):
    make_shop(db)
    schedule = _schedule(db, enabled=False)

    assert order_sync_task.fetch_new_orders.run(str(schedule.id)) == {"status": "skipped"}
    assert order_sync_task.fetch_new_orders.run(str(uuid.uuid4())) == {"status": "skipped"}
    assert remote.list_calls == []
    assert _reload(db, schedule).last_run_status == "idle"


def test_busy_shop_pipeline_is_skipped(db, jobs, remote):
    shop = make_shop(db)
    schedule = _schedule(db)
    manual_run = JobLockManager(store=jobs.store)
    manual_run.acquire(order_sync_task.pipeline_lock_key(order_sync_task.FETCH_PIPELINE, shop.id))

    result = order_sync_task.fetch_new_orders.run(str(schedule.id))

    assert result["shops"] == 0
    assert remote.list_calls == []
    stored = _reload(db, schedule)
    assert stored.last_run_status == "completed"
    assert stored.last_run_message == "Žádný shop nebyl synchronizován (lock aktivní nebo žádné změny)."
    assert cursor_repo.get(db, shop.id, CHANGE_TIME_CURSOR) is None


def test_status_refresh_is_scoped_to_the_schedule_shop(db, jobs, remote):
    cz = make_shop(db, "CZ")
    make_shop(db, "SK")
    schedule = _schedule(db, job_type="orders.refresh_statuses", shop_id=cz.id, options={"lookback_hours": 6})

    result = order_sync_task.refresh_order_statuses.run(str(schedule.id))

    assert result["shops"] == 1
    assert [c["shop_id"] for c in remote.list_calls] == [cz.id]
    assert _reload(db, schedule).last_run_message == "Stavy objednávek aktualizovány pro 1 shop(ů)."
    assert cursor_repo.get(db, cz.id, CHANGE_TIME_CURSOR) is None


def test_customer_metrics_dispatch_runs_the_whole_chain(db, jobs):
    db.add(CustomerTagRule(tag_key="buyer", label="Kupující", priority=1, is_active=True, match_type="all",
                           conditions=[{"field": "orders_count", "operator": ">=", "value": 1}]))
    db.commit()
    make_customer(db, "c-1")
    make_customer(db, "c-2")
    make_order(db, "M1", customer_guid="c-1", total=120.0)
    schedule = _schedule(db, job_type="customers.recalculate_metrics")

    result = customer_metrics_task.dispatch_customer_metrics.run(str(schedule.id))

    assert result["batches"] == 1
    assert _reload(db, schedule).last_run_message == "Do fronty [customers_metrics] odesláno 1 dávek."

    db.expire_all()
    assert db.get(CustomerMetric, "c-1").total_spent == pytest.approx(120.0)
    assert db.get(CustomerMetric, "c-2") is None
    tagged = db.query(Customer).filter(Customer.guid == "c-1").one()
    assert [t["key"] for t in tagged.data["auto_tags"]] == ["buyer"]


def test_customer_metrics_dispatch_without_customers(db, jobs):
    schedule = _schedule(db, job_type="customers.recalculate_metrics", options={"chunk": 10, "queue": "bulk"})

    result = customer_metrics_task.dispatch_customer_metrics.run(str(schedule.id))

    assert result["batches"] == 0
    assert result["queue"] == "bulk"
    assert _reload(db, schedule).last_run_message == "Nebyly nalezeny žádné zákaznické záznamy pro přepočet."


def test_customer_batch_lock_skips_a_duplicate_batch(db, jobs):
    from app.services.locking import batch_lock_key

    JobLockManager(store=jobs.store).acquire(batch_lock_key(customer_metrics_task.RECALC_JOB, ["c-1", "c-2"]))

    assert customer_metrics_task.recalculate_customer_metrics.run(["c-1", "c-2"])["status"] == "locked"
    assert customer_metrics_task.recalculate_customer_metrics.run(["c-2", "c-1"])["status"] == "completed"
    assert customer_metrics_task.recalculate_customer_metrics.run([]) == {"status": "empty"}


def test_variant_metrics_requeue_the_remainder(db, jobs, monkeypatch):
    from app.core.config import settings

    monkeypatch.setattr(settings, "VARIANT_METRICS_CHUNK", 2)
    shop = make_shop(db)
    variants = [make_variant(db, shop, f"SKU-{n}") for n in range(3)]
    for variant in variants:
        make_order(db, f"R-{variant.code}", shop=shop,
                   items=[{"code": variant.code, "amount": 1, "price_with_vat": 10.0}])

    result = inventory_metrics_task.recalculate_variant_metrics.run([v.id for v in variants])

    assert result == {"status": "completed", "variants": 2, "requeued": 1}
    for variant in variants:
        assert len(metrics_repo.list_variant_metrics(db, variant.id)) == 1

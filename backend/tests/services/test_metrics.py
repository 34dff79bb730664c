from datetime import datetime, timedelta, timezone

import pytest

from app.db.model.customer import Customer, CustomerMetric, CustomerTagRule
from app.db.model.inventory import InventoryVariantMetric
from app.repository import metrics_repo, order_repo
from app.services.metrics import (
    CustomerMetricsService, CustomerTagRuleEngine, InventoryMetricsService, iter_key_chunks, unique_keys,
)
from app.services.metrics.tag_rules import compare_number, compare_string

from conftest import make_customer, make_order, make_shop, make_variant

NOW = datetime(2026, 10, 19, 10, 0, tzinfo=timezone.utc)


def test_chunking_dedupes_and_bounds():
    assert unique_keys(["a", None, "b", "a", "", "c"]) == ["a", "b", "c"]
    assert list(iter_key_chunks([3, 1, 3, 2, 5], 2)) == [[3, 1], [2, 5]]
    assert list(iter_key_chunks([], 10)) == []
    with pytest.raises(ValueError):
        list(iter_key_chunks([1], 0))


# ---------- customers ----------
def test_customer_metrics_count_completed_orders_only(db):
    make_order(db, "O1", customer_guid="c-1", total=100.0, ordered_at=NOW - timedelta(days=40))
    make_order(db, "O2", customer_guid="c-1", total=300.0, ordered_at=NOW - timedelta(days=2))
    make_order(db, "O3", customer_guid="c-1", status="Stornována", total=999.0, ordered_at=NOW)
    make_order(db, "O4", customer_guid="c-1", status=None, total=50.0, ordered_at=NOW - timedelta(days=1))

    processed = CustomerMetricsService(db).recalculate(["c-1"])
    assert processed == ["c-1"]

    db.expire_all()
    metric = db.get(CustomerMetric, "c-1")
    assert metric.orders_count == 3
    assert metric.total_spent == pytest.approx(450.0)
    assert metric.total_spent_base == pytest.approx(450.0)
    assert metric.average_order_value == pytest.approx(150.0)
    assert metric.first_order_at.replace(tzinfo=None) == (NOW - timedelta(days=40)).replace(tzinfo=None)
    assert metric.last_order_at.replace(tzinfo=None) == (NOW - timedelta(days=1)).replace(tzinfo=None)


def test_customer_without_completed_orders_has_no_metric_row(db):
    make_order(db, "P1", customer_guid="c-2", total=100.0)
    CustomerMetricsService(db).recalculate(["c-2"])
    db.expire_all()
    assert db.get(CustomerMetric, "c-2") is not None

    # the only order gets cancelled: the stale row disappears instead of becoming a zero row
    stored = order_repo.get_by_code(db, "P1")
    stored.status = "Stornována"
    db.commit()

    processed = CustomerMetricsService(db).recalculate(["c-2", "c-unknown", "c-2"])
    assert processed == ["c-2", "c-unknown"]
    db.expunge_all()
    assert db.get(CustomerMetric, "c-2") is None
    assert db.get(CustomerMetric, "c-unknown") is None


def test_completed_statuses_allow_list(db, monkeypatch):
    from app.core.config import settings

    monkeypatch.setattr(settings, "ORDER_COMPLETED_STATUSES", ["Vyřízena"])
    make_order(db, "Q1", customer_guid="c-3", status="Vyřízena", total=10.0)
    make_order(db, "Q2", customer_guid="c-3", status="Nová", total=20.0)
    make_order(db, "Q3", customer_guid="c-3", status=None, total=30.0)

    CustomerMetricsService(db).recalculate(["c-3"])
    db.expire_all()
    assert db.get(CustomerMetric, "c-3").orders_count == 1


def test_dispatch_batches_walk_every_customer(db):
    for n in range(5):
        make_customer(db, f"cust-{n}")
    batches = list(CustomerMetricsService(db).iter_dispatch_batches(2))
    assert batches == [["cust-0", "cust-1"], ["cust-2", "cust-3"], ["cust-4"]]


# ---------- inventory variants ----------
def test_variant_metrics_windows(db):
    cz = make_shop(db, "CZ")
    variant = make_variant(db, cz, "SKU-1")

    make_order(db, "V1", shop=cz, ordered_at=NOW - timedelta(days=10),
               items=[{"code": "SKU-1", "amount": 2, "price_with_vat": 100.0}])
    make_order(db, "V2", shop=cz, ordered_at=NOW - timedelta(days=60),
               items=[{"code": "SKU-1", "amount": 1, "price_with_vat": 50.0}, {"code": "OTHER", "amount": 4}])
    make_order(db, "V3", shop=cz, ordered_at=NOW - timedelta(days=200),
               items=[{"code": "SKU-1", "amount": 3, "price_with_vat": 30.0}])
    make_order(db, "V4", shop=cz, status="Stornována", ordered_at=NOW - timedelta(days=1),
               items=[{"code": "SKU-1", "amount": 5, "price_with_vat": 500.0}])

    InventoryMetricsService(db).recalculate([variant.id], now=NOW)

    db.expire_all()
    rows = metrics_repo.list_variant_metrics(db, variant.id)
    assert len(rows) == 1
    row = rows[0]
    assert row.shop_id == cz.id
    assert row.lifetime_orders_count == 3
    assert row.lifetime_quantity == pytest.approx(6)
    assert row.lifetime_revenue == pytest.approx(180.0)
    assert row.last_30_orders_count == 1
    assert row.last_30_quantity == pytest.approx(2)
    assert row.last_30_revenue == pytest.approx(100.0)
    assert row.last_90_orders_count == 2
    assert row.last_90_quantity == pytest.approx(3)
    assert row.last_90_revenue == pytest.approx(150.0)
    assert row.average_daily_sales == pytest.approx(2 / 30)


def test_variant_without_sales_loses_its_rows(db):
    cz = make_shop(db, "CZ")
    sk = make_shop(db, "SK")
    variant = make_variant(db, cz, "SKU-9")
    silent = make_variant(db, cz, "SKU-SILENT")

    make_order(db, "W1", shop=cz, ordered_at=NOW - timedelta(days=3),
               items=[{"code": "SKU-9", "amount": 1, "price_with_vat": 10.0}])

    # stale rows from an earlier run: SK no longer has sales, SKU-SILENT never had any left
    db.add(InventoryVariantMetric(product_variant_id=variant.id, shop_id=sk.id, lifetime_orders_count=1))
    db.add(InventoryVariantMetric(product_variant_id=silent.id, shop_id=cz.id, lifetime_orders_count=1))
    db.commit()

    done = InventoryMetricsService(db).recalculate([variant.id, silent.id, variant.id], now=NOW)
    assert done == [variant.id, silent.id]

    db.expire_all()
    assert [r.shop_id for r in metrics_repo.list_variant_metrics(db, variant.id)] == [cz.id]
    assert metrics_repo.list_variant_metrics(db, silent.id) == []


# ---------- tag rules ----------
def _rule(**kw):
    defaults = dict(id=1, tag_key="vip", label="VIP", color=None, priority=0, is_active=True,
                    set_vip=False, match_type="all", conditions=[])
    defaults.update(kw)
    return CustomerTagRule(**defaults)


def test_compare_helpers():
    assert compare_number("5", 3, ">=")
    assert not compare_number(None, 3, ">=")
    assert compare_string("Jana@Example.com", "example.com", "ends_with")
    assert compare_string("cz", "cz, sk", "in")
    assert compare_string(None, None, "is_null")


def test_rule_engine_orders_tags_and_sets_vip():
    rules = [
        _rule(id=1, tag_key="loyal", label="Věrný", priority=5,
              conditions=[{"field": "orders_count", "operator": ">=", "value": 3}]),
        _rule(id=2, tag_key="vip", label="VIP", priority=10, set_vip=True, match_type="any",
              conditions=[{"field": "total_spent", "operator": ">", "value": 10000},
                          {"field": "email", "operator": "ends_with", "value": "@firma.cz"}]),
        _rule(id=3, tag_key="everyone", label="Všichni", priority=0, color="blue"),
    ]
    engine = CustomerTagRuleEngine(db=None, rules=rules)
    customer = Customer(guid="c-1", email="boss@firma.cz", is_vip=False, data={"note": "x"})
    metric = CustomerMetric(customer_guid="c-1", orders_count=4, total_spent=500.0)

    result = engine.apply(customer, metric)

    assert [t["key"] for t in result.tags] == ["vip", "loyal", "everyone"]
    assert customer.is_vip is True
    assert customer.data["note"] == "x"
    assert customer.data["auto_tags"][0] == {"key": "vip", "label": "VIP", "color": "gray", "source_rule_id": 2}
    assert customer.data["auto_tags"][2]["color"] == "blue"


def test_rule_engine_without_metric_treats_numbers_as_zero():
    rules = [
        _rule(id=1, tag_key="new", label="Nový", conditions=[{"field": "orders_count", "operator": "=", "value": 0}]),
        _rule(id=2, tag_key="vip", label="VIP", set_vip=True,
              conditions=[{"field": "orders_count", "operator": ">=", "value": 10}]),
    ]
    customer = Customer(guid="c-2", email=None, is_vip=True, data=None)

    result = CustomerTagRuleEngine(db=None, rules=rules).apply(customer, None)

    assert [t["key"] for t in result.tags] == ["new"]
    # VIP rules exist and none matched: the flag is cleared
    assert customer.is_vip is False


def test_apply_to_guids_persists_tags(db):
    db.add(_rule(id=None, tag_key="buyer", label="Kupující",
                 conditions=[{"field": "orders_count", "operator": ">=", "value": 1}]))
    db.commit()
    make_customer(db, "c-5")
    make_order(db, "T1", customer_guid="c-5")
    CustomerMetricsService(db).recalculate(["c-5"])

    assert CustomerTagRuleEngine(db).apply_to_guids(["c-5", "missing"]) == 1

    db.expire_all()
    customer = db.query(Customer).filter(Customer.guid == "c-5").one()
    assert [t["key"] for t in customer.data["auto_tags"]] == ["buyer"]

import pytest

from app.services.scheduling import catalog
from app.services.scheduling.catalog import Frequency, UnknownJobType


def test_registry_lists_every_job_type_in_registration_order():
    keys = catalog.keys()
    assert keys[:3] == ["orders.fetch_new", "orders.refresh_statuses", "orders.refresh_statuses_deep"]
    assert "customers.recalculate_metrics" in keys
    assert [entry["job_type"] for entry in catalog.catalog()] == keys


def test_definition_of_unknown_job_type_raises():
    assert catalog.contains("orders.fetch_new")
    assert not catalog.contains("orders.nope")
    with pytest.raises(UnknownJobType) as exc:
        catalog.definition("orders.nope")
    assert "orders.nope" in str(exc.value)


def test_catalog_entry_carries_labels_and_a_copy_of_defaults():
    entry = next(e for e in catalog.catalog() if e["job_type"] == "customers.recalculate_metrics")
    assert entry["default_frequency"] == Frequency.DAILY.value
    assert entry["default_frequency_label"] == "Denně"
    assert entry["default_cron"] == "30 2 * * *"
    assert entry["supports_shop"] is False
    assert entry["default_options"] == {"queue": "customers_metrics", "chunk": 250}

    # mutating the returned dict must not leak into the registry
    entry["default_options"]["chunk"] = 1
    assert catalog.definition("customers.recalculate_metrics").default_options["chunk"] == 250


@pytest.mark.parametrize(
    "options, expected",
    [
        ({"chunk": 500, "queue": "customers_metrics"}, {}),
        ({"chunk": ""}, {}),
        ({"chunk": None}, {}),
        ({"chunk": "abc"}, {"chunk": "Zadej velikost dávky jako číslo."}),
        ({"chunk": 0}, {"chunk": "Povolený rozsah velikosti dávky je 1 až 5000."}),
        ({"chunk": 5001}, {"chunk": "Povolený rozsah velikosti dávky je 1 až 5000."}),
        ({"queue": ""}, {"queue": "Zadej název fronty."}),
        ({"queue": 7}, {"queue": "Název fronty musí být řetězec."}),
    ],
)
def test_validate_customer_metrics_options(options, expected):
    assert catalog.validate_options("customers.recalculate_metrics", options) == expected


def test_validate_lookback_hours_range():
    errors = catalog.validate_options("orders.refresh_statuses", {"lookback_hours": 721})
    assert errors == {"lookback_hours": "Povolený rozsah je 1 až 720 hodin (max. 30 dní)."}
    assert catalog.validate_options("orders.refresh_statuses", {"lookback_hours": "12"}) == {}


def test_validate_never_raises_for_unknown_job_type():
    assert catalog.validate_options("unknown.job", {"chunk": "abc"}) == {}


def test_sanitize_fills_defaults_and_clamps():
    assert catalog.sanitize_options("customers.recalculate_metrics", None) == {
        "queue": "customers_metrics",
        "chunk": 250,
    }
    assert catalog.sanitize_options("customers.recalculate_metrics", {"chunk": 99999, "queue": "  fast  "}) == {
        "queue": "fast",
        "chunk": 5000,
    }
    assert catalog.sanitize_options("customers.recalculate_metrics", {"chunk": 0})["chunk"] == 1
    assert catalog.sanitize_options("customers.recalculate_metrics", {"chunk": "abc"})["chunk"] == 250
    assert catalog.sanitize_options("customers.recalculate_metrics", {"queue": "   "})["queue"] == "customers_metrics"


def test_sanitize_rule_based_type_drops_unknown_keys():
    result = catalog.sanitize_options("orders.fetch_new", {"fallback_lookback_hours": "48", "debug": True})
    assert result == {"fallback_lookback_hours": 48}


def test_sanitize_without_rules_merges_over_defaults():
    result = catalog.sanitize_options("inventory.stock_guard_sync", {"chunk": 10, "extra": "x"})
    assert result == {"chunk": 10, "extra": "x"}
    assert catalog.sanitize_options("unknown.job", {"a": 1}) == {"a": 1}
    assert catalog.sanitize_options("unknown.job", None) is None


def test_sanitize_is_idempotent():
    once = catalog.sanitize_options("woocommerce.fetch_orders", {"per_page": 500, "max_pages": "0"})
    assert once == {"lookback_hours": 24, "per_page": 100, "max_pages": 1}
    assert catalog.sanitize_options("woocommerce.fetch_orders", once) == once


def test_effective_options_is_never_none():
    assert catalog.effective_options("unknown.job", None) == {}
    assert catalog.effective_options("orders.refresh_statuses_deep", None) == {"lookback_hours": 720}


def test_package_exposes_the_catalog_module():
    import types

    from app.services import scheduling

    assert isinstance(scheduling.catalog, types.ModuleType)
    assert scheduling.catalog.definition("orders.fetch_new").queue == "orders"
    assert scheduling.definition is catalog.definition


@pytest.mark.parametrize(
    "options, expected",
    [
        ({"lookback_hours": 99999}, 720),
        ({"lookback_hours": 0}, 1),
        ({}, 48),
        (None, 48),
    ],
)
def test_sanitize_clamps_status_refresh_lookback(options, expected):
    assert catalog.sanitize_options("orders.refresh_statuses", options) == {"lookback_hours": expected}

"""
Schedule catalog: the static registry of every job type an operator can schedule.

    keys() / contains() / definition() / catalog()
    validate_options(job_type, raw) -> {field: message}     (pure, never raises)
    sanitize_options(job_type, raw) -> dict | None           (always succeeds)
"""

from __future__ import annotations
import copy
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from app.core.config import settings
from app.services.scheduling.options import IntRangeOption, OptionRule, QueueNameOption, lookback_hours


class UnknownJobType(KeyError):
    """Job type is not registered in the catalog."""

    def __init__(self, job_type: str) -> None:
        super().__init__(job_type)
        self.job_type = job_type

    def __str__(self) -> str:
        return f"Unknown job schedule type [{self.job_type}]"


class Frequency(str, Enum):
    EVERY_FIVE_MINUTES = "every_five_minutes"
    EVERY_FIFTEEN_MINUTES = "every_fifteen_minutes"
    HOURLY = "hourly"
    DAILY = "daily"
    CUSTOM = "custom"

    @property
    def label(self) -> str:
        return _FREQUENCY_LABELS[self]

    @property
    def default_cron(self) -> Optional[str]:
        return _FREQUENCY_CRON.get(self)


_FREQUENCY_LABELS = {
    Frequency.EVERY_FIVE_MINUTES: "Každých 5 minut",
    Frequency.EVERY_FIFTEEN_MINUTES: "Každých 15 minut",
    Frequency.HOURLY: "Každou hodinu",
    Frequency.DAILY: "Denně",
    Frequency.CUSTOM: "Vlastní (cron)",
}

_FREQUENCY_CRON = {
    Frequency.EVERY_FIVE_MINUTES: "*/5 * * * *",
    Frequency.EVERY_FIFTEEN_MINUTES: "*/15 * * * *",
    Frequency.HOURLY: "0 * * * *",
    Frequency.DAILY: "0 0 * * *",
}


@dataclass(frozen=True)
class JobScheduleDefinition:
    job_type: str
    label: str
    description: str
    default_frequency: Frequency
    default_cron: str
    default_timezone: str
    supports_shop_scope: bool = False
    default_options: Mapping[str, Any] = field(default_factory=dict)
    # empty = no rules, options are shallow-merged over the defaults
    rules: Tuple[OptionRule, ...] = ()
    queue: str = "orchestrator"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_type": self.job_type,
            "label": self.label,
            "description": self.description,
            "default_frequency": self.default_frequency.value,
            "default_frequency_label": self.default_frequency.label,
            "default_cron": self.default_cron,
            "default_timezone": self.default_timezone,
            "supports_shop": self.supports_shop_scope,
            "default_options": copy.deepcopy(dict(self.default_options)),
        }


def _define(
    job_type: str,
    label: str,
    description: str,
    frequency: Frequency,
    cron: Optional[str] = None,
    *,
    supports_shop: bool = False,
    options: Optional[Dict[str, Any]] = None,
    rules: Tuple[OptionRule, ...] = (),
    queue: str = "orchestrator",
) -> JobScheduleDefinition:
    return JobScheduleDefinition(
        job_type=job_type,
        label=label,
        description=description,
        default_frequency=frequency,
        default_cron=cron or frequency.default_cron or "* * * * *",
        default_timezone=settings.SCHEDULE_DEFAULT_TIMEZONE,
        supports_shop_scope=supports_shop,
        default_options=MappingProxyType(dict(options or {})),
        rules=rules,
        queue=queue,
    )


_DEFINITIONS: Tuple[JobScheduleDefinition, ...] = (
    _define(
        "orders.fetch_new",
        "Stahování nových objednávek",
        "Pravidelně stahuje nové objednávky z napojených e-shopů do administrace.",
        Frequency.EVERY_FIVE_MINUTES,
        "*/5 * * * *",
        supports_shop=True,
        options={"fallback_lookback_hours": 24},
        rules=(lookback_hours("fallback_lookback_hours", 24),),
        queue="orders",
    ),
    _define(
        "orders.refresh_statuses",
        "Aktualizace stavů objednávek",
        "Sleduje změny stavů již stažených objednávek a synchronizuje je s HUBem.",
        Frequency.EVERY_FIFTEEN_MINUTES,
        "*/15 * * * *",
        supports_shop=True,
        options={"lookback_hours": 48},
        rules=(lookback_hours("lookback_hours", 48),),
        queue="orders",
    ),
    _define(
        "orders.refresh_statuses_deep",
        "Aktualizace stavů objednávek (hluboká)",
        "Jednou denně zkontroluje stav objednávek hluboko do minulosti.",
        Frequency.DAILY,
        "0 3 * * *",
        supports_shop=True,
        options={"lookback_hours": 720},
        queue="orders",
    ),
    _define(
        "products.import_master",
        "Import produktů z master e-shopu",
        "Importuje nové produkty z master e-shopu a udržuje katalog aktuální.",
        Frequency.HOURLY,
        "0 * * * *",
        supports_shop=True,
        options={"fallback_lookback_hours": 168},
    ),
    _define(
        "customers.recalculate_metrics",
        "Přepočet zákaznických metrik",
        "Naplánuje dávky pro přepočet agregovaných metrik zákazníků.",
        Frequency.DAILY,
        "30 2 * * *",
        options={"queue": "customers_metrics", "chunk": 250},
        rules=(
            IntRangeOption(
                key="chunk",
                minimum=1,
                maximum=5000,
                not_numeric_message="Zadej velikost dávky jako číslo.",
                range_message="Povolený rozsah velikosti dávky je 1 až 5000.",
                fallback=250,
            ),
            QueueNameOption(key="queue", fallback="customers_metrics"),
        ),
        queue="customers_metrics",
    ),
    _define(
        "customers.backfill_from_orders",
        "Vytváření profilů z objednávek",
        "Automaticky doplní a přiřadí profily zákazníků k objednávkám bez přiřazeného zákazníka.",
        Frequency.EVERY_FIFTEEN_MINUTES,
        "*/15 * * * *",
        supports_shop=True,
        options={"queue": "customers", "chunk": 200},
        rules=(
            IntRangeOption(
                key="chunk",
                minimum=10,
                maximum=2000,
                not_numeric_message="Zadej počet objednávek v jedné dávce jako číslo.",
                range_message="Povolený rozsah velikosti dávky je 10 až 2000 objednávek.",
                fallback=200,
            ),
            QueueNameOption(key="queue", fallback="customers"),
        ),
        queue="customers",
    ),
    _define(
        "customers.fetch_shoptet",
        "Noční import zákazníků ze Shoptetu",
        "Vyžádá snapshot zákazníků ze Shoptetu a spustí zpracování v pipeline.",
        Frequency.DAILY,
        "30 3 * * *",
        supports_shop=True,
        queue="customers",
    ),
    _define(
        "woocommerce.fetch_orders",
        "WooCommerce – import objednávek",
        "Pravidelně stáhne nové objednávky z napojených WooCommerce shopů.",
        Frequency.EVERY_FIFTEEN_MINUTES,
        "*/15 * * * *",
        supports_shop=True,
        options={"lookback_hours": 24, "per_page": 50, "max_pages": 50},
        rules=(
            lookback_hours("lookback_hours", 24),
            IntRangeOption(
                key="per_page",
                minimum=1,
                maximum=100,
                not_numeric_message="Počet záznamů na stránku zadej jako číslo.",
                range_message="Povolený rozsah je 1 až 100 objednávek na stránku.",
                fallback=50,
            ),
            IntRangeOption(
                key="max_pages",
                minimum=1,
                maximum=None,
                not_numeric_message="Zadej maximální počet stránek jako číslo.",
                range_message="Maximální počet stránek musí být alespoň 1.",
                fallback=50,
            ),
        ),
        queue="orders",
    ),
    _define(
        "inventory.stock_guard_sync",
        "Hlídač skladu – aktualizace zásob",
        "Každých 30 minut načte zásoby z Elogistu a uloží je pro rychlé porovnání se Shoptetem.",
        Frequency.CUSTOM,
        "*/30 * * * *",
        options={"chunk": 200},
        queue="inventory",
    ),
    _define(
        "inventory.generate_recommendations",
        "Předvýpočet doporučených produktů",
        "Každý den spočítá doporučené produkty a uloží je pro rychlé zobrazení v administraci.",
        Frequency.DAILY,
        "0 2 * * *",
        options={
            "product_limit": 10,
            "limit": 6,
            "chunk": 50,
            "exclude_keywords": [
                "tester", "bez víčka", "bez vicka", "bez krabičky", "bez krabicky", "vzorek", "sample",
            ],
        },
        queue="inventory",
    ),
    _define(
        "products.sync_all_shops",
        "Sync produktů ze VŠECH shopů",
        "Pravidelně stahuje produkty ze VŠECH shopů (CZ, SK, HU, RO, HR) pro získání cen, linků, názvů per locale.",
        Frequency.DAILY,
        "0 4 * * *",
        options={"shop_ids": []},   # empty = every shop
    ),
)

_REGISTRY: Dict[str, JobScheduleDefinition] = {d.job_type: d for d in _DEFINITIONS}


# ---------- Query ----------
def keys() -> List[str]:
    return list(_REGISTRY.keys())


def contains(job_type: str) -> bool:
    return job_type in _REGISTRY


def definition(job_type: str) -> JobScheduleDefinition:
    try:
        return _REGISTRY[job_type]
    except KeyError:
        raise UnknownJobType(job_type) from None


def catalog() -> List[Dict[str, Any]]:
    """Resolved definitions with human labels, in registration order (admin UI picker)."""
    return [_REGISTRY[key].to_dict() for key in keys()]


# ---------- Options ----------
def validate_options(job_type: str, raw_options: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    """
    Field-level errors for operator-supplied options; {} when valid.
    Blank values are not errors (sanitize fills defaults). Unknown job types have no rules.
    """
    options = raw_options or {}
    entry = _REGISTRY.get(job_type)
    if entry is None:
        return {}

    errors: Dict[str, str] = {}
    for rule in entry.rules:
        message = rule.validate(options)
        if message:
            errors[rule.key] = message
    return errors


def sanitize_options(job_type: str, raw_options: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
    """
    Normalized options ready to persist/run with; None when nothing is left.
      - rule-based job types: defaults + every ruled key clamped/defaulted (other keys are dropped)
      - job types without rules, and unknown ones: supplied options shallow-merged over defaults
    """
    options = dict(raw_options or {})
    entry = _REGISTRY.get(job_type)
    defaults: Dict[str, Any] = copy.deepcopy(dict(entry.default_options)) if entry else {}

    if entry is None or not entry.rules:
        normalized = {**defaults, **options}
    else:
        normalized = dict(defaults)
        for rule in entry.rules:
            normalized[rule.key] = rule.sanitize(options, defaults.get(rule.key))

    return normalized or None


def effective_options(job_type: str, stored: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Options a job actually runs with: sanitized stored overrides, never None."""
    return sanitize_options(job_type, stored) or {}

"""
Per-option rules for scheduled job options.

Each rule validates (returns an error message, never raises) and sanitizes
(always returns a usable value) one key of a schedule's ``options`` map.
A job type registers a tuple of rules in the catalog.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Protocol


_MISSING = object()


def _is_blank(value: Any) -> bool:
    return value is None or value == ""


def _as_number(value: Any) -> Optional[int]:
    """Loose numeric coercion: 12, 12.7, "12", " 12 " -> int; bools and other strings -> None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value == value and value not in (float("inf"), float("-inf")) else None
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(float(text)) if text else None
        except ValueError:
            return None
    return None


class OptionRule(Protocol):
    key: str

    def validate(self, options: Mapping[str, Any]) -> Optional[str]: ...

    def sanitize(self, options: Mapping[str, Any], default: Any) -> Any: ...


@dataclass(frozen=True, slots=True)
class IntRangeOption:
    """Integer option with an inclusive range; ``maximum=None`` means unbounded."""

    key: str
    minimum: int
    maximum: Optional[int]
    not_numeric_message: str
    range_message: str
    fallback: int

    def validate(self, options: Mapping[str, Any]) -> Optional[str]:
        value = options.get(self.key, _MISSING)
        if value is _MISSING or _is_blank(value):
            return None
        number = _as_number(value)
        if number is None:
            return self.not_numeric_message
        if number < self.minimum or (self.maximum is not None and number > self.maximum):
            return self.range_message
        return None

    def sanitize(self, options: Mapping[str, Any], default: Any) -> int:
        raw = options.get(self.key)
        if raw is None:
            raw = default if default is not None else self.fallback
        number = _as_number(raw)
        if number is None:
            number = _as_number(default)
            if number is None:
                number = self.fallback
        number = max(self.minimum, number)
        if self.maximum is not None:
            number = min(self.maximum, number)
        return number


@dataclass(frozen=True, slots=True)
class QueueNameOption:
    """Celery queue name; must be a non-empty string."""

    key: str
    fallback: str
    blank_message: str = "Zadej název fronty."
    type_message: str = "Název fronty musí být řetězec."

    def validate(self, options: Mapping[str, Any]) -> Optional[str]:
        if self.key not in options:
            return None
        value = options[self.key]
        if _is_blank(value):
            return self.blank_message
        if not isinstance(value, str):
            return self.type_message
        return None

    def sanitize(self, options: Mapping[str, Any], default: Any) -> str:
        raw = options.get(self.key)
        if raw is None:
            raw = default if default is not None else self.fallback
        queue = raw.strip() if isinstance(raw, str) else str(default or self.fallback)
        if not queue:
            queue = str(default or self.fallback)
        return queue


# ---------- shared rule instances ----------
HOURS_NOT_NUMERIC = "Zadej počet hodin jako číslo."
HOURS_RANGE = "Povolený rozsah je 1 až 720 hodin (max. 30 dní)."


def lookback_hours(key: str, fallback: int) -> IntRangeOption:
    return IntRangeOption(
        key=key,
        minimum=1,
        maximum=720,
        not_numeric_message=HOURS_NOT_NUMERIC,
        range_message=HOURS_RANGE,
        fallback=fallback,
    )

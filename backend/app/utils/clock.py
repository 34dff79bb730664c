from __future__ import annotations
from datetime import datetime, timezone
from typing import Callable, Optional

# injectable "now" for locks/windows/partitions; tests pass a lambda
Clock = Callable[[], datetime]


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive values (sqlite round-trips, legacy rows) are treated as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_iso(value: object) -> Optional[datetime]:
    """Parse an ISO-8601 string (with or without offset) into aware UTC; None when unparsable."""
    if isinstance(value, datetime):
        return ensure_utc(value)
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    # storefront APIs send "+0100" offsets and trailing "Z"
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    if len(text) >= 5 and text[-5] in "+-" and text[-4:].isdigit() and ":" not in text[-5:]:
        text = f"{text[:-2]}:{text[-2:]}"
    try:
        return ensure_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


def to_iso(value: datetime) -> str:
    return ensure_utc(value).isoformat()

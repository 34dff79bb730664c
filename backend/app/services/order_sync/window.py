"""
Time windows for the order streams.

  fetch (orders.change_time cursor):
    to   = now - clock skew
    from = cursor - overlap, or to - fallback hours when there is no usable cursor
    full_rescan_hours > 0 ignores the cursor
    from >= to  ->  from = to - min window

  status refresh: [to - lookback hours, to], no cursor
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from app.core.config import settings
from app.utils.clock import ensure_utc, parse_iso, to_iso


CHANGE_TIME_CURSOR = "orders.change_time"


@dataclass(frozen=True)
class SyncWindow:
    start: datetime
    end: datetime

    def as_meta(self) -> Dict[str, str]:
        return {"from": to_iso(self.start), "to": to_iso(self.end)}


def _int_option(options: Optional[Dict[str, Any]], key: str, default: int) -> int:
    value = (options or {}).get(key, default)
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _window_end(now: datetime) -> datetime:
    return ensure_utc(now) - timedelta(seconds=settings.SYNC_CLOCK_SKEW_SEC)


def _non_empty(start: datetime, end: datetime) -> SyncWindow:
    if start >= end:
        start = end - timedelta(seconds=settings.SYNC_MIN_WINDOW_SEC)
    return SyncWindow(start=start, end=end)


def build_fetch_window(cursor: Optional[str], options: Optional[Dict[str, Any]], now: datetime) -> SyncWindow:
    end = _window_end(now)
    fallback_hours = max(1, _int_option(options, "fallback_lookback_hours", 24))
    full_rescan_hours = max(0, _int_option(options, "full_rescan_hours", 0))

    if full_rescan_hours > 0:
        return _non_empty(end - timedelta(hours=full_rescan_hours), end)

    cursor_at = parse_iso(cursor)
    if cursor_at is not None:
        start = cursor_at - timedelta(seconds=settings.SYNC_CURSOR_OVERLAP_SEC)
    else:
        start = end - timedelta(hours=fallback_hours)
    return _non_empty(start, end)


def build_status_window(options: Optional[Dict[str, Any]], now: datetime, default_hours: int = 48) -> SyncWindow:
    lookback = max(1, min(720, _int_option(options, "lookback_hours", default_hours)))
    end = _window_end(now)
    return _non_empty(end - timedelta(hours=lookback), end)


def next_cursor(previous: Optional[str], last_change_time: Optional[str], window: SyncWindow) -> str:
    """
    The stored cursor never moves backwards: max(previous, last change seen or window end).
    """
    candidate = parse_iso(last_change_time) or window.end
    previous_at = parse_iso(previous)
    if previous_at is not None and previous_at > candidate:
        return to_iso(previous_at)
    return to_iso(candidate)

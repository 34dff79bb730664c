from __future__ import annotations

import random
from typing import Optional


def calc_backoff_seconds(
    attempt: int,
    base_seconds: float = 2.0,
    max_seconds: float = 60.0,
    jitter_ratio: float = 0.25,
    rng: Optional[random.Random] = None,
) -> float:
    """
    Exponential backoff with jitter: 2s, 4s, 8s ... capped at max_seconds, plus 0~25% jitter.
    attempt: 1-based number of the attempt that just failed
    """
    attempt = max(1, attempt)
    delay = min(base_seconds * (2 ** (attempt - 1)), max_seconds)
    jitter = (rng or random).uniform(0, jitter_ratio * delay) if jitter_ratio > 0 else 0.0
    return delay + jitter


def retry_after_seconds(value: Optional[str], max_seconds: float = 60.0) -> Optional[float]:
    """Numeric Retry-After header in seconds (HTTP-date form is ignored)."""
    if not value:
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return None
    if seconds < 0:
        return None
    return min(seconds, max_seconds)

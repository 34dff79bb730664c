"""
Job lock exceptions.
"""


class LockError(Exception):
    """Base for lock store errors."""


class LockNotAcquired(LockError):
    """Another holder owns an unexpired lock; the caller should skip this run."""

    def __init__(self, lock_key: str) -> None:
        super().__init__(f"lock {lock_key!r} is held by another run")
        self.lock_key = lock_key


class LockStoreUnavailable(LockError):
    """Lock backend misconfigured or unreachable."""

"""
Job lock manager: at most one running instance per lock key.

A scheduled job that finds its lock held simply skips; the next tick catches up.
Locks carry a TTL so a killed worker's lock frees itself without a heartbeat.
"""

from __future__ import annotations
import hashlib
import logging
import uuid
from contextlib import contextmanager
from datetime import timedelta
from typing import Dict, Iterable, Iterator, Optional

from app.core.config import settings
from app.services.locking.errors import LockNotAcquired
from app.services.locking.store import LockStore, build_lock_store
from app.utils.clock import Clock, now_utc

logger = logging.getLogger(__name__)


def lock_key_for(job_name: str) -> str:
    """Default per-job key: job-lock:{job name}."""
    return f"{settings.LOCK_KEY_PREFIX}:{job_name}"


def batch_lock_key(job_name: str, keys: Iterable[object]) -> str:
    """
    Per-batch key: job-lock:{job name}:{md5 of the sorted, de-duplicated keys}.
    Same set of entities in any order -> same key (serialized); other batches -> different keys.
    """
    joined = ",".join(sorted({str(k) for k in keys}))
    digest = hashlib.md5(joined.encode("utf-8")).hexdigest()
    return f"{lock_key_for(job_name)}:{digest}"


class JobLockManager:

    def __init__(
        self,
        store: Optional[LockStore] = None,
        clock: Clock = now_utc,
        default_ttl: Optional[int] = None,
    ) -> None:
        self.store = store if store is not None else build_lock_store()
        self.clock = clock
        self.default_ttl = int(default_ttl or settings.LOCK_DEFAULT_TTL_SEC)
        # owner token per key held by this manager
        self._owners: Dict[str, str] = {}

    # ---------- Public ----------
    def acquire(self, lock_key: str, ttl: Optional[int] = None) -> bool:
        ttl_sec = int(ttl or self.default_ttl)
        owner = uuid.uuid4().hex
        now = self.clock()
        acquired = self.store.try_acquire(lock_key, owner, now, now + timedelta(seconds=ttl_sec))

        if acquired:
            self._owners[lock_key] = owner
            logger.debug("Job lock acquired lock_key=%s ttl=%ss", lock_key, ttl_sec)
        else:
            logger.info("Job is already running, skipping lock_key=%s", lock_key)
        return acquired

    def release(self, lock_key: str) -> None:
        """Idempotent: releasing a lock this manager does not hold is a no-op."""
        owner = self._owners.pop(lock_key, None)
        if owner is None:
            return
        released = self.store.release(lock_key, owner)
        if released:
            logger.debug("Job lock released lock_key=%s", lock_key)
        else:
            # expired and taken over (or reaped) while we were running
            logger.warning("Job lock was no longer held at release lock_key=%s", lock_key)

    def is_held(self, lock_key: str) -> bool:
        return lock_key in self._owners

    def purge_expired(self) -> int:
        """Reap expired locks left behind by crashed holders (batch keys are never reused)."""
        purged = self.store.purge_expired(self.clock())
        if purged:
            logger.info("Purged expired job locks count=%d", purged)
        return purged

    @contextmanager
    def held(self, lock_key: str, ttl: Optional[int] = None) -> Iterator[bool]:
        """
        with locks.held(key, ttl) as acquired:
            if not acquired: return ...
        The lock is released on exit, including on exceptions.
        """
        acquired = self.acquire(lock_key, ttl)
        try:
            yield acquired
        finally:
            if acquired:
                self.release(lock_key)

    @contextmanager
    def hold_or_raise(self, lock_key: str, ttl: Optional[int] = None) -> Iterator[None]:
        if not self.acquire(lock_key, ttl):
            raise LockNotAcquired(lock_key)
        try:
            yield
        finally:
            self.release(lock_key)


_default_manager: Optional[JobLockManager] = None


def get_lock_manager() -> JobLockManager:
    """Process-wide manager over the configured store (tasks monkeypatch this in tests)."""
    global _default_manager
    if _default_manager is None:
        _default_manager = JobLockManager()
    return _default_manager

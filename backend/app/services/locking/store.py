"""
Lock stores: one atomic conditional write ("take the key if nobody holds it unexpired")
plus an owner-checked delete.

  - SqlLockStore:      job_locks table, INSERT .. ON CONFLICT DO UPDATE .. WHERE expired
  - RedisLockStore:    SET NX PX + Lua compare-and-delete
  - InMemoryLockStore: process-local dict, for tests and single-process runs
"""

from __future__ import annotations
import logging
import threading
from datetime import datetime
from typing import Dict, Optional, Protocol, Tuple

import redis
from sqlalchemy import delete
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import settings
from app.db.model.job_lock import JobLock
from app.db.upsert import dialect_insert
from app.services.locking.errors import LockStoreUnavailable
from app.utils.clock import ensure_utc

logger = logging.getLogger(__name__)


class LockStore(Protocol):
    def try_acquire(self, lock_key: str, owner: str, now: datetime, expires_at: datetime) -> bool:
        """Atomically take lock_key unless an unexpired row exists. True = caller holds it."""
        ...

    def release(self, lock_key: str, owner: str) -> bool:
        """Delete the lock if owner still holds it. False when already gone/taken over."""
        ...

    def purge_expired(self, now: datetime) -> int:
        """Drop locks whose expires_at has passed; returns how many went."""
        ...


class SqlLockStore:
    """
    Shared lock table. Every call runs in its own short transaction, independent of the
    caller's session, so a job's rollback never drops or leaks its lock.
    """

    def __init__(self, session_factory: Optional[sessionmaker[Session]] = None) -> None:
        if session_factory is None:
            from app.db.session import SessionLocal
            session_factory = SessionLocal
        self._session_factory = session_factory

    def try_acquire(self, lock_key: str, owner: str, now: datetime, expires_at: datetime) -> bool:
        db = self._session_factory()
        try:
            ins = dialect_insert(db, JobLock).values(
                lock_key=lock_key,
                owner=owner,
                acquired_at=now,
                expires_at=expires_at,
            )
            # conflict + expired row -> take it over; conflict + live row -> no-op (rowcount 0)
            stmt = ins.on_conflict_do_update(
                index_elements=["lock_key"],
                set_={
                    "owner": ins.excluded.owner,
                    "acquired_at": ins.excluded.acquired_at,
                    "expires_at": ins.excluded.expires_at,
                },
                where=JobLock.expires_at <= now,
            )
            res = db.execute(stmt)
            db.commit()
            return int(res.rowcount or 0) == 1
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def release(self, lock_key: str, owner: str) -> bool:
        db = self._session_factory()
        try:
            res = db.execute(
                delete(JobLock).where(JobLock.lock_key == lock_key, JobLock.owner == owner)
            )
            db.commit()
            return bool(res.rowcount)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def purge_expired(self, now: datetime) -> int:
        """Reap rows of crashed holders; acquisition does not depend on it."""
        db = self._session_factory()
        try:
            res = db.execute(delete(JobLock).where(JobLock.expires_at <= now))
            db.commit()
            return int(res.rowcount or 0)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


# compare-and-delete: only the owner token may release
_RELEASE_LUA = """
if redis.call('get', KEYS[1]) == ARGV[1] then
  return redis.call('del', KEYS[1])
end
return 0
"""


class RedisLockStore:
    """Redis keys with native TTL; expiry needs no reaping."""

    def __init__(self, client: "redis.Redis", key_prefix: str = "") -> None:
        self.client = client
        self.key_prefix = key_prefix
        self._release = self.client.register_script(_RELEASE_LUA)

    @classmethod
    def from_settings(cls) -> "RedisLockStore":
        url = settings.REDIS_URL or settings.CELERY_BROKER_URL
        if not url:
            raise LockStoreUnavailable("LOCK_BACKEND=redis requires REDIS_URL or CELERY_BROKER_URL")
        client = redis.from_url(url, decode_responses=True)
        return cls(client, key_prefix=f"{settings.ENVIRONMENT}:")

    def _key(self, lock_key: str) -> str:
        return f"{self.key_prefix}{lock_key}"

    def try_acquire(self, lock_key: str, owner: str, now: datetime, expires_at: datetime) -> bool:
        ttl_ms = max(1, int((expires_at - now).total_seconds() * 1000))
        return bool(self.client.set(self._key(lock_key), owner, nx=True, px=ttl_ms))

    def release(self, lock_key: str, owner: str) -> bool:
        return bool(self._release(keys=[self._key(lock_key)], args=[owner]))

    def purge_expired(self, now: datetime) -> int:
        # PX expiry removes the keys server-side
        return 0


class InMemoryLockStore:
    def __init__(self) -> None:
        self._rows: Dict[str, Tuple[str, datetime]] = {}
        self._mutex = threading.Lock()

    def try_acquire(self, lock_key: str, owner: str, now: datetime, expires_at: datetime) -> bool:
        now = ensure_utc(now)
        with self._mutex:
            current = self._rows.get(lock_key)
            if current is not None and ensure_utc(current[1]) > now:
                return False
            self._rows[lock_key] = (owner, ensure_utc(expires_at))
            return True

    def release(self, lock_key: str, owner: str) -> bool:
        with self._mutex:
            current = self._rows.get(lock_key)
            if current is None or current[0] != owner:
                return False
            del self._rows[lock_key]
            return True

    def purge_expired(self, now: datetime) -> int:
        now = ensure_utc(now)
        with self._mutex:
            stale = [key for key, (_, expires_at) in self._rows.items() if expires_at <= now]
            for key in stale:
                del self._rows[key]
            return len(stale)

    def holder(self, lock_key: str) -> Optional[str]:
        with self._mutex:
            current = self._rows.get(lock_key)
            return current[0] if current else None


def build_lock_store() -> LockStore:
    backend = (settings.LOCK_BACKEND or "database").lower()
    if backend == "redis":
        return RedisLockStore.from_settings()
    if backend == "memory":
        return InMemoryLockStore()
    if backend == "database":
        return SqlLockStore()
    raise LockStoreUnavailable(f"unsupported LOCK_BACKEND={settings.LOCK_BACKEND!r}")

"""
Public surface of the job lock manager.
"""

from .errors import LockError, LockNotAcquired, LockStoreUnavailable
from .manager import JobLockManager, batch_lock_key, get_lock_manager, lock_key_for
from .store import InMemoryLockStore, LockStore, RedisLockStore, SqlLockStore, build_lock_store

__all__ = [
    "LockError", "LockNotAcquired", "LockStoreUnavailable",
    "JobLockManager", "batch_lock_key", "get_lock_manager", "lock_key_for",
    "InMemoryLockStore", "LockStore", "RedisLockStore", "SqlLockStore", "build_lock_store",
]

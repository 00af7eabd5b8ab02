"""Redis-backed task lock and pending-job markers for the Celery queue.

Celery task ids do not deduplicate, so two embedding tasks for the same
document could otherwise run side by side on different worker processes.
Holding ``lock:{topic}:{key}`` for the duration of a job serialises them
across every worker sharing the Redis server.
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Iterator

import redis
import structlog

logger = structlog.get_logger(logger_name=__name__)

_POLL_INTERVAL = 0.05


class TaskLock:
    """Distributed, TTL-bounded lock keyed by string.

    Parameters
    ----------
    client:
        A ``redis.Redis`` client created with ``decode_responses=True``.
    prefix:
        Namespace prepended to every lock key.
    """

    def __init__(self, client: redis.Redis, prefix: str = "docmind:lock:") -> None:
        self._redis = client
        self._prefix = prefix

    def _full_key(self, lock_key: str) -> str:
        return f"{self._prefix}{lock_key}"

    def acquire(
        self,
        lock_key: str,
        ttl_seconds: int = 600,
        task_id: str | None = None,
        wait: float = 0.0,
    ) -> bool:
        """Try to take the lock, polling for up to *wait* seconds.

        The TTL should exceed the longest job so a crashed worker cannot
        hold a key forever.  Returns ``True`` if the lock was acquired.
        """
        full_key = self._full_key(lock_key)
        value = task_id or "1"
        deadline = time.monotonic() + wait

        while True:
            if self._redis.set(full_key, value, nx=True, ex=ttl_seconds):
                return True
            if time.monotonic() >= deadline:
                logger.debug(
                    "task_lock_busy",
                    lock_key=lock_key,
                    holder=self._redis.get(full_key),
                )
                return False
            time.sleep(_POLL_INTERVAL)

    def release(self, lock_key: str, task_id: str | None = None) -> bool:
        """Release the lock; with *task_id*, only if that task holds it."""
        full_key = self._full_key(lock_key)
        if task_id is not None:
            holder = self._redis.get(full_key)
            if holder != task_id:
                logger.warning("task_lock_not_held", lock_key=lock_key, task_id=task_id, holder=holder)
                return False
        return bool(self._redis.delete(full_key))

    def is_locked(self, lock_key: str) -> bool:
        return self._redis.exists(self._full_key(lock_key)) > 0

    def get_ttl(self, lock_key: str) -> int:
        """Remaining lifetime of the lock in seconds (0 if absent)."""
        return max(0, self._redis.ttl(self._full_key(lock_key)))

    @contextmanager
    def lock(
        self,
        lock_key: str,
        ttl_seconds: int = 600,
        task_id: str | None = None,
        wait: float = 0.0,
    ) -> Iterator[bool]:
        """Context manager yielding whether the lock was acquired."""
        acquired = self.acquire(lock_key, ttl_seconds, task_id, wait)
        try:
            yield acquired
        finally:
            if acquired:
                self.release(lock_key, task_id)

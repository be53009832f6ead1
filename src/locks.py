"""Per-entity mutual exclusion for check-then-act sequences.

The acceptance orchestrator and the identity reconciler both read state,
decide, then write. Holding a keyed lock around that sequence serialises
duplicate deliveries for the same entity.

- LocalLocks: one threading.Lock per key, valid within a single process
- RedisLocks: redis-py Lock (SET NX with expiry), valid across processes
- Lock not acquired within the wait bound -> LockTimeout (caller decides)
- Lock backend unreachable -> LockUnavailable (caller decides)
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Iterator

import redis

logger = logging.getLogger(__name__)

_KEY_PREFIX = "lock"
_DEFAULT_WAIT_SECONDS = 10.0
_DEFAULT_EXPIRY_SECONDS = 30


class LockTimeout(Exception):
    """The lock for a key could not be acquired in time."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"timed out waiting for lock {key}")


class LockUnavailable(Exception):
    """The lock backend could not be reached."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"lock backend unavailable for {key}")


class LocalLocks:
    """In-process keyed locks.

    Entries are reference-counted and dropped when the last holder or
    waiter for a key leaves, so the map only holds keys in use.
    """

    def __init__(self, wait_seconds: float = _DEFAULT_WAIT_SECONDS):
        self._wait_seconds = wait_seconds
        self._guard = threading.Lock()
        self._locks: dict[str, tuple[threading.Lock, int]] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        lock = self._checkout(key)
        try:
            if not lock.acquire(timeout=self._wait_seconds):
                raise LockTimeout(key)
            try:
                yield
            finally:
                lock.release()
        finally:
            self._checkin(key)

    def _checkout(self, key: str) -> threading.Lock:
        with self._guard:
            lock, users = self._locks.get(key, (None, 0))
            if lock is None:
                lock = threading.Lock()
            self._locks[key] = (lock, users + 1)
            return lock

    def _checkin(self, key: str) -> None:
        with self._guard:
            lock, users = self._locks[key]
            if users <= 1:
                del self._locks[key]
            else:
                self._locks[key] = (lock, users - 1)


class RedisLocks:
    """Redis-backed keyed locks shared by every worker process."""

    def __init__(
        self,
        client: redis.Redis,
        wait_seconds: float = _DEFAULT_WAIT_SECONDS,
        expiry_seconds: int = _DEFAULT_EXPIRY_SECONDS,
    ):
        self._redis = client
        self._wait_seconds = wait_seconds
        self._expiry_seconds = expiry_seconds

    @classmethod
    def from_url(cls, redis_url: str) -> RedisLocks:
        return cls(redis.from_url(redis_url))

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        lock = self._redis.lock(
            f"{_KEY_PREFIX}:{key}",
            timeout=self._expiry_seconds,
            blocking_timeout=self._wait_seconds,
        )
        try:
            acquired = lock.acquire()
        except redis.exceptions.RedisError as e:
            logger.error("Lock backend error acquiring %s: %s", key, e)
            raise LockUnavailable(key) from e
        if not acquired:
            raise LockTimeout(key)
        try:
            yield
        finally:
            try:
                lock.release()
            except redis.exceptions.LockError:
                # Expired while held; another worker may already own it.
                logger.warning("Lock %s expired before release", key)
            except redis.exceptions.RedisError as e:
                logger.error("Lock backend error releasing %s: %s", key, e)

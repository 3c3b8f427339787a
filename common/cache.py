# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Key value caches with a time to live per entry.

The challenge store, the trust cache and the revocation cache only talk to the
`TTLCache` protocol. Which backend sits behind it is a deployment decision:

* `InMemoryTTLCache` keeps the entries in the process. Expiry is decided with the
  injected clock, expired entries are dropped on access and by the periodic sweep.
* `RedisTTLCache` stores JSON encoded values in redis (or fakeredis) and leaves the
  expiry to the server, so several processes share one view.

Values have to be JSON compatible for both backends to behave the same.
"""

import contextlib
import dataclasses
import json
import logging
import threading
from typing import Any, Iterable, Protocol

import redis

from common.clock import Clock, SystemClock
from common import config as conf

_logger = logging.getLogger(__name__)


class TTLCache(Protocol):
    def get(self, key: str) -> Any | None:
        """Value stored under key or None if absent or expired."""
        ...

    def put(self, key: str, value: Any, ttl: float) -> None:
        """Store the value for ttl seconds, replacing any existing entry."""
        ...

    def put_if_absent(self, key: str, value: Any, ttl: float) -> bool:
        """
        Atomically store the value only if there is no live entry for the key.
        Returns True for exactly one of any number of concurrent callers.
        """
        ...

    def evict(self, key: str) -> None:
        ...

    def sweep(self) -> int:
        """Removes expired entries, returns how many were removed."""
        ...

    def size(self) -> int:
        """Number of live entries."""
        ...


@dataclasses.dataclass
class _Entry:
    value: Any
    expires_at: float


class InMemoryTTLCache:
    """
    Process local cache.
    Every access to an entry is serialized on a lock for that key only,
    operations on unrelated keys never wait on each other.
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()
        self._entries: dict[str, _Entry] = {}
        # key -> [lock, number of holders & waiters]
        self._locks: dict[str, list] = {}
        self._locks_guard = threading.Lock()

    @contextlib.contextmanager
    def _key_lock(self, key: str):
        with self._locks_guard:
            lock_entry = self._locks.setdefault(key, [threading.Lock(), 0])
            lock_entry[1] += 1
        try:
            with lock_entry[0]:
                yield
        finally:
            with self._locks_guard:
                lock_entry[1] -= 1
                if lock_entry[1] == 0:
                    del self._locks[key]

    def _live_entry(self, key: str) -> _Entry | None:
        """Must be called while holding the key lock."""
        entry = self._entries.get(key)
        if entry is not None and entry.expires_at <= self._clock.now():
            del self._entries[key]
            return None
        return entry

    def get(self, key: str) -> Any | None:
        with self._key_lock(key):
            entry = self._live_entry(key)
            return entry.value if entry else None

    def put(self, key: str, value: Any, ttl: float) -> None:
        with self._key_lock(key):
            self._entries[key] = _Entry(value, self._clock.now() + ttl)

    def put_if_absent(self, key: str, value: Any, ttl: float) -> bool:
        with self._key_lock(key):
            if self._live_entry(key) is not None:
                return False
            self._entries[key] = _Entry(value, self._clock.now() + ttl)
            return True

    def evict(self, key: str) -> None:
        with self._key_lock(key):
            self._entries.pop(key, None)

    def sweep(self) -> int:
        removed = 0
        now = self._clock.now()
        for key, entry in list(self._entries.items()):
            if entry.expires_at > now:
                continue
            with self._key_lock(key):
                if key in self._entries and self._live_entry(key) is None:
                    removed += 1
        return removed

    def size(self) -> int:
        now = self._clock.now()
        return sum(1 for entry in list(self._entries.values()) if entry.expires_at > now)


class RedisTTLCache:
    """
    Redis backed cache, all keys are prefixed with the namespace.
    Compare and set uses SET NX so it holds across processes.
    """

    def __init__(self, client: redis.Redis, namespace: str) -> None:
        self._client = client
        self._namespace = namespace

    def _key(self, key: str) -> str:
        return f'{self._namespace}:{key}'

    @staticmethod
    def _ttl_ms(ttl: float) -> int:
        return max(1, int(ttl * 1000))

    def get(self, key: str) -> Any | None:
        raw = self._client.get(self._key(key))
        if raw is None:
            return None
        return json.loads(raw)

    def put(self, key: str, value: Any, ttl: float) -> None:
        self._client.set(self._key(key), json.dumps(value), px=self._ttl_ms(ttl))

    def put_if_absent(self, key: str, value: Any, ttl: float) -> bool:
        return bool(self._client.set(self._key(key), json.dumps(value), px=self._ttl_ms(ttl), nx=True))

    def evict(self, key: str) -> None:
        self._client.delete(self._key(key))

    def sweep(self) -> int:
        # Redis expires keys on its own
        return 0

    def size(self) -> int:
        return sum(1 for _ in self._client.scan_iter(match=self._key("*")))


def create_cache(config: conf.Config, namespace: str, clock: Clock | None = None, client: redis.Redis | None = None) -> TTLCache:
    """Creates the cache configured with CACHE_BACKEND for the given namespace."""
    match config.cache_backend:
        case "memory":
            return InMemoryTTLCache(clock)
        case "redis":
            return RedisTTLCache(client or redis.Redis.from_url(config.redis_url), namespace)
        case _:
            raise ValueError(f"Unknown cache backend {config.cache_backend!r}, expected 'memory' or 'redis'")


@contextlib.contextmanager
def sweep_lifespan(caches: Iterable[TTLCache], interval: float) -> contextlib.AbstractContextManager:
    """
    Lifespan managing a periodic eviction sweep over the given caches.
    The sweep runs on its own timer thread and never on a request worker.
    """
    timer = CacheSweepTimer(list(caches), interval)
    timer.set_timer()
    yield
    timer.stop()


class CacheSweepTimer:
    """Timer, once started will run every interval, rescheduling itself afterwards"""

    _timer: threading.Timer = None

    def __init__(self, caches: list[TTLCache], interval: float) -> None:
        self._caches = caches
        self._interval = interval
        self._stopped = False

    def _sweep(self) -> None:
        try:
            removed = sum(cache.sweep() for cache in self._caches)
            if removed:
                _logger.info(f"Evicted {removed} expired cache entries")
        except Exception:
            # A failing sweep must not end the timer chain
            _logger.exception("Cache sweep failed")
        if not self._stopped:
            self.set_timer()

    def set_timer(self) -> None:
        """Schedules the next sweep. Cancels other instances of the timer"""
        self.cancel_timer()
        self._timer = threading.Timer(self._interval, self._sweep)
        self._timer.daemon = True
        self._timer.start()

    def cancel_timer(self) -> None:
        """Cancels the pending sweep."""
        if self._timer:
            self._timer.cancel()

    def stop(self) -> None:
        """Cancels the pending sweep and prevents rescheduling."""
        self._stopped = True
        self.cancel_timer()

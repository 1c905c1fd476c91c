"""Lockout for repeated invalid session-code lookups.

Failures are counted per client identity (remote address). Once a client
reaches the threshold it is locked until the lockout duration has passed
since its last failure. Only the session-code lookup is guarded; scans go
through the presence pipeline.

Two stores sit behind the same interface: a process-local dict for single
instance deployments and redis for deployments with several workers.
"""
import logging
import math
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

import redis

from attendkaro.utils.clock import utcnow
from attendkaro.utils.exceptions import TransientError

logger = logging.getLogger(__name__)


@dataclass
class LockoutEntry:
    count: int
    last_failure_at: datetime


class MemoryLockoutStore:
    """Process-local store guarded by a lock."""

    def __init__(self):
        self._entries: Dict[str, LockoutEntry] = {}
        self._lock = threading.Lock()

    def get(self, client_id: str) -> Optional[LockoutEntry]:
        with self._lock:
            entry = self._entries.get(client_id)
            return LockoutEntry(entry.count, entry.last_failure_at) if entry else None

    def increment(self, client_id: str, now: datetime, stale_before: datetime) -> LockoutEntry:
        with self._lock:
            entry = self._entries.get(client_id)
            if entry is None or entry.last_failure_at <= stale_before:
                entry = LockoutEntry(0, now)
                self._entries[client_id] = entry
            entry.count += 1
            entry.last_failure_at = now
            return LockoutEntry(entry.count, entry.last_failure_at)

    def delete(self, client_id: str) -> None:
        with self._lock:
            self._entries.pop(client_id, None)

    def sweep(self, older_than: datetime) -> int:
        with self._lock:
            stale = [key for key, entry in self._entries.items()
                     if entry.last_failure_at < older_than]
            for key in stale:
                del self._entries[key]
            return len(stale)

    def __len__(self) -> int:
        return len(self._entries)


class RedisLockoutStore:
    """Shared store: one hash per client, expiring after the retention window."""

    def __init__(self, client: 'redis.Redis', retention: timedelta, prefix: str = 'lockout:'):
        self._redis = client
        self._retention_seconds = max(1, int(retention.total_seconds()))
        self._prefix = prefix

    @classmethod
    def from_url(cls, url: str, retention: timedelta,
                 socket_timeout: float = 2.0) -> 'RedisLockoutStore':
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout
        )
        return cls(client, retention)

    def _key(self, client_id: str) -> str:
        return f'{self._prefix}{client_id}'

    def get(self, client_id: str) -> Optional[LockoutEntry]:
        data = self._redis.hgetall(self._key(client_id))
        if not data:
            return None
        return LockoutEntry(
            count=int(data.get('count', 0)),
            last_failure_at=datetime.fromisoformat(data['last'])
            if 'last' in data else datetime.min
        )

    def increment(self, client_id: str, now: datetime, stale_before: datetime) -> LockoutEntry:
        key = self._key(client_id)
        current = self.get(client_id)
        pipe = self._redis.pipeline()
        if current is not None and current.last_failure_at <= stale_before:
            pipe.delete(key)
        pipe.hincrby(key, 'count', 1)
        pipe.hset(key, 'last', now.isoformat())
        pipe.expire(key, self._retention_seconds)
        results = pipe.execute()
        count = results[-3]
        return LockoutEntry(int(count), now)

    def delete(self, client_id: str) -> None:
        self._redis.delete(self._key(client_id))

    def sweep(self, older_than: datetime) -> int:
        # Keys expire on their own
        return 0


class LockoutTracker:
    """Sliding-window lockout over a swappable store.

    Works standalone or as a Flask extension via ``init_app``.
    """

    def __init__(self, app=None, threshold: int = 5, duration_seconds: int = 300,
                 store=None, clock: Callable[[], datetime] = utcnow):
        self.threshold = threshold
        self.duration = timedelta(seconds=duration_seconds)
        self.store = store if store is not None else MemoryLockoutStore()
        self._clock = clock
        self._sweeper: Optional[threading.Thread] = None
        self._stop = threading.Event()
        if app is not None:
            self.init_app(app)

    def init_app(self, app) -> None:
        self.threshold = app.config.get('LOCKOUT_THRESHOLD', 5)
        self.duration = timedelta(seconds=app.config.get('LOCKOUT_DURATION_SECONDS', 300))

        backend = app.config.get('LOCKOUT_BACKEND', 'memory')
        if backend == 'redis':
            url = app.config.get('REDIS_URL')
            if not url:
                raise RuntimeError('LOCKOUT_BACKEND=redis requires REDIS_URL')
            self.store = RedisLockoutStore.from_url(
                url, self.duration * 2,
                socket_timeout=app.config.get('REDIS_SOCKET_TIMEOUT_SECONDS', 2.0)
            )
        else:
            self.store = MemoryLockoutStore()

        app.extensions['lockout'] = self

        if app.config.get('LOCKOUT_SWEEPER_ENABLED', True) and isinstance(self.store, MemoryLockoutStore):
            self.start_sweeper(app.config.get('LOCKOUT_SWEEP_INTERVAL_SECONDS', 600))

    def _is_expired(self, entry: LockoutEntry, now: datetime) -> bool:
        return now - entry.last_failure_at >= self.duration

    def _store_call(self, operation, *args):
        try:
            return operation(*args)
        except redis.RedisError as exc:
            logger.warning("Lockout store unavailable: %s", exc)
            raise TransientError() from exc

    def is_locked(self, client_id: str) -> bool:
        return self.retry_after(client_id) > 0

    def retry_after(self, client_id: str) -> int:
        """Seconds until ``client_id`` may look up codes again; 0 if not locked."""
        entry = self._store_call(self.store.get, client_id)
        if entry is None:
            return 0
        now = self._clock()
        if self._is_expired(entry, now):
            self._store_call(self.store.delete, client_id)
            return 0
        if entry.count < self.threshold:
            return 0
        remaining = (self.duration - (now - entry.last_failure_at)).total_seconds()
        return max(1, math.ceil(remaining))

    def record_failure(self, client_id: str) -> int:
        """Count a failed lookup; returns the failure count in the window."""
        now = self._clock()
        entry = self._store_call(self.store.increment, client_id, now, now - self.duration)
        if entry.count == self.threshold:
            logger.warning("Session-code lookups locked for %s after %d failures",
                           client_id, entry.count)
        return entry.count

    def clear(self, client_id: str) -> None:
        self._store_call(self.store.delete, client_id)

    def sweep(self) -> int:
        """Evict entries idle for more than twice the lockout duration."""
        evicted = self.store.sweep(self._clock() - self.duration * 2)
        if evicted:
            logger.info("Evicted %d stale lockout entries", evicted)
        return evicted

    def start_sweeper(self, interval_seconds: float) -> None:
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        self._stop.clear()

        def worker():
            while not self._stop.wait(interval_seconds):
                try:
                    self.sweep()
                except redis.RedisError:
                    logger.exception("Lockout sweep failed")

        self._sweeper = threading.Thread(target=worker, name='lockout-sweeper', daemon=True)
        self._sweeper.start()

    def stop_sweeper(self) -> None:
        self._stop.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=1)
        self._sweeper = None

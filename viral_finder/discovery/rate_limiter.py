"""
Sliding-window rate limiter keyed by client.

Each key keeps the millisecond timestamps of its admitted requests. Entries
older than the window are ignored on every check and compacted on write.
"""
import logging
import threading
import time
from collections import OrderedDict
from contextlib import contextmanager
from typing import Callable, Optional, Protocol

logger = logging.getLogger(__name__)

ANONYMOUS_KEY = "anonymous"
DEFAULT_MAX_REQUESTS = 50
DEFAULT_WINDOW_MS = 3_600_000


def _now_ms() -> float:
    return time.time() * 1000


def normalize_key(key: Optional[str]) -> str:
    """Coerce a missing or blank key so unidentified callers share one bucket."""
    if key is None:
        return ANONYMOUS_KEY
    key = key.strip()
    return key or ANONYMOUS_KEY


class RateLimitStore(Protocol):
    def get(self, key: str) -> Optional[list[float]]: ...

    def set(self, key: str, timestamps: list[float]) -> None: ...

    def delete(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...

    def __len__(self) -> int: ...


class InMemoryRateLimitStore:
    """Process-local store, evicting the least recently used key past max_keys."""

    def __init__(self, max_keys: Optional[int] = None):
        self.max_keys = max_keys
        self._data: OrderedDict[str, list[float]] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[list[float]]:
        with self._lock:
            timestamps = self._data.get(key)
            if timestamps is not None:
                self._data.move_to_end(key)
            return timestamps

    def set(self, key: str, timestamps: list[float]) -> None:
        with self._lock:
            self._data[key] = timestamps
            self._data.move_to_end(key)
            if self.max_keys is not None:
                while len(self._data) > self.max_keys:
                    evicted, _ = self._data.popitem(last=False)
                    logger.debug("Evicted rate limit key %s", evicted)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._data.keys())

    def __len__(self) -> int:
        return len(self._data)


class RateLimiter:
    """Admit at most max_requests per key within any trailing window_ms.

    When the store is bounded (it exposes ``max_keys``) and full, a new key
    first triggers a prune of idle keys. If every stored key is still live the
    new key is denied rather than evicting another key's history.
    """

    def __init__(
        self,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        window_ms: int = DEFAULT_WINDOW_MS,
        store: Optional[RateLimitStore] = None,
        clock: Callable[[], float] = _now_ms,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_ms <= 0:
            raise ValueError("window_ms must be positive")
        self.max_requests = max_requests
        self.window_ms = window_ms
        self._store = store if store is not None else InMemoryRateLimitStore()
        self._clock = clock
        # key -> [lock, holders]; only keys with a check in flight have an entry
        self._locks: dict[str, list] = {}
        self._guard = threading.Lock()
        self._next_prune_at = 0.0

    @contextmanager
    def _locked(self, key: str):
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.Lock(), 0]
            entry[1] += 1
        lock = entry[0]
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def _valid(self, key: str, now: float) -> list[float]:
        timestamps = self._store.get(key) or []
        return [ts for ts in timestamps if now - ts < self.window_ms]

    def _has_room(self, now: float) -> bool:
        max_keys = getattr(self._store, "max_keys", None)
        if max_keys is None or len(self._store) < max_keys:
            return True
        # no stored key can go idle before _next_prune_at
        if now >= self._next_prune_at:
            self._prune(now)
        return len(self._store) < max_keys

    def check_limit(self, key: Optional[str]) -> bool:
        """Record and admit the request if the key still has quota.

        A denied request is not recorded, so it neither consumes quota nor
        extends the window.
        """
        key = normalize_key(key)
        with self._locked(key):
            now = self._clock()
            stored = self._store.get(key)
            if stored is None and not self._has_room(now):
                logger.warning("Rate limit store full, denying new key %s", key)
                return False
            valid = [ts for ts in (stored or []) if now - ts < self.window_ms]
            if len(valid) >= self.max_requests:
                self._store.set(key, valid)
                logger.info("Rate limit exceeded for %s", key)
                return False
            valid.append(now)
            self._store.set(key, valid)
            return True

    def remaining(self, key: Optional[str]) -> int:
        key = normalize_key(key)
        return max(0, self.max_requests - len(self._valid(key, self._clock())))

    def reset_time(self, key: Optional[str]) -> float:
        """Millisecond timestamp when the oldest valid entry expires, or 0."""
        key = normalize_key(key)
        valid = self._valid(key, self._clock())
        if not valid:
            return 0
        return min(valid) + self.window_ms

    def prune(self) -> int:
        """Drop keys with no valid timestamps. Returns the number dropped."""
        return self._prune(self._clock())

    def _prune(self, now: float) -> int:
        dropped = 0
        next_idle = None
        # holding the guard keeps idle keys from starting a check mid-pass
        with self._guard:
            for key in self._store.keys():
                valid = self._valid(key, now)
                if valid:
                    idle_at = max(valid) + self.window_ms
                    next_idle = idle_at if next_idle is None else min(next_idle, idle_at)
                elif key in self._locks:
                    next_idle = now
                else:
                    self._store.delete(key)
                    dropped += 1
            self._next_prune_at = now if next_idle is None else next_idle
        if dropped:
            logger.debug("Pruned %d idle rate limit keys", dropped)
        return dropped

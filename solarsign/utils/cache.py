"""
In-memory TTL cache and in-flight registry.
For multi-instance deployments, replace with Redis/Memorystore.
"""
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Generic, Optional, Tuple, TypeVar

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    """Single cached value with absolute expiry (monotonic seconds)."""
    value: T
    expires_at: float


class TTLCache(Generic[T]):
    """
    Thread-safe key/value cache with per-entry time-to-live.

    Expired entries are evicted lazily on access and periodically on write.
    """

    def __init__(self, ttl_seconds: float = 3600, max_entries: int = 1000):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._entries: Dict[str, CacheEntry[T]] = {}
        self._lock = threading.Lock()

    def _evict_expired(self, now: float) -> None:
        expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
        for key in expired:
            del self._entries[key]

    def set(self, key: str, value: T, ttl_seconds: Optional[float] = None) -> None:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        now = time.monotonic()
        with self._lock:
            self._evict_expired(now)
            if key not in self._entries and len(self._entries) >= self.max_entries:
                # Drop the entry closest to expiry
                oldest = min(self._entries, key=lambda k: self._entries[k].expires_at)
                del self._entries[oldest]
            self._entries[key] = CacheEntry(value=value, expires_at=now + ttl)

    def get(self, key: str) -> Optional[T]:
        now = time.monotonic()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at <= now:
                del self._entries[key]
                return None
            return entry.value

    def pop(self, key: str) -> Optional[T]:
        now = time.monotonic()
        with self._lock:
            entry = self._entries.pop(key, None)
            if entry is None or entry.expires_at <= now:
                return None
            return entry.value

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        now = time.monotonic()
        with self._lock:
            self._evict_expired(now)
            return len(self._entries)


class InFlightRegistry:
    """
    Tracks operations currently running per key.

    acquire() returns False when the key is already held, so a second
    concurrent workflow for the same (opportunity, document kind) is rejected
    instead of racing the first one.
    """

    def __init__(self):
        self._active: Dict[Tuple[str, str], float] = {}
        self._lock = threading.Lock()

    def acquire(self, opportunity_id: str, kind: str) -> bool:
        key = (opportunity_id, kind)
        with self._lock:
            if key in self._active:
                return False
            self._active[key] = time.time()
            return True

    def release(self, opportunity_id: str, kind: str) -> None:
        with self._lock:
            self._active.pop((opportunity_id, kind), None)

    def is_active(self, opportunity_id: str, kind: str) -> bool:
        with self._lock:
            return (opportunity_id, kind) in self._active

    def active_count(self) -> int:
        with self._lock:
            return len(self._active)


# Global instances
_template_cache: Optional[TTLCache[Any]] = None
_in_flight: Optional[InFlightRegistry] = None


def get_template_cache(ttl_seconds: float = 3600) -> TTLCache[Any]:
    """Get or create the prepared-template cache."""
    global _template_cache
    if _template_cache is None:
        _template_cache = TTLCache(ttl_seconds=ttl_seconds)
    return _template_cache


def get_in_flight_registry() -> InFlightRegistry:
    """Get or create the in-flight workflow registry."""
    global _in_flight
    if _in_flight is None:
        _in_flight = InFlightRegistry()
    return _in_flight

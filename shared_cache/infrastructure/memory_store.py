from __future__ import annotations

import logging
import time
from collections import OrderedDict
from threading import Lock
from typing import Any, Callable, Dict, Optional, Tuple

from shared_cache.domain.validation import is_valid_key, validate_key, validate_ttl
from shared_cache.domain.values import decode_value, encode_value, is_plain_value

from .config import Settings

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITEMS = 1000
DEFAULT_MAX_MEMORY_MB = 100


class StoredEntry:
    def __init__(self, payload: bytes, ttl: int = 0, created_at: Optional[float] = None):
        self.payload = payload
        self.ttl = ttl if ttl > 0 else None
        self.created_at = created_at if created_at is not None else time.monotonic()
        self.size_bytes = len(payload)


class MemoryStore:
    """In-process key/value store shared by every test in the interpreter.

    Values are kept pickled, so what a test reads back is a copy of what it
    stored. Expired entries are dropped lazily on access; the least recently
    used entries are evicted when either bound is reached.
    """

    def __init__(
        self,
        max_items: Optional[int] = None,
        max_memory_mb: Optional[int] = None,
        max_value_bytes: Optional[int] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        resolved_max_items = DEFAULT_MAX_ITEMS if max_items is None else max_items
        if resolved_max_items < 1:
            raise ValueError(f"max_items must be >= 1, got {resolved_max_items}")

        resolved_max_memory_mb = DEFAULT_MAX_MEMORY_MB if max_memory_mb is None else max_memory_mb
        if resolved_max_memory_mb < 1:
            raise ValueError(f"max_memory_mb must be >= 1, got {resolved_max_memory_mb}")

        self.max_items = resolved_max_items
        self.max_memory_bytes = resolved_max_memory_mb * 1024 * 1024

        resolved_max_value_bytes = self.max_memory_bytes if max_value_bytes is None else max_value_bytes
        if resolved_max_value_bytes < 1:
            raise ValueError(f"max_value_bytes must be >= 1, got {resolved_max_value_bytes}")
        self.max_value_bytes = min(resolved_max_value_bytes, self.max_memory_bytes)

        self.entries: OrderedDict[str, StoredEntry] = OrderedDict()
        self.current_memory_bytes = 0
        self.hits = 0
        self.misses = 0
        self.evictions = 0
        self.lock = Lock()
        self._clock = clock or time.monotonic

    def _is_expired(self, entry: StoredEntry) -> bool:
        if entry.ttl is None:
            return False
        return (self._clock() - entry.created_at) > entry.ttl

    def _live_entry(self, key: str) -> Optional[StoredEntry]:
        entry = self.entries.get(key)
        if entry is not None and self._is_expired(entry):
            self._remove_entry(key)
            return None
        return entry

    def exists(self, key: str) -> bool:
        # no entry can live under a key store() would reject
        if not is_valid_key(key):
            return False
        with self.lock:
            return self._live_entry(key) is not None

    def fetch(self, key: str) -> Tuple[Any, bool]:
        valid = is_valid_key(key)
        with self.lock:
            entry = self._live_entry(key) if valid else None
            if entry is None:
                self.misses += 1
                return None, False

            self.entries.move_to_end(key)
            self.hits += 1
            payload = entry.payload
        return decode_value(payload), True

    def store(self, key: str, value: Any, ttl: int = 0) -> bool:
        validate_key(key)
        validate_ttl(ttl)
        try:
            payload = encode_value(value)
        except TypeError as exc:
            logger.warning("Refusing to store key %r: %s", key, exc)
            return False
        if not is_plain_value(value):
            logger.debug("Stored key %r holds a pickled %s", key, type(value).__name__)

        if len(payload) > self.max_value_bytes:
            logger.warning(
                "Refusing to store key %r: %d bytes exceeds the %d byte limit",
                key,
                len(payload),
                self.max_value_bytes,
            )
            return False

        with self.lock:
            old_entry = self.entries.pop(key, None)
            if old_entry is not None:
                self.current_memory_bytes -= old_entry.size_bytes

            entry = StoredEntry(payload, ttl, created_at=self._clock())

            if self.current_memory_bytes + entry.size_bytes > self.max_memory_bytes:
                if not self._evict_to_fit(entry.size_bytes):
                    if old_entry is not None:
                        self.entries[key] = old_entry
                        self.current_memory_bytes += old_entry.size_bytes
                    return False

            while len(self.entries) >= self.max_items:
                if not self._evict_lru():
                    return False

            self.entries[key] = entry
            self.current_memory_bytes += entry.size_bytes
            return True

    def clear(self) -> bool:
        with self.lock:
            self.entries.clear()
            self.current_memory_bytes = 0
            self.hits = 0
            self.misses = 0
            self.evictions = 0
        return True

    def _remove_entry(self, key: str) -> None:
        entry = self.entries.pop(key, None)
        if entry is not None:
            self.current_memory_bytes -= entry.size_bytes

    def _evict_lru(self) -> bool:
        if not self.entries:
            return False

        lru_key = next(iter(self.entries))
        self._remove_entry(lru_key)
        self.evictions += 1
        return True

    def _evict_to_fit(self, required_bytes: int) -> bool:
        while self.current_memory_bytes + required_bytes > self.max_memory_bytes and self.entries:
            if not self._evict_lru():
                return False
        return self.current_memory_bytes + required_bytes <= self.max_memory_bytes

    def info(self) -> Dict[str, Any]:
        """
        Return store counters.

        Note: memory usage counts serialized payload bytes only (no key or
        dict overhead). Expired entries not yet touched are still counted.
        """
        with self.lock:
            lookups = self.hits + self.misses
            return {
                "size": len(self.entries),
                "hits": self.hits,
                "misses": self.misses,
                "evictions": self.evictions,
                "hit_rate": self.hits / lookups if lookups > 0 else 0,
                "memory_usage_bytes": self.current_memory_bytes,
                "max_memory_mb": round(self.max_memory_bytes / (1024 * 1024), 2),
                "max_items": self.max_items,
            }


_shared_store: Optional[MemoryStore] = None
_shared_store_lock = Lock()


def get_shared_store(settings: Optional[Settings] = None) -> MemoryStore:
    """Return the process-wide store, creating it from ``settings`` on first use."""
    global _shared_store
    with _shared_store_lock:
        if _shared_store is None:
            settings = settings or Settings()
            _shared_store = MemoryStore(
                max_items=settings.max_items,
                max_memory_mb=settings.max_memory_mb,
                max_value_bytes=settings.max_value_bytes,
            )
            logger.debug(
                "Created shared store (max_items=%d, max_memory_mb=%d)",
                settings.max_items,
                settings.max_memory_mb,
            )
        return _shared_store


def reset_shared_store() -> None:
    global _shared_store
    with _shared_store_lock:
        _shared_store = None

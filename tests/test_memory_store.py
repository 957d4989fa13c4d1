import logging
import threading
from queue import Queue
from unittest.mock import patch

import pytest

from shared_cache.domain.constraints import MAX_KEY_LENGTH
from shared_cache.domain.values import encode_value
from shared_cache.infrastructure.config import Settings
from shared_cache.infrastructure.memory_store import (
    MemoryStore,
    StoredEntry,
    get_shared_store,
    reset_shared_store,
)


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class Unpicklable:
    def __init__(self):
        self.lock = threading.Lock()


@pytest.mark.unit
class TestMemoryStore:
    """Test cases for the MemoryStore class."""

    def setup_method(self):
        """Set up test fixtures before each test method."""
        self.clock = FakeClock()
        self.store = MemoryStore(max_items=10, max_memory_mb=1, clock=self.clock)

    def test_initialization_custom_values(self):
        """Test MemoryStore initialization with custom values."""
        store = MemoryStore(max_items=100, max_memory_mb=10)
        assert store.max_items == 100
        assert store.max_memory_bytes == 10 * 1024 * 1024
        assert store.max_value_bytes == store.max_memory_bytes
        assert store.hits == 0
        assert store.misses == 0
        assert store.evictions == 0
        assert store.current_memory_bytes == 0
        assert len(store.entries) == 0

    def test_initialization_rejects_invalid_bounds(self):
        """Test bounds below one are rejected with a clear message."""
        with pytest.raises(ValueError, match="max_items must be >= 1"):
            MemoryStore(max_items=0)
        with pytest.raises(ValueError, match="max_memory_mb must be >= 1"):
            MemoryStore(max_memory_mb=0)
        with pytest.raises(ValueError, match="max_value_bytes must be >= 1"):
            MemoryStore(max_value_bytes=0)

    def test_max_value_bytes_is_capped_by_memory_bound(self):
        store = MemoryStore(max_memory_mb=1, max_value_bytes=10 * 1024 * 1024)
        assert store.max_value_bytes == 1024 * 1024

    def test_store_and_fetch_basic_functionality(self):
        """Test basic store and fetch operations."""
        assert self.store.store("test_key", "test_value") is True

        assert self.store.fetch("test_key") == ("test_value", True)
        assert self.store.hits == 1
        assert self.store.misses == 0

    def test_fetch_nonexistent_key(self):
        """Test fetching a missing key reports failure without raising."""
        assert self.store.fetch("nonexistent_key") == (None, False)
        assert self.store.hits == 0
        assert self.store.misses == 1

    def test_fetch_stored_none_is_found(self):
        """Test a stored None is distinguishable from a missing key."""
        self.store.store("nothing", None)
        assert self.store.fetch("nothing") == (None, True)

    def test_exists(self):
        """Test exists reports presence regardless of the stored value."""
        assert self.store.exists("flag") is False
        self.store.store("flag", False)
        assert self.store.exists("flag") is True
        assert self.store.hits == 0
        assert self.store.misses == 0

    def test_store_with_ttl(self):
        """Test an entry disappears once its TTL has elapsed."""
        assert self.store.store("ttl_key", "ttl_value", ttl=1) is True
        assert self.store.fetch("ttl_key") == ("ttl_value", True)

        self.clock.advance(1.1)

        assert self.store.exists("ttl_key") is False
        assert self.store.fetch("ttl_key") == (None, False)
        assert "ttl_key" not in self.store.entries
        assert self.store.current_memory_bytes == 0

    def test_store_with_zero_ttl_never_expires(self):
        """Test ttl=0 is treated as no TTL."""
        self.store.store("zero_ttl_key", "zero_ttl_value", ttl=0)

        with self.store.lock:
            assert self.store.entries["zero_ttl_key"].ttl is None

        self.clock.advance(10**6)
        assert self.store.fetch("zero_ttl_key") == ("zero_ttl_value", True)

    def test_store_rejects_negative_ttl(self):
        with pytest.raises(ValueError, match="TTL must be >= 0"):
            self.store.store("key", "value", ttl=-1)

    def test_store_rejects_non_integer_ttl(self):
        with pytest.raises(TypeError, match="TTL must be an integer"):
            self.store.store("key", "value", ttl=1.5)  # type: ignore[arg-type]

    def test_update_existing_key(self):
        """Test storing over an existing key replaces its value."""
        self.store.store("update_key", "value1")
        self.store.store("update_key", "value2")

        assert self.store.fetch("update_key") == ("value2", True)
        assert self.store.info()["size"] == 1

    def test_update_existing_key_resets_ttl(self):
        self.store.store("key", "value1", ttl=5)
        self.clock.advance(4)
        self.store.store("key", "value2")

        self.clock.advance(10)
        assert self.store.fetch("key") == ("value2", True)

    def test_update_existing_key_at_capacity_does_not_evict(self):
        """Test updating a key at capacity does not evict other keys or break memory tracking."""
        store = MemoryStore(max_items=3, max_memory_mb=10)
        store.store("key1", "value1")
        store.store("key2", "value2")
        store.store("key3", "value3")

        store.store("key1", "value1_updated")

        info = store.info()
        assert info["size"] == 3
        assert info["evictions"] == 0
        assert store.fetch("key2") == ("value2", True)
        assert store.fetch("key1") == ("value1_updated", True)
        with store.lock:
            assert store.current_memory_bytes == sum(e.size_bytes for e in store.entries.values())

    def test_update_existing_key_restores_old_entry_when_eviction_fails(self):
        """Test updating a key keeps the old value when room cannot be made."""
        self.store.store("key1", "value1")
        self.store.store("key2", "value2")

        with patch.object(self.store, "_evict_to_fit", return_value=False):
            self.store.max_memory_bytes = self.store.current_memory_bytes
            assert self.store.store("key1", "value1_updated_and_longer") is False

        assert self.store.fetch("key1") == ("value1", True)
        assert self.store.fetch("key2") == ("value2", True)
        with self.store.lock:
            assert self.store.current_memory_bytes == sum(
                e.size_bytes for e in self.store.entries.values()
            )

    def test_values_are_copies(self):
        """Test a fetched value is independent of both the stored and the original object."""
        original = {"name": "miles", "tags": ["trumpet"]}
        self.store.store("user", original)

        original["tags"].append("mutated")
        fetched, _ = self.store.fetch("user")
        assert fetched == {"name": "miles", "tags": ["trumpet"]}

        fetched["name"] = "changed"
        assert self.store.fetch("user") == ({"name": "miles", "tags": ["trumpet"]}, True)

    def test_store_unserializable_value_returns_false(self, caplog):
        """Test a value pickle cannot handle is refused with a warning."""
        with caplog.at_level(logging.WARNING, logger="shared_cache"):
            assert self.store.store("lock", Unpicklable()) is False

        assert self.store.exists("lock") is False
        assert "cannot be serialized" in caplog.text

    def test_max_value_bytes_enforced(self):
        """Test per-entry max value size enforcement."""
        store = MemoryStore(max_items=10, max_memory_mb=10, max_value_bytes=100)

        assert store.store("small", "x") is True
        assert store.store("large", "x" * 1000) is False
        assert store.fetch("large") == (None, False)

    def test_oversized_update_keeps_old_value(self):
        store = MemoryStore(max_items=10, max_memory_mb=10, max_value_bytes=100)
        store.store("key", "small")

        assert store.store("key", "x" * 1000) is False
        assert store.fetch("key") == ("small", True)

    def test_key_validation(self):
        """Test store rejects empty, oversized and non-string keys."""
        with pytest.raises(ValueError, match="Key cannot be empty"):
            self.store.store("", "value")
        with pytest.raises(TypeError, match="Key must be a string"):
            self.store.store(42, "value")  # type: ignore[arg-type]

        with pytest.raises(ValueError, match="Key is too long"):
            self.store.store("k" * (MAX_KEY_LENGTH + 1), "value")
        assert self.store.store("k" * MAX_KEY_LENGTH, "value") is True

    def test_reads_treat_unstorable_keys_as_missing(self):
        too_long_key = "k" * (MAX_KEY_LENGTH + 1)

        assert self.store.exists("") is False
        assert self.store.exists(too_long_key) is False
        assert self.store.fetch("") == (None, False)
        assert self.store.fetch(too_long_key) == (None, False)
        assert self.store.info()["misses"] == 2

    def test_reads_reject_non_string_keys(self):
        with pytest.raises(TypeError, match="Key must be a string"):
            self.store.exists(42)  # type: ignore[arg-type]
        with pytest.raises(TypeError, match="Key must be a string"):
            self.store.fetch(None)  # type: ignore[arg-type]

    def test_lru_eviction_by_item_count(self):
        """Test LRU eviction when max items is reached."""
        store = MemoryStore(max_items=3, max_memory_mb=100)
        store.store("key1", "value1")
        store.store("key2", "value2")
        store.store("key3", "value3")

        # key1 becomes most recently used
        store.fetch("key1")

        store.store("key4", "value4")

        assert store.exists("key1") is True
        assert store.exists("key2") is False
        assert store.exists("key3") is True
        assert store.exists("key4") is True

        info = store.info()
        assert info["size"] == 3
        assert info["evictions"] == 1

    def test_memory_based_eviction(self):
        """Test eviction based on memory limits."""
        value = b"x" * 100
        entry_size = len(encode_value(value))
        self.store.max_memory_bytes = entry_size + 1
        self.store.max_value_bytes = entry_size + 1

        assert self.store.store("key1", value) is True
        assert self.store.store("key2", value) is True

        assert self.store.exists("key1") is False
        assert self.store.fetch("key2") == (value, True)
        assert self.store.info()["evictions"] == 1

    def test_clear(self):
        """Test clearing the entire store."""
        self.store.store("key1", "value1")
        self.store.store("key2", "value2")
        self.store.fetch("key1")
        self.store.fetch("missing")

        assert self.store.clear() is True

        info = self.store.info()
        assert info["size"] == 0
        assert info["memory_usage_bytes"] == 0
        assert info["hits"] == 0
        assert info["misses"] == 0
        assert self.store.exists("key1") is False
        assert self.store.exists("key2") is False

    def test_clear_empty_store_succeeds(self):
        assert self.store.clear() is True

    def test_info(self):
        """Test the info method."""
        info = self.store.info()
        assert info["size"] == 0
        assert info["hit_rate"] == 0
        assert info["max_items"] == 10
        assert info["max_memory_mb"] == 1

        self.store.store("key1", "value1")
        self.store.fetch("key1")
        self.store.fetch("key2")

        info = self.store.info()
        assert info["size"] == 1
        assert info["hits"] == 1
        assert info["misses"] == 1
        assert info["hit_rate"] == 0.5
        assert info["memory_usage_bytes"] > 0

    def test_thread_safety(self):
        """Test concurrent store and fetch calls stay consistent."""
        store = MemoryStore(max_items=100, max_memory_mb=10)
        results: Queue = Queue()
        errors: Queue = Queue()

        def worker(thread_id):
            try:
                for i in range(10):
                    key = f"thread_{thread_id}_key_{i}"
                    value = f"thread_{thread_id}_value_{i}"
                    store.store(key, value)
                    results.put((value, store.fetch(key)))
            except Exception as e:
                errors.put(e)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors.qsize() == 0
        while not results.empty():
            expected, fetched = results.get()
            assert fetched == (expected, True)


@pytest.mark.unit
class TestStoredEntry:
    def test_zero_ttl_is_normalized_to_none(self):
        entry = StoredEntry(b"payload", 0)
        assert entry.ttl is None
        assert entry.size_bytes == len(b"payload")

    def test_positive_ttl_is_kept(self):
        entry = StoredEntry(b"payload", 60, created_at=5.0)
        assert entry.ttl == 60
        assert entry.created_at == 5.0


@pytest.mark.unit
class TestSharedStore:
    def setup_method(self):
        reset_shared_store()

    def teardown_method(self):
        reset_shared_store()

    def test_shared_store_is_a_singleton(self):
        assert get_shared_store() is get_shared_store()

    def test_shared_store_uses_first_settings(self):
        store = get_shared_store(Settings(max_items=7, max_memory_mb=2))
        assert store.max_items == 7
        assert store.max_memory_bytes == 2 * 1024 * 1024

        assert get_shared_store(Settings(max_items=99)) is store

    def test_reset_discards_the_instance(self):
        store = get_shared_store()
        store.store("key", "value")

        reset_shared_store()

        assert get_shared_store() is not store
        assert get_shared_store().exists("key") is False

"""
Response Cache
==============

TTL cache for non-streaming answers on top of any string key-value store.

The store is injected (``KeyValueStore`` protocol), so a host app can back
the cache with its own persistent storage and tests can use an isolated
``InMemoryStore``.

Entries are stored as JSON ``{"data", "timestamp", "ttl"}`` under the
``api_cache_`` prefix. Expired entries are deleted lazily the first time
they are read; ``clear_expired`` sweeps the whole store.

Two concurrent calls with the same key may both miss and both write;
the last write wins.

Usage:
    cache = ResponseCache(InMemoryStore())
    key = cache_key(messages, "openai", "gpt-4o", endpoint)
    cache.set(key, "Hello!")
    cache.get(key)  # "Hello!"
"""

import hashlib
import json
import threading
import time
from typing import Any, Callable, Iterable, Optional, Protocol, Sequence

from chatbridge.llm.models import Message, Role
from chatbridge.providers.types import Provider
from chatbridge.utils.logger import get_logger

logger = get_logger(__name__)

CACHE_PREFIX = "api_cache_"
DEFAULT_TTL = 24 * 60 * 60.0


class KeyValueStore(Protocol):
    """String-keyed storage the cache writes through."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...

    def keys(self) -> Iterable[str]: ...


class InMemoryStore:
    """Thread-safe dict-backed ``KeyValueStore``."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._data)

    def __len__(self) -> int:
        return len(self._data)


def cache_key(
    messages: Sequence[Message],
    provider: Provider | str,
    model: str,
    endpoint: str,
) -> str:
    """
    Derive a deterministic cache key for a conversation.

    Only ``(role, content)`` pairs are used; message ids and timestamps are
    ignored so identical conversations share a key.
    """
    turns = [[Role(m.role).value, m.content or ""] for m in messages]
    digest = hashlib.sha256(
        json.dumps(turns, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
    ).hexdigest()
    return f"{Provider.parse(provider).value}:{model}:{endpoint}:{digest}"


class ResponseCache:
    """
    TTL cache over an injected ``KeyValueStore``.

    Args:
        store: Backing string storage.
        default_ttl: Lifetime in seconds used when ``set`` gets no ttl.
        clock: Returns the current Unix time; injectable for tests.
    """

    def __init__(
        self,
        store: KeyValueStore,
        default_ttl: float = DEFAULT_TTL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._default_ttl = default_ttl
        self._clock = clock

    @staticmethod
    def _storage_key(key: str) -> str:
        return f"{CACHE_PREFIX}{key}"

    def _read_entry(self, storage_key: str) -> Optional[dict[str, Any]]:
        raw = self._store.get(storage_key)
        if raw is None:
            return None
        try:
            entry = json.loads(raw)
            float(entry["timestamp"]), float(entry["ttl"])
            return entry
        except (ValueError, TypeError, KeyError) as e:
            logger.warning("Dropping unreadable cache entry", key=storage_key, error=str(e))
            self._store.delete(storage_key)
            return None

    def _expired(self, entry: dict[str, Any]) -> bool:
        return float(entry["timestamp"]) + float(entry["ttl"]) < self._clock()

    def get(self, key: str) -> Optional[Any]:
        """
        Return cached data, or None when absent.

        An expired entry is deleted on this read.
        """
        storage_key = self._storage_key(key)
        entry = self._read_entry(storage_key)
        if entry is None:
            return None
        if self._expired(entry):
            self._store.delete(storage_key)
            logger.debug("Cache entry expired", key=key[:64])
            return None
        return entry.get("data")

    def set(self, key: str, data: Any, ttl: Optional[float] = None) -> None:
        """Store ``data`` under ``key``, overwriting any existing entry."""
        entry = {
            "data": data,
            "timestamp": self._clock(),
            "ttl": self._default_ttl if ttl is None else ttl,
        }
        self._store.set(self._storage_key(key), json.dumps(entry, ensure_ascii=False))

    def delete(self, key: str) -> None:
        self._store.delete(self._storage_key(key))

    def _own_keys(self) -> list[str]:
        return [k for k in self._store.keys() if k.startswith(CACHE_PREFIX)]

    def clear_expired(self) -> int:
        """
        Sweep the store, deleting expired and unreadable entries.

        Returns:
            Number of entries removed.
        """
        removed = 0
        for storage_key in self._own_keys():
            entry = self._read_entry(storage_key)
            if entry is None:
                removed += 1
            elif self._expired(entry):
                self._store.delete(storage_key)
                removed += 1
        if removed:
            logger.info("Expired cache entries removed", count=removed)
        return removed

    def clear(self) -> int:
        """Delete every cache entry. Returns the number removed."""
        keys = self._own_keys()
        for storage_key in keys:
            self._store.delete(storage_key)
        return len(keys)

    def size_bytes(self) -> int:
        """Approximate storage used by cache entries (key plus value length)."""
        total = 0
        for storage_key in self._own_keys():
            value = self._store.get(storage_key)
            if value is not None:
                total += len(storage_key) + len(value)
        return total

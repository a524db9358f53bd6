"""Process-wide LRU cache of successful query executions.

Maps normalized query text to the execution id of a query that already
succeeded, so a repeated query can re-read that execution's output instead of
being submitted (and billed) again.

Entries never expire: if the underlying data changes, a cached query keeps
returning the old output until the cache is cleared. Normalization only folds
case and collapses whitespace, so two queries that differ only in the spacing
inside a string literal share an entry.
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field

from athena_client.config import get_settings
from athena_client.observability import get_logger, record_cache_lookup

logger = get_logger(__name__)


def normalize_query(statement: str) -> str:
    """Case-fold ``statement`` and collapse runs of whitespace."""
    return " ".join(statement.split()).casefold()


@dataclass(frozen=True)
class CacheEntry:
    """A cached execution."""

    execution_id: str
    inserted_at: float = field(default_factory=time.time)


class QueryCache:
    """Bounded, thread-safe LRU mapping of query text to execution ids.

    A capacity of zero disables the cache: ``lookup`` misses and ``insert``
    does nothing, but existing entries are kept until ``clear`` is called.
    """

    def __init__(self, capacity: int = 0) -> None:
        if capacity < 0:
            raise ValueError("Cache capacity must be non-negative")
        self._capacity = capacity
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    @capacity.setter
    def capacity(self, value: int) -> None:
        if value < 0:
            raise ValueError("Cache capacity must be non-negative")
        with self._lock:
            self._capacity = value
            # Zero disables lookups but keeps entries.
            if value > 0:
                while len(self._entries) > value:
                    _, entry = self._entries.popitem(last=False)
                    logger.debug("Evicted cached query", execution_id=entry.execution_id)

    @property
    def enabled(self) -> bool:
        return self._capacity > 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, statement: str) -> bool:
        with self._lock:
            return normalize_query(statement) in self._entries

    def lookup(self, statement: str) -> str | None:
        """Return the cached execution id for ``statement`` and mark it recently used."""
        key = normalize_query(statement)
        with self._lock:
            if self._capacity == 0:
                return None
            entry = self._entries.get(key)
            if entry is not None:
                self._entries.move_to_end(key)
        record_cache_lookup(entry is not None)
        return entry.execution_id if entry is not None else None

    def insert(self, statement: str, execution_id: str) -> None:
        """Insert or refresh ``statement``, evicting least recently used entries."""
        key = normalize_query(statement)
        with self._lock:
            if self._capacity == 0:
                return
            if key in self._entries:
                self._entries.move_to_end(key)
            else:
                while len(self._entries) >= self._capacity:
                    _, entry = self._entries.popitem(last=False)
                    logger.debug("Evicted cached query", execution_id=entry.execution_id)
            self._entries[key] = CacheEntry(execution_id)

    def clear(self) -> None:
        """Remove every entry."""
        with self._lock:
            self._entries.clear()

    def entries(self) -> list[tuple[str, CacheEntry]]:
        """Snapshot of the entries, least recently used first."""
        with self._lock:
            return list(self._entries.items())


_query_cache: QueryCache | None = None


def get_query_cache() -> QueryCache:
    """Get the process-wide query cache, sized from settings on first use."""
    global _query_cache
    if _query_cache is None:
        _query_cache = QueryCache(get_settings().cache.cache_size)
    return _query_cache


def reset_query_cache() -> None:
    """Drop the process-wide cache (useful for testing)."""
    global _query_cache
    _query_cache = None

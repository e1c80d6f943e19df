from __future__ import annotations

import time
from collections import OrderedDict
from dataclasses import dataclass
from threading import Lock

from .geometry import BBox
from .graph_builder import RailGraph
from .settings import settings


@dataclass
class _GraphCacheEntry:
    inserted_at: float
    graph: RailGraph


def graph_cache_key(*, store_key: str, revision: int, bbox: BBox) -> str:
    # Rounded to ~1 m so repeated clicks on the same pair hit the same entry.
    rounded = ",".join(f"{v:.5f}" for v in bbox)
    return f"{store_key}|rev={int(revision)}|bbox={rounded}"


class GraphCacheStore:
    """LRU/TTL cache of built graphs.

    Cached graphs are shared; queries must ``fork()`` before applying
    virtual splits.
    """

    def __init__(self, *, ttl_s: int, max_entries: int) -> None:
        self._ttl_s = max(1, int(ttl_s))
        self._max_entries = max(1, int(max_entries))
        self._lock = Lock()
        self._items: OrderedDict[str, _GraphCacheEntry] = OrderedDict()

        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def _is_expired(self, entry: _GraphCacheEntry) -> bool:
        return (time.time() - entry.inserted_at) > self._ttl_s

    def get(self, key: str) -> RailGraph | None:
        with self._lock:
            entry = self._items.get(key)
            if entry is None:
                self._misses += 1
                return None

            if self._is_expired(entry):
                self._items.pop(key, None)
                self._misses += 1
                return None

            self._items.move_to_end(key)
            self._hits += 1
            return entry.graph

    def set(self, key: str, graph: RailGraph) -> None:
        with self._lock:
            if key in self._items:
                self._items.move_to_end(key)
            self._items[key] = _GraphCacheEntry(inserted_at=time.time(), graph=graph)

            while len(self._items) > self._max_entries:
                self._items.popitem(last=False)
                self._evictions += 1

    def clear(self) -> int:
        with self._lock:
            cleared = len(self._items)
            self._items.clear()
            return cleared

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return {
                "size": len(self._items),
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "ttl_s": self._ttl_s,
                "max_entries": self._max_entries,
            }


GRAPH_CACHE = GraphCacheStore(
    ttl_s=settings.graph_cache_ttl_s,
    max_entries=settings.graph_cache_max_entries,
)


def clear_graph_cache() -> int:
    return GRAPH_CACHE.clear()


def graph_cache_stats() -> dict[str, int]:
    return GRAPH_CACHE.snapshot()

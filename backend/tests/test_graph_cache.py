from __future__ import annotations

import pytest

import railpath.graph_cache as graph_cache
from railpath.graph_builder import build_graph
from railpath.graph_cache import GraphCacheStore, graph_cache_key
from railpath.segments import RailwaySegment


def _graph(segment_id: str):
    return build_graph([RailwaySegment.from_coordinates(segment_id, [(0.0, 0.0), (0.01, 0.0)])])


def test_cache_key_tracks_store_revision_and_region() -> None:
    bbox = (0.0, 0.0, 0.1, 0.1)
    key = graph_cache_key(store_key="default", revision=3, bbox=bbox)
    assert key == graph_cache_key(store_key="default", revision=3, bbox=(0.000001, 0.0, 0.1, 0.1))
    assert key != graph_cache_key(store_key="default", revision=4, bbox=bbox)
    assert key != graph_cache_key(store_key="default", revision=3, bbox=(0.0, 0.0, 0.2, 0.1))


def test_cache_evicts_least_recently_used() -> None:
    cache = GraphCacheStore(ttl_s=60, max_entries=2)
    cache.set("a", _graph("A"))
    cache.set("b", _graph("B"))
    assert cache.get("a") is not None
    cache.set("c", _graph("C"))

    assert cache.get("b") is None
    assert cache.get("a") is not None
    assert cache.get("c") is not None
    stats = cache.snapshot()
    assert stats["evictions"] == 1
    assert stats["size"] == 2
    assert stats["hits"] == 3
    assert stats["misses"] == 1


def test_cache_entries_expire_after_ttl(monkeypatch: pytest.MonkeyPatch) -> None:
    now = [1_000.0]
    monkeypatch.setattr(graph_cache.time, "time", lambda: now[0])
    cache = GraphCacheStore(ttl_s=10, max_entries=4)
    cache.set("a", _graph("A"))

    now[0] += 5
    assert cache.get("a") is not None
    now[0] += 6
    assert cache.get("a") is None
    assert cache.snapshot()["size"] == 0


def test_clear_reports_dropped_entries() -> None:
    cache = GraphCacheStore(ttl_s=60, max_entries=4)
    cache.set("a", _graph("A"))
    cache.set("b", _graph("B"))
    assert cache.clear() == 2
    assert cache.clear() == 0

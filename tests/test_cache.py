# tests/test_cache.py
import threading

import pytest

from fipecache.cache import TTLCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_entries_expire_after_ttl():
    clock = FakeClock()
    cache = TTLCache(capacity=4, ttl_seconds=60, clock=clock)
    cache.set("marcas", ["VW"])

    clock.now += 59
    assert cache.get("marcas") == ["VW"]
    clock.now += 1
    assert cache.get("marcas") is None
    assert len(cache) == 0


def test_least_recently_used_entry_is_evicted():
    cache = TTLCache(capacity=2, ttl_seconds=60, clock=FakeClock())
    cache.set("a", 1)
    cache.set("b", 2)
    cache.get("a")
    cache.set("c", 3)

    assert cache.get("b") is None
    assert cache.get("a") == 1
    assert cache.get("c") == 3


def test_instances_are_independent():
    first, second = TTLCache(), TTLCache()
    first.set("k", "v")
    assert second.get("k") is None


def test_stats_and_clear():
    cache = TTLCache(capacity=3, ttl_seconds=10, clock=FakeClock())
    cache.set("k", "v")
    cache.get("k")
    cache.get("missing")
    stats = cache.stats()
    assert (stats["size"], stats["hits"], stats["misses"]) == (1, 1, 1)
    assert stats["keys"] == ["k"]

    cache.clear()
    assert len(cache) == 0


@pytest.mark.parametrize("kwargs", [{"capacity": 0}, {"ttl_seconds": 0}])
def test_rejects_invalid_configuration(kwargs):
    with pytest.raises(ValueError):
        TTLCache(**kwargs)


def test_len_is_consistent_under_concurrent_writes():
    cache = TTLCache(capacity=8, ttl_seconds=60)
    sizes = []

    def writer(offset):
        for i in range(500):
            cache.set(offset + i, i)
            sizes.append(len(cache))

    threads = [threading.Thread(target=writer, args=(n * 1000,)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert max(sizes) <= cache.capacity
    assert len(cache) == cache.capacity

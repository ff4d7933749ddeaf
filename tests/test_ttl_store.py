import pytest

from deckflow.core.ttl_store import TtlStore


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return TtlStore(60, max_size=3, clock=clock, name="test")


def test_expired_entries_are_invisible_before_sweep(store, clock):
    store.set("a", 1)
    clock.advance(59)
    assert store.get("a") == 1
    clock.advance(1)
    assert store.get("a") is None
    assert not store.has("a")
    assert len(store) == 0


def test_per_entry_ttl_overrides_default(store, clock):
    store.set("short", "x", ttl=5)
    store.set("long", "y")
    clock.advance(10)
    assert "short" not in store
    assert "long" in store


def test_has_is_true_for_stored_none(store):
    store.set("k", None)
    assert store.has("k")


def test_pop_returns_value_once(store):
    store.set("k", "v")
    assert store.pop("k") == "v"
    assert store.pop("k") is None


def test_capacity_evicts_oldest(store):
    for key in ("a", "b", "c"):
        store.set(key, key)
    store.set("d", "d")
    assert store.get("a") is None
    assert [store.get(k) for k in ("b", "c", "d")] == ["b", "c", "d"]


def test_capacity_prefers_dropping_expired(store, clock):
    store.set("old", 1, ttl=1)
    store.set("b", 2)
    store.set("c", 3)
    clock.advance(2)
    store.set("d", 4)
    assert store.get("b") == 2
    assert store.get("d") == 4


def test_prefix_operations(store, clock):
    store.set("p1:s1", 1)
    store.set("p1:s2", 2, ttl=1)
    store.set("p2:s1", 3)
    clock.advance(2)

    assert store.find_by_prefix("p1:") == [("p1:s1", 1)]
    assert store.has_prefix("p2:")
    assert store.delete_by_prefix("p1:") == 1
    assert not store.has_prefix("p1:")


def test_evict_expired_counts(store, clock):
    store.set("a", 1, ttl=1)
    store.set("b", 2)
    clock.advance(5)
    assert store.evict_expired() == 1


def test_rejects_bad_configuration():
    with pytest.raises(ValueError):
        TtlStore(0)
    with pytest.raises(ValueError):
        TtlStore(10, max_size=0)


async def test_close_stops_sweep_and_clears(clock):
    store = TtlStore(60, sweep_interval=0.01, clock=clock)
    store.set("a", 1)
    store.start()
    await store.close()
    assert len(store) == 0

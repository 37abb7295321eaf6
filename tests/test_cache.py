import pytest

from app.reminders.cache import ExpiringCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def loads():
    return []


@pytest.fixture()
def cache(clock, loads):
    def loader(key):
        loads.append(key)
        return f"{key}-v{len(loads)}"

    return ExpiringCache(loader, ttl_seconds=300, clock=clock)


def test_get_loads_once_within_staleness_window(cache, clock, loads):
    assert cache.get("a") == "a-v1"
    clock.now += 299
    assert cache.get("a") == "a-v1"
    assert loads == ["a"]


def test_get_reloads_after_staleness_window(cache, clock, loads):
    cache.get("a")
    clock.now += 300
    assert cache.get("a") == "a-v2"
    assert loads == ["a", "a"]


def test_refresh_reloads_immediately(cache, loads):
    cache.get("a")
    assert cache.refresh("a") == "a-v2"
    assert cache.get("a") == "a-v2"


def test_expire_single_key_and_all(cache, loads):
    cache.get("a")
    cache.get("b")

    cache.expire("a")
    assert len(cache) == 1
    cache.get("a")
    assert loads == ["a", "b", "a"]

    cache.expire()
    assert len(cache) == 0


def test_loader_error_keeps_previous_entry(clock):
    calls = {"n": 0}

    def loader(key):
        calls["n"] += 1
        if calls["n"] > 1:
            raise RuntimeError("store down")
        return "first"

    cache = ExpiringCache(loader, ttl_seconds=10, clock=clock)
    cache.get("k")
    with pytest.raises(RuntimeError):
        cache.refresh("k")
    assert cache.get("k") == "first"

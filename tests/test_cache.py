import pytest

from vaults_client.cache import MemoryCache, cache_key


def test_cache_key_is_deterministic():
    assert cache_key("reward_position", "0xabc", 1) == cache_key("reward_position", "0xabc", 1)
    assert cache_key("reward_position", "0xabc") != cache_key("reference_reserves", "0xabc")


def test_entries_expire_after_ttl():
    now = [0.0]
    cache = MemoryCache(ttl_s=10, clock=lambda: now[0])
    cache.set_cached("k", 0)

    now[0] = 9.9
    assert cache.get_cached("k") == 0
    now[0] = 10.0
    assert cache.get_cached("k") is None
    assert len(cache) == 0


def test_clear_cache():
    cache = MemoryCache(ttl_s=10)
    cache.set_cached("a", 1)
    cache.set_cached("b", 2)

    cache.clear_cache()

    assert len(cache) == 0


def test_negative_ttl_rejected():
    with pytest.raises(ValueError):
        MemoryCache(ttl_s=-1)

import asyncio
import contextlib

import pytest

from ragbot.cache.api_cache import ApiCache, api_cache, configure_api_cache
from ragbot.configuration.app_configuration import CacheSettings


@pytest.mark.asyncio
async def test_start_cleanup_is_idempotent(cache):
    assert cache.start_cleanup() is True
    task = cache._cleanup_task
    assert cache.start_cleanup() is True
    assert cache._cleanup_task is task
    assert cache.is_cleanup_running

    await cache.close()
    assert not cache.is_cleanup_running
    assert task.cancelled()


@pytest.mark.asyncio
async def test_cleanup_task_sweeps_expired_entries(cache, clock):
    cache.set("short", 1, ttl=1)
    cache.set("long", 2, ttl=100)
    clock.advance(5)

    cache.start_cleanup()
    try:
        for _ in range(50):
            await asyncio.sleep(0.01)
            if "short" not in cache:
                break
    finally:
        await cache.close()

    assert "short" not in cache
    assert "long" in cache
    assert cache.get_stats()["expirations"] == 1


@pytest.mark.asyncio
async def test_stop_cleanup_cancels_task(cache):
    cache.start_cleanup()
    task = cache._cleanup_task

    cache.stop_cleanup()
    cache.stop_cleanup()
    with contextlib.suppress(asyncio.CancelledError):
        await task

    assert not cache.is_cleanup_running
    assert task.cancelled()


@pytest.mark.asyncio
async def test_cleanup_can_restart_after_stop(cache):
    cache.start_cleanup()
    cache.stop_cleanup()
    assert cache.start_cleanup() is True
    assert cache.is_cleanup_running
    await cache.close()


@pytest.mark.asyncio
async def test_close_propagates_callers_cancellation(cache):
    cache.start_cleanup()
    await asyncio.sleep(0)
    closer = asyncio.create_task(cache.close())
    await asyncio.sleep(0)

    closer.cancel()

    with pytest.raises(asyncio.CancelledError):
        await closer
    assert closer.cancelled()
    assert not cache.is_cleanup_running


@pytest.mark.asyncio
async def test_close_without_task_is_noop(cache):
    await cache.close()
    assert not cache.is_cleanup_running


def test_start_cleanup_without_running_loop_returns_false(cache):
    assert cache.start_cleanup() is False
    assert not cache.is_cleanup_running


def test_configure_api_cache_applies_settings():
    store = ApiCache(max_size=10)
    for index in range(10):
        store.set(f"key:{index}", index)

    settings = CacheSettings(max_size=4, default_ttl_seconds=120.0, cleanup_interval_seconds=30.0)
    returned = configure_api_cache(settings, store)

    assert returned is store
    assert store.max_size == 4
    assert store.default_ttl == 120.0
    assert store.cleanup_interval == 30.0
    assert len(store) == 4


def test_shared_instance_defaults():
    assert isinstance(api_cache, ApiCache)
    assert api_cache.max_size >= 1


def test_configure_api_cache_with_fractional_max_size_keeps_bound():
    store = ApiCache(max_size=10)

    configure_api_cache(CacheSettings.from_mapping({"max_size": 0.5}), store)
    store.set("a", 1)

    assert 1 <= len(store) <= store.max_size

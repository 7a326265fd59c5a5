"""Tests for the in-memory and Redis counter stores."""

import asyncio
from unittest.mock import Mock, patch

import pytest
import redis

from sitegen.services.counter_store import (
    InMemoryCounterStore,
    RedisCounterStore,
    create_counter_store,
)


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.mark.unit
class TestInMemoryCounterStore:
    """Test the process-local store."""

    def test_set_if_absent_only_once(self):
        store = InMemoryCounterStore()

        async def run():
            first = await store.set_if_absent('credits:a', 100)
            second = await store.set_if_absent('credits:a', 5)
            return first, second, await store.get('credits:a')

        assert asyncio.run(run()) == (True, False, 100)

    def test_decrement_if_sufficient(self):
        store = InMemoryCounterStore()

        async def run():
            await store.set_if_absent('k', 10)
            exact = await store.decrement_if_sufficient('k', 10)
            refused = await store.decrement_if_sufficient('k', 1)
            return exact, refused, await store.get('k')

        assert asyncio.run(run()) == (0, None, 0)

    def test_increment_and_scan(self):
        store = InMemoryCounterStore()

        async def run():
            await store.increment('credits:a', 3)
            await store.increment('credits:a', 2)
            await store.increment('other:b', 1)
            return await store.scan('credits:')

        assert asyncio.run(run()) == {'credits:a': 5}

    def test_sliding_window(self):
        clock = FakeClock()
        store = InMemoryCounterStore(clock=clock)

        async def hit():
            return await store.sliding_window_hit('rl', window_seconds=60, limit=2)

        first = asyncio.run(hit())
        clock.now += 10
        second = asyncio.run(hit())
        third = asyncio.run(hit())

        assert (first.allowed, first.remaining) == (True, 1)
        assert (second.allowed, second.remaining) == (True, 0)
        assert (third.allowed, third.remaining) == (False, 0)
        assert third.reset_at == 1060.0

        clock.now = 1060.0
        assert asyncio.run(hit()).allowed is True

    def test_ping(self):
        assert asyncio.run(InMemoryCounterStore().ping()) is True


def _redis_store(clock=None):
    client = Mock()
    reserve_script, window_script = Mock(), Mock()
    client.register_script.side_effect = [reserve_script, window_script]
    store = RedisCounterStore(client, clock=clock) if clock else RedisCounterStore(client)
    return store, client, reserve_script, window_script


@pytest.mark.unit
class TestRedisCounterStore:
    """Test the Redis store against a mocked client."""

    def test_reservation_script(self):
        store, client, reserve_script, _ = _redis_store()
        reserve_script.side_effect = [7, -1]

        assert asyncio.run(store.decrement_if_sufficient('credits:u', 3)) == 7
        assert asyncio.run(store.decrement_if_sufficient('credits:u', 30)) is None
        reserve_script.assert_called_with(keys=['credits:u'], args=[30])

    def test_set_nx_and_incrby(self):
        store, client, _, _ = _redis_store()
        client.set.return_value = True
        client.incrby.return_value = 12
        client.get.return_value = '12'

        assert asyncio.run(store.set_if_absent('credits:u', 100)) is True
        client.set.assert_called_once_with('credits:u', 100, nx=True)
        assert asyncio.run(store.increment('credits:u', 2)) == 12
        assert asyncio.run(store.get('credits:u')) == 12

    def test_sliding_window_script(self):
        store, client, _, window_script = _redis_store(clock=FakeClock(2.0))
        window_script.return_value = [1, 4, '62000']

        hit = asyncio.run(store.sliding_window_hit('ratelimit:user:u', 60, 5))

        assert hit.allowed is True
        assert hit.remaining == 4
        assert hit.reset_at == 62.0
        kwargs = window_script.call_args.kwargs
        assert kwargs['keys'] == ['ratelimit:user:u']
        assert kwargs['args'][:3] == [2000, 60000, 5]

    def test_scan(self):
        store, client, _, _ = _redis_store()
        client.scan_iter.return_value = iter(['credits:a', 'credits:b'])
        client.get.side_effect = ['4', None]
        assert asyncio.run(store.scan('credits:')) == {'credits:a': 4}
        client.scan_iter.assert_called_once_with(match='credits:*')

    def test_ping_failure_reports_false(self):
        store, client, _, _ = _redis_store()
        client.ping.side_effect = redis.ConnectionError('down')
        assert asyncio.run(store.ping()) is False


@pytest.mark.unit
class TestCreateCounterStore:
    """Test store selection."""

    def test_no_url_uses_memory(self):
        assert create_counter_store(None).name == 'memory'

    def test_unreachable_redis_falls_back(self):
        with patch('sitegen.services.counter_store.get_redis_client', return_value=None):
            assert create_counter_store('redis://localhost:1/0').name == 'memory'

    def test_reachable_redis(self):
        client = Mock()
        with patch('sitegen.services.counter_store.get_redis_client', return_value=client):
            store = create_counter_store('redis://localhost:6379/0')
        assert store.name == 'redis'
        assert store.client is client

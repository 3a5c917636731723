"""
Tests for the query cache and the polling fallback.
"""

import asyncio

import pytest

from order_client.polling import OrderPoller
from order_client.query_cache import ORDERS_RESOURCE, QueryCache


class TestQueryCache:
    """Tests for QueryCache."""

    def test_missing_key_is_stale(self):
        cache = QueryCache()
        assert cache.is_stale(("/api/orders",))
        assert cache.get(("/api/orders",)) is None
        assert cache.get(("/api/orders",), []) == []

    def test_set_then_fresh(self):
        cache = QueryCache()
        cache.set(("/api/orders",), [1, 2])

        assert not cache.is_stale(("/api/orders",))
        assert cache.get(("/api/orders",)) == [1, 2]

    def test_invalidate_prefix_marks_every_order_query(self):
        cache = QueryCache()
        cache.set((ORDERS_RESOURCE,), "all")
        cache.set((ORDERS_RESOURCE, "motoboy", "moto-1"), "mine")
        cache.set(("/api/products",), "catalog")

        invalidated = cache.invalidate_prefix(ORDERS_RESOURCE)

        assert set(invalidated) == {(ORDERS_RESOURCE,), (ORDERS_RESOURCE, "motoboy", "moto-1")}
        assert cache.is_stale((ORDERS_RESOURCE, "motoboy", "moto-1"))
        assert not cache.is_stale(("/api/products",))

    def test_stale_entries_keep_their_data(self):
        cache = QueryCache()
        cache.set((ORDERS_RESOURCE,), "old")
        cache.invalidate_prefix(ORDERS_RESOURCE)

        assert cache.get((ORDERS_RESOURCE,)) == "old"

    def test_listeners_hear_invalidated_keys(self):
        cache = QueryCache()
        cache.set((ORDERS_RESOURCE,), "x")
        heard = []
        unsubscribe = cache.subscribe(heard.append)

        cache.invalidate_prefix(ORDERS_RESOURCE)
        cache.invalidate_prefix("/api/nothing")
        unsubscribe()
        cache.invalidate_prefix(ORDERS_RESOURCE)

        assert heard == [[(ORDERS_RESOURCE,)]]

    def test_fetch_uses_fresh_data_and_refetches_stale(self):
        cache = QueryCache()
        calls = []

        async def fetcher():
            calls.append(1)
            return len(calls)

        async def scenario():
            first = await cache.fetch(("k",), fetcher)
            second = await cache.fetch(("k",), fetcher)
            cache.invalidate(lambda key: key == ("k",))
            third = await cache.fetch(("k",), fetcher)
            forced = await cache.fetch(("k",), fetcher, force=True)
            return first, second, third, forced

        assert asyncio.run(scenario()) == (1, 1, 2, 3)

    def test_failed_fetch_keeps_old_entry(self):
        cache = QueryCache()
        cache.set(("k",), "old")

        async def fetcher():
            raise ConnectionError("offline")

        with pytest.raises(ConnectionError):
            asyncio.run(cache.fetch(("k",), fetcher, force=True))
        assert cache.get(("k",)) == "old"


class TestOrderPoller:
    """Tests for the polling fallback."""

    def make_poller(self, cache, fetcher, connected, **kwargs):
        return OrderPoller(cache, (ORDERS_RESOURCE,), fetcher, is_connected=lambda: connected["value"], **kwargs)

    def test_interval_follows_connection_state(self):
        connected = {"value": False}
        poller = self.make_poller(QueryCache(), None, connected)

        assert poller.current_interval() == 5
        connected["value"] = True
        assert poller.current_interval() == 30

    def test_refresh_stores_result(self):
        cache = QueryCache()

        async def fetcher():
            return ["ord-1"]

        poller = self.make_poller(cache, fetcher, {"value": True})
        assert asyncio.run(poller.refresh()) == ["ord-1"]
        assert cache.get((ORDERS_RESOURCE,)) == ["ord-1"]
        assert poller.fetch_count == 1

    def test_refresh_failure_is_logged_not_raised(self):
        cache = QueryCache()
        cache.set((ORDERS_RESOURCE,), ["cached"])

        async def fetcher():
            raise ConnectionError("offline")

        poller = self.make_poller(cache, fetcher, {"value": False})
        assert asyncio.run(poller.refresh()) == ["cached"]
        assert poller.fetch_count == 0

    def test_polls_repeatedly_until_stopped(self):
        fetches = []

        async def fetcher():
            fetches.append(1)
            return len(fetches)

        async def scenario():
            poller = self.make_poller(
                QueryCache(), fetcher, {"value": False},
                connected_interval=10, disconnected_interval=0.01,
            )
            poller.start()
            await asyncio.sleep(0.1)
            await poller.stop()
            return poller

        poller = asyncio.run(scenario())
        assert len(fetches) >= 3
        assert not poller.running

    def test_invalidation_wakes_poller(self):
        """A pushed event refetches right away instead of waiting 30s."""
        cache = QueryCache()
        fetched = []

        async def scenario():
            second_fetch = asyncio.Event()

            async def fetcher():
                fetched.append(1)
                if len(fetched) == 2:
                    second_fetch.set()
                return len(fetched)

            poller = self.make_poller(cache, fetcher, {"value": True})
            poller.start()
            while not fetched:
                await asyncio.sleep(0.001)
            await asyncio.sleep(0.01)

            cache.invalidate_prefix(ORDERS_RESOURCE)
            await asyncio.wait_for(second_fetch.wait(), timeout=1)
            await poller.stop()

        asyncio.run(scenario())
        assert len(fetched) == 2
        assert cache.get((ORDERS_RESOURCE,)) == 2

    def test_stop_right_after_invalidation(self):
        """A wake-up racing with stop() must not keep the poll loop alive."""
        cache = QueryCache()
        fetched = []

        async def fetcher():
            fetched.append(1)
            return len(fetched)

        async def scenario():
            poller = self.make_poller(cache, fetcher, {"value": True})
            task = poller.start()
            while not fetched:
                await asyncio.sleep(0.001)
            await asyncio.sleep(0.01)

            cache.invalidate_prefix(ORDERS_RESOURCE)
            await asyncio.wait_for(poller.stop(), timeout=1)
            return poller, task

        poller, task = asyncio.run(scenario())
        assert task.done()
        assert not poller.running

    def test_stop_after_wake_from_another_task(self):
        async def fetcher():
            return []

        async def scenario():
            poller = self.make_poller(QueryCache(), fetcher, {"value": True})
            task = poller.start()
            await asyncio.sleep(0.01)
            poller.wake()
            stopper = asyncio.ensure_future(poller.stop())
            await asyncio.wait_for(stopper, timeout=1)
            return task

        assert asyncio.run(scenario()).done()

    def test_cancelling_stop_cancels_the_caller(self):
        """stop() must not absorb a cancellation aimed at whoever awaits it."""
        started = []

        async def slow_fetcher():
            started.append(1)
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                await asyncio.sleep(0.05)
                raise

        async def scenario():
            poller = self.make_poller(QueryCache(), slow_fetcher, {"value": True})
            task = poller.start()
            while not started:
                await asyncio.sleep(0.001)

            stopper = asyncio.ensure_future(poller.stop())
            await asyncio.sleep(0.01)
            stopper.cancel()
            with pytest.raises(asyncio.CancelledError):
                await stopper
            await asyncio.wait({task})
            return task

        assert asyncio.run(scenario()).cancelled()

    def test_on_refresh_sees_each_result(self):
        seen = []

        async def fetcher():
            return ["ord-1"]

        poller = self.make_poller(QueryCache(), fetcher, {"value": True}, on_refresh=seen.append)
        asyncio.run(poller.refresh())

        assert seen == [["ord-1"]]

    def test_failing_on_refresh_is_logged(self, caplog):
        async def fetcher():
            return ["ord-1"]

        def explode(data):
            raise RuntimeError("boom")

        poller = self.make_poller(QueryCache(), fetcher, {"value": True}, on_refresh=explode)

        assert asyncio.run(poller.refresh()) == ["ord-1"]
        assert "Refresh callback" in caplog.text

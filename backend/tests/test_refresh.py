"""Tests for the polling controller and registry."""

import asyncio

import httpx
import pytest

from services.models import DataSource, RefreshStatus
from services.open_meteo import OpenMeteoClient
from services.refresh import LiveDataController, LiveDataRegistry


@pytest.fixture
def client(upstream):
    return OpenMeteoClient(cache_ttl_seconds=600, transport=upstream.transport())


def test_initial_state_is_idle(client):
    controller = LiveDataController(client, 28.6139, 77.209, refresh_interval=0)

    assert controller.state.status == RefreshStatus.IDLE
    assert controller.state.air_quality is None
    assert controller.state.last_update is None


def test_start_fetches_and_publishes_ready_state(client):
    controller = LiveDataController(client, 28.6139, 77.209, refresh_interval=0)
    seen = []
    controller.subscribe(seen.append)

    async def scenario():
        controller.start()
        return await controller.ready()

    state = asyncio.run(scenario())

    assert [s.status for s in seen] == [RefreshStatus.LOADING, RefreshStatus.READY]
    assert seen[0].loading is True
    assert state.loading is False
    assert state.data_source == DataSource.LIVE
    assert state.summary.aqi.category == "Very Unhealthy"
    assert state.weather.current.temperature == 24.3
    assert state.request_urls["air_quality"].startswith("https://air-quality-api.open-meteo.com/")
    assert state.last_update is not None


def test_partial_failure_keeps_live_data(client, upstream):
    upstream.weather = (500, {})
    controller = LiveDataController(client, 28.6139, 77.209, refresh_interval=0)

    state = asyncio.run(controller.refresh())

    assert state.data_source == DataSource.LIVE
    assert state.weather is None
    assert state.air_quality is not None
    assert state.error is None


def test_total_failure_resets_data(client, upstream):
    controller = LiveDataController(client, 28.6139, 77.209, refresh_interval=0)

    async def scenario():
        await controller.refresh()
        upstream.air_quality = (502, {})
        upstream.weather = (503, {})
        return await controller.clear_cache()

    state = asyncio.run(scenario())

    assert state.status == RefreshStatus.ERRORED
    assert state.data_source == DataSource.ERROR
    assert state.error is not None
    assert state.air_quality is None
    assert state.weather is None
    assert state.summary is None


def test_refresh_uses_cache(client, upstream):
    controller = LiveDataController(client, 28.6139, 77.209, refresh_interval=0)

    async def scenario():
        await controller.refresh()
        await controller.refresh()

    asyncio.run(scenario())
    assert len(upstream.requests) == 2


def test_clear_cache_fetches_fresh_data(client, upstream):
    controller = LiveDataController(client, 28.6139, 77.209, refresh_interval=0)

    async def scenario():
        await controller.refresh()
        return await controller.clear_cache()

    state = asyncio.run(scenario())

    assert len(upstream.requests) == 4
    assert state.status == RefreshStatus.READY
    assert controller.cache_stats()["size"] == 2


def test_timer_repeats_until_stopped(client):
    controller = LiveDataController(client, 28.6139, 77.209, refresh_interval=0.05)
    ready_events = []
    controller.subscribe(lambda s: ready_events.append(s) if s.status == RefreshStatus.READY else None)

    async def scenario():
        controller.start()
        await asyncio.sleep(0.2)
        assert controller.is_running
        controller.stop()
        count = len(ready_events)
        await asyncio.sleep(0.15)
        return count

    count_at_stop = asyncio.run(scenario())

    assert count_at_stop >= 3
    assert len(ready_events) == count_at_stop
    assert not controller.is_running


def test_stop_is_idempotent(client):
    controller = LiveDataController(client, 28.6139, 77.209, refresh_interval=60)

    async def scenario():
        controller.start()
        controller.stop()
        controller.stop()
        await controller.ready()

    asyncio.run(scenario())
    controller.stop()
    assert not controller.is_running


def test_zero_interval_disables_polling(client):
    controller = LiveDataController(client, 28.6139, 77.209, refresh_interval=0)

    async def scenario():
        controller.start()
        await controller.ready()
        return controller.is_running

    assert asyncio.run(scenario()) is False


def test_set_location_triggers_fetch_for_new_coordinates(client, upstream):
    controller = LiveDataController(client, 28.6139, 77.209, refresh_interval=0)

    async def scenario():
        await controller.refresh()
        await controller.set_location(19.076, 72.8777)
        await controller.set_location(19.076, 72.8777)

    asyncio.run(scenario())

    urls = [str(r.url) for r in upstream.requests]
    assert len(urls) == 4
    assert sum("latitude=19.076&longitude=72.8777" in url for url in urls) == 2


def test_failing_subscriber_does_not_block_others(client):
    controller = LiveDataController(client, 28.6139, 77.209, refresh_interval=0)
    seen = []

    def broken(_state):
        raise RuntimeError("render failed")

    controller.subscribe(broken)
    controller.subscribe(seen.append)

    state = asyncio.run(controller.refresh())

    assert state.status == RefreshStatus.READY
    assert len(seen) == 2


def test_unsubscribe_stops_notifications(client):
    controller = LiveDataController(client, 28.6139, 77.209, refresh_interval=0)
    seen = []
    unsubscribe = controller.subscribe(seen.append)
    unsubscribe()
    unsubscribe()

    asyncio.run(controller.refresh())
    assert seen == []


def test_registry_reuses_controller_per_location(client, upstream):
    registry = LiveDataRegistry(client)

    async def scenario():
        first = registry.subscribe(28.6139, 77.209, 60)
        second = registry.subscribe(28.6139, 77.209, 60)
        other = registry.subscribe(19.076, 72.8777, 60)
        await asyncio.gather(first.ready(), other.ready())
        running = [c.is_running for c in registry.controllers()]
        registry.shutdown()
        return first, second, other, running

    first, second, other, running = asyncio.run(scenario())

    assert first is second
    assert first is not other
    assert running == [True, True]
    assert registry.controllers() == []
    assert not first.is_running
    assert first.state.status == RefreshStatus.READY


def _gated_client(upstream, latitude):
    """Client whose requests for ``latitude`` block until the returned gate is set."""
    gate = asyncio.Event()
    arrived = asyncio.Event()

    async def handler(request):
        if request.url.params["latitude"] == latitude:
            arrived.set()
            await gate.wait()
        return upstream.handler(request)

    client = OpenMeteoClient(cache_ttl_seconds=600, transport=httpx.MockTransport(handler))
    return client, gate, arrived


def test_refresh_does_not_shift_timer_phase(client):
    controller = LiveDataController(client, 28.6139, 77.209, refresh_interval=0.4)
    loading_at = []

    async def scenario():
        loop = asyncio.get_running_loop()
        controller.subscribe(
            lambda s: loading_at.append(loop.time()) if s.status == RefreshStatus.LOADING else None
        )
        controller.start()
        await asyncio.sleep(0.15)
        await controller.refresh()
        await asyncio.sleep(0.35)
        controller.stop()

    asyncio.run(scenario())

    assert len(loading_at) == 3
    start, manual, scheduled = loading_at
    assert 0.1 <= manual - start < 0.3
    assert 0.35 <= scheduled - start < 0.5


def test_superseded_cycle_result_is_discarded(upstream):
    seen = []

    async def scenario():
        client, gate, arrived = _gated_client(upstream, "28.6139")
        controller = LiveDataController(client, 28.6139, 77.209, refresh_interval=0)
        controller.subscribe(seen.append)

        stale = asyncio.create_task(controller.refresh())
        await arrived.wait()
        moved = await controller.set_location(19.076, 72.8777)
        gate.set()
        await stale
        return controller, moved

    controller, moved = asyncio.run(scenario())

    assert controller.state is moved
    assert [s.status for s in seen] == [
        RefreshStatus.LOADING,
        RefreshStatus.LOADING,
        RefreshStatus.READY,
    ]
    assert "latitude=19.076&" in controller.state.request_urls["air_quality"]


def test_cycle_in_flight_at_stop_still_publishes(upstream):
    seen = []

    async def scenario():
        client, gate, arrived = _gated_client(upstream, "28.6139")
        controller = LiveDataController(client, 28.6139, 77.209, refresh_interval=60)
        controller.subscribe(seen.append)

        controller.start()
        await arrived.wait()
        controller.stop()
        gate.set()
        return controller, await controller.ready()

    controller, state = asyncio.run(scenario())

    assert not controller.is_running
    assert state.status == RefreshStatus.READY
    assert seen[-1] is state


def test_registry_evicts_least_recently_used(client):
    registry = LiveDataRegistry(client, max_controllers=2)

    async def scenario():
        delhi = registry.subscribe(28.6139, 77.209, 60)
        mumbai = registry.subscribe(19.076, 72.8777, 60)
        assert registry.subscribe(28.6139, 77.209, 60) is delhi
        chennai = registry.subscribe(13.0827, 80.2707, 60)
        await asyncio.gather(delhi.ready(), mumbai.ready(), chennai.ready())
        result = (delhi, mumbai, chennai, registry.controllers(), delhi.is_running, mumbai.is_running)
        registry.shutdown()
        return result

    delhi, mumbai, chennai, controllers, delhi_running, mumbai_running = asyncio.run(scenario())

    assert controllers == [delhi, chennai]
    assert delhi_running
    assert not mumbai_running


def test_registry_rejects_non_positive_cap(client):
    with pytest.raises(ValueError):
        LiveDataRegistry(client, max_controllers=0)


def test_registry_finds_controller_at_its_new_location(client):
    registry = LiveDataRegistry(client)

    async def scenario():
        controller = registry.subscribe(28.6139, 77.209, 60)
        await controller.ready()
        await controller.set_location(19.076, 72.8777)
        moved = registry.subscribe(19.076, 72.8777, 60)
        fresh = registry.subscribe(28.6139, 77.209, 60)
        await fresh.ready()
        registry.shutdown()
        return controller, moved, fresh

    controller, moved, fresh = asyncio.run(scenario())

    assert moved is controller
    assert fresh is not controller

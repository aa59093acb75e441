"""Polling controller that keeps a LiveDataState current for one location.

State machine: idle -> loading -> ready | errored, re-entering loading on
every timer tick, manual refresh, cache clear or coordinate change.
Overlapping cycles are not queued; whichever finishes last wins.
"""

import asyncio
import dataclasses
import logging
from typing import Callable

from config import settings
from services.aggregator import combine
from services.models import LiveDataState, LocationQuery, RefreshStatus
from services.open_meteo import OpenMeteoClient

logger = logging.getLogger(__name__)

Subscriber = Callable[[LiveDataState], None]


class LiveDataController:
    def __init__(
        self,
        client: OpenMeteoClient,
        latitude: float,
        longitude: float,
        refresh_interval: float | None = None,
    ):
        """
        Args:
            client: Shared upstream client; its cache is shared by every controller using it.
            latitude: Location latitude.
            longitude: Location longitude.
            refresh_interval: Seconds between scheduled refreshes. 0 or less disables polling.
        """
        self.client = client
        self.location = LocationQuery(latitude, longitude)
        self.refresh_interval = (
            refresh_interval if refresh_interval is not None else settings.default_refresh_seconds
        )
        self._state = LiveDataState()
        self._subscribers: list[Subscriber] = []
        self._timer: asyncio.Task | None = None
        self._initial: asyncio.Task | None = None
        self._started = False

    @property
    def state(self) -> LiveDataState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Call ``callback`` with every new state. Returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def start(self) -> None:
        """Fetch immediately and begin polling. Must be called from a running event loop."""
        if self._started:
            return
        self._started = True
        self._initial = asyncio.create_task(self._run_cycle())
        if self.refresh_interval > 0:
            self._timer = asyncio.create_task(self._poll())

    def stop(self) -> None:
        """Cancel polling. Safe to call more than once."""
        self._started = False
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def ready(self) -> LiveDataState:
        """Wait for the first fetch cycle started by start()."""
        if self._initial is not None:
            await asyncio.shield(self._initial)
        return self._state

    async def refresh(self) -> LiveDataState:
        """Run one fetch cycle now. The polling schedule is left untouched."""
        logger.info("Manual refresh triggered for %s", self.location)
        await self._run_cycle()
        return self._state

    async def clear_cache(self) -> LiveDataState:
        self.client.clear_cache()
        logger.info("Cache cleared, fetching fresh data for %s", self.location)
        await self._run_cycle()
        return self._state

    async def set_location(self, latitude: float, longitude: float) -> LiveDataState:
        location = LocationQuery(latitude, longitude)
        if location != self.location:
            self.location = location
            await self._run_cycle()
        return self._state

    def cache_stats(self) -> dict:
        return self.client.cache_stats()

    async def _poll(self) -> None:
        while True:
            await asyncio.sleep(self.refresh_interval)
            try:
                await self._run_cycle()
            except Exception:
                logger.exception("Scheduled refresh failed for %s", self.location)

    async def _run_cycle(self) -> None:
        location = self.location
        self._publish(
            dataclasses.replace(self._state, loading=True, error=None, status=RefreshStatus.LOADING)
        )
        logger.info("Fetching live data for %s, %s", location.latitude, location.longitude)

        data = await self.client.get_location_data(location.latitude, location.longitude)
        if location != self.location:
            logger.debug("Discarding result for superseded location %s", location)
            return

        self._publish(combine(data, self._state))

    def _publish(self, state: LiveDataState) -> None:
        self._state = state
        for callback in list(self._subscribers):
            try:
                callback(state)
            except Exception:
                logger.exception("Live data subscriber failed")


class LiveDataRegistry:
    """Running controllers per (location, refresh interval), all sharing one client.

    Lookups follow each controller's current location, so a controller moved
    with set_location is found under its new coordinates. At most
    ``max_controllers`` are kept; the least recently requested one is
    stopped to make room.
    """

    def __init__(self, client: OpenMeteoClient, max_controllers: int | None = None):
        self.client = client
        self.max_controllers = (
            max_controllers if max_controllers is not None else settings.max_live_controllers
        )
        if self.max_controllers <= 0:
            raise ValueError("max_controllers must be positive")
        # Least recently requested first
        self._controllers: list[LiveDataController] = []

    def subscribe(
        self, latitude: float, longitude: float, refresh_interval: float | None = None
    ) -> LiveDataController:
        """Return the controller for this location, starting it on first use."""
        if refresh_interval is None:
            refresh_interval = settings.default_refresh_seconds
        location = LocationQuery(latitude, longitude)
        controller = self._find(location, refresh_interval)
        if controller is not None:
            self._controllers.remove(controller)
            self._controllers.append(controller)
            return controller

        while len(self._controllers) >= self.max_controllers:
            evicted = self._controllers.pop(0)
            evicted.stop()
            logger.info("Stopped least recently used live data controller for %s", evicted.location)

        controller = LiveDataController(self.client, latitude, longitude, refresh_interval)
        controller.start()
        self._controllers.append(controller)
        logger.info("Started live data controller for %s (every %ss)", location, refresh_interval)
        return controller

    def controllers(self) -> list[LiveDataController]:
        return list(self._controllers)

    def shutdown(self) -> None:
        for controller in self._controllers:
            controller.stop()
        self._controllers.clear()

    def _find(self, location: LocationQuery, refresh_interval: float) -> LiveDataController | None:
        for controller in self._controllers:
            if controller.location == location and controller.refresh_interval == refresh_interval:
                return controller
        return None

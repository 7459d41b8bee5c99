from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from config import Settings
from directions import DirectionsProvider, OrsDirectionsProvider, OsrmDirectionsProvider
from GeoPoint import GeoPoint, UserPosition
from OrientationTracker import OrientationState, OrientationTracker
from position_source import LatestPositionSource, PositionSource
from RenderSink import RenderSink, RenderSinkAdapter
from Route import Route
from RouteCache import JsonFileStore, RouteCache
from route_pipeline import RoutePipeline

logger = logging.getLogger(__name__)


class NavigationSession:
    """
    One user navigating to one destination at a time.
    Owns the wiring pipeline -> adapter -> tracker. Besides the position source
    it only remembers the requested profile and a pending off-route recalculation.
    """

    def __init__(self,
                 pipeline: RoutePipeline,
                 adapter: Optional[RenderSinkAdapter] = None,
                 tracker: Optional[OrientationTracker] = None,
                 positions: Optional[PositionSource] = None):
        self.pipeline = pipeline
        self.adapter = adapter or RenderSinkAdapter()
        if self.adapter.requester is None:
            self.adapter.requester = pipeline
        self.tracker = tracker or OrientationTracker(publish=self.adapter.set_orientation)
        if self.tracker.on_off_route is None:
            self.tracker.on_off_route = self._on_off_route
        self.positions = positions if positions is not None else LatestPositionSource()
        self.profile: Optional[str] = None
        self._rerouting: Optional[asyncio.Task] = None

    @property
    def route(self) -> Optional[Route]:
        return self.adapter.last_route

    async def navigate(self, start: GeoPoint, end: GeoPoint, profile: Optional[str] = None) -> Route:
        """Acquire (or reuse) a route, draw it, and start/retarget the tracker."""
        current = asyncio.current_task()
        if self._rerouting is not None and self._rerouting is not current:
            # an explicit request wins over a pending recalculation
            self._rerouting.cancel()
            self._rerouting = None
        self.profile = profile
        route = await self.adapter.request_route(start, end, profile)
        if route.degraded:
            logger.warning("Navigating on a degraded route: %s", route.reason)
        self.tracker.start(route, self.positions)
        return route

    def switch_sink(self, sink: Optional[RenderSink]) -> None:
        self.adapter.switch_sink(sink)

    def _on_off_route(self, state: OrientationState, position: UserPosition) -> None:
        """Recalculate from where the user is now; one recalculation at a time."""
        route = self.tracker.route
        if route is None:
            return
        if self._rerouting is not None and not self._rerouting.done():
            logger.debug("Route recalculation already in progress")
            return
        logger.info("User is off route, recalculating from %.6f,%.6f", position.lat, position.lon)
        self._rerouting = asyncio.get_running_loop().create_task(
            self._reroute(position.point, route.dest))

    async def _reroute(self, start: GeoPoint, dest: GeoPoint) -> None:
        try:
            await self.navigate(start, dest, self.profile)
        except Exception:
            logger.exception("Route recalculation failed")

    def stop(self) -> None:
        # cached routes stay valid after navigation stops
        if self._rerouting is not None:
            self._rerouting.cancel()
            self._rerouting = None
        self.tracker.stop()
        self.adapter.clear_route()


def build_provider(settings: Settings) -> DirectionsProvider:
    if settings.directions_provider == "osrm":
        return OsrmDirectionsProvider(
            bases={"walking": settings.osrm_walk_url, "driving": settings.osrm_drive_url},
            timeout_s=settings.route_timeout_s,
        )
    return OrsDirectionsProvider(
        api_key=settings.ors_api_key,
        base_url=settings.ors_base_url,
        timeout_s=settings.route_timeout_s,
    )


def build_session(settings: Settings,
                  sink: Optional[RenderSink] = None,
                  positions: Optional[PositionSource] = None,
                  provider: Optional[DirectionsProvider] = None,
                  on_warning: Optional[Callable[[str], None]] = None) -> NavigationSession:
    cache = RouteCache(JsonFileStore(settings.route_cache_path))
    pipeline = RoutePipeline(
        provider or build_provider(settings),
        cache,
        timeout_s=settings.route_timeout_s,
        on_warning=on_warning,
    )
    adapter = RenderSinkAdapter(sink=sink, requester=pipeline)
    return NavigationSession(pipeline, adapter, positions=positions)

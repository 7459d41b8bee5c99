from __future__ import annotations

import logging
from typing import Optional, Protocol, Sequence

from GeoPoint import GeoPoint
from OrientationTracker import OrientationState
from Route import Route

logger = logging.getLogger(__name__)


class RenderSink(Protocol):
    """What a map renderer (2D, 3D, websocket client...) must accept."""

    def draw_route(self, points: Sequence[GeoPoint], degraded: bool) -> None: ...

    def set_heading(self, heading_degrees: float) -> None: ...

    def clear_route(self) -> None: ...


class RouteRequester(Protocol):
    async def acquire_route(self, start: GeoPoint, end: GeoPoint,
                            profile: Optional[str] = None) -> Route: ...


class RenderSinkAdapter:
    """
    Single entry point between the engine and the active renderer.
    Remembers the last route and orientation so a newly activated sink
    starts from the same picture as the previous one.
    """

    def __init__(self, sink: Optional[RenderSink] = None,
                 requester: Optional[RouteRequester] = None):
        self._sink = sink
        self.requester = requester
        self._route: Optional[Route] = None
        self._orientation: Optional[OrientationState] = None

    @property
    def active_sink(self) -> Optional[RenderSink]:
        return self._sink

    @property
    def last_route(self) -> Optional[Route]:
        return self._route

    @property
    def last_orientation(self) -> Optional[OrientationState]:
        return self._orientation

    def switch_sink(self, sink: Optional[RenderSink]) -> None:
        """The previous sink is left as is; the caller hides it."""
        self._sink = sink
        if sink is None:
            return
        logger.debug("Render sink switched to %s", type(sink).__name__)
        if self._route is not None:
            sink.draw_route(self._route.points, self._route.degraded)
        if self._orientation is not None:
            sink.set_heading(self._orientation.heading_degrees)

    def draw_route(self, route: Route) -> None:
        self._route = route
        self._orientation = None
        if self._sink is not None:
            self._sink.draw_route(route.points, route.degraded)

    def set_orientation(self, state: OrientationState) -> None:
        self._orientation = state
        if self._sink is not None:
            self._sink.set_heading(state.heading_degrees)

    def clear_route(self) -> None:
        self._route = None
        self._orientation = None
        if self._sink is not None:
            self._sink.clear_route()

    async def request_route(self, start: GeoPoint, end: GeoPoint,
                            profile: Optional[str] = None) -> Route:
        if self.requester is None:
            raise RuntimeError("No route requester bound to this adapter")
        route = await self.requester.acquire_route(start, end, profile)
        self.draw_route(route)
        return route

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, Optional, Sequence, Tuple

from config import (
    ARRIVAL_RADIUS_M,
    LOOKAHEAD_MIN_M,
    LOOKAHEAD_WINDOW,
    OFF_ROUTE_M,
    TRACKER_INTERVAL_S,
)
from GeoPoint import GeoPoint, UserPosition
from geo_kernel import (
    bearing_deg,
    closest_point_index,
    distance_m,
    has_arrived,
    is_near_segment,
    is_valid_coordinate,
)
from position_source import PositionSource
from Route import Route

logger = logging.getLogger(__name__)


class TrackerState(Enum):
    STOPPED = auto()
    RUNNING = auto()


@dataclass(frozen=True)
class OrientationState:
    heading_degrees: float
    nearest_point_index: int
    target_point_index: int
    distance_remaining_m: float = 0.0
    off_route: bool = False
    arrived: bool = False


# -------------------------
# pure orientation math
# -------------------------
def find_lookahead_index(points: Sequence[GeoPoint], position, nearest: int,
                         min_dist_m: float = LOOKAHEAD_MIN_M,
                         window: int = LOOKAHEAD_WINDOW) -> int:
    last = len(points) - 1
    end = min(last, nearest + window)
    for i in range(nearest + 1, end + 1):
        if distance_m(position, points[i]) > min_dist_m:
            return i
    return min(nearest + 1, last)


def is_off_route(points: Sequence[GeoPoint], position, threshold_m: float = OFF_ROUTE_M) -> bool:
    for i in range(len(points) - 1):
        if is_near_segment(position, points[i], points[i + 1], threshold_m):
            return False
    return True


def compute_orientation(route: Route, position: UserPosition,
                        min_dist_m: float = LOOKAHEAD_MIN_M,
                        window: int = LOOKAHEAD_WINDOW,
                        off_route_m: float = OFF_ROUTE_M,
                        arrival_radius_m: float = ARRIVAL_RADIUS_M) -> Optional[OrientationState]:
    """
    Heading the user marker should face: bearing from the user to the first
    route point ahead that is more than min_dist_m away.
    Returns None when no point lies ahead of the nearest one; the caller
    keeps its previous heading.
    """
    points = route.points
    nearest = closest_point_index(points, position)
    if nearest >= len(points) - 1:
        return None

    target = find_lookahead_index(points, position, nearest, min_dist_m, window)
    return OrientationState(
        heading_degrees=bearing_deg(position, points[target]),
        nearest_point_index=nearest,
        target_point_index=target,
        distance_remaining_m=route.remaining_from(nearest),
        off_route=is_off_route(points, position, off_route_m),
        arrived=has_arrived(position, route.dest, arrival_radius_m),
    )


# -------------------------
# periodic tracker
# -------------------------
class OrientationTracker:
    """
    Recomputes the user heading on a fixed interval while RUNNING.
    Only the latest position is used; fixes arriving between ticks are ignored.
    """

    def __init__(self,
                 publish: Callable[[OrientationState], None],
                 interval_s: float = TRACKER_INTERVAL_S,
                 min_dist_m: float = LOOKAHEAD_MIN_M,
                 window: int = LOOKAHEAD_WINDOW,
                 off_route_m: float = OFF_ROUTE_M,
                 arrival_radius_m: float = ARRIVAL_RADIUS_M,
                 on_arrival: Optional[Callable[[Route], None]] = None,
                 on_off_route: Optional[Callable[[OrientationState, UserPosition], None]] = None):
        self.publish = publish
        self.interval_s = interval_s
        self.min_dist_m = min_dist_m
        self.window = window
        self.off_route_m = off_route_m
        self.arrival_radius_m = arrival_radius_m
        self.on_arrival = on_arrival
        self.on_off_route = on_off_route

        self.state = TrackerState.STOPPED
        self.last_state: Optional[OrientationState] = None
        self.arrived = False
        # (route, source) swapped as one reference so a tick never mixes two routes
        self._target: Optional[Tuple[Route, PositionSource]] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def route(self) -> Optional[Route]:
        return self._target[0] if self._target else None

    @property
    def running(self) -> bool:
        return self.state is TrackerState.RUNNING

    def start(self, route: Route, position_source: PositionSource) -> None:
        """Must be called from a running event loop. Restarting replaces the tracked route."""
        loop = asyncio.get_running_loop()
        self._target = (route, position_source)
        self.last_state = None
        self.arrived = False

        if self.running:
            logger.info("Tracker route replaced (%d points)", len(route.points))
            return

        self._task = loop.create_task(self._run())
        self.state = TrackerState.RUNNING
        logger.info("Tracker started (%d points, every %.1fs)", len(route.points), self.interval_s)

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
        if self.running:
            logger.info("Tracker stopped")
        self.state = TrackerState.STOPPED
        self._target = None

    def tick(self) -> Optional[OrientationState]:
        target = self._target
        if target is None:
            return None
        route, source = target

        pos = source.latest()
        if pos is None or not is_valid_coordinate(pos.lat, pos.lon):
            return None

        state = compute_orientation(route, pos, self.min_dist_m, self.window,
                                    self.off_route_m, self.arrival_radius_m)
        if state is None:
            # end of route: hold the last heading
            if has_arrived(pos, route.dest, self.arrival_radius_m):
                self._mark_arrived(route)
            return self.last_state

        self.last_state = state
        self.publish(state)
        if state.arrived:
            self._mark_arrived(route)
        elif state.off_route and self.on_off_route is not None:
            self.on_off_route(state, pos)
        return state

    def _mark_arrived(self, route: Route) -> None:
        if self.arrived:
            return
        self.arrived = True
        logger.info("Destination reached")
        if self.on_arrival is not None:
            self.on_arrival(route)

    async def _run(self) -> None:
        while True:
            try:
                self.tick()
            except Exception:
                logger.exception("Orientation tick failed")
            await asyncio.sleep(self.interval_s)

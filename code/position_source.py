from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol

from config import WALKING_SPEED_MPS
from GeoPoint import UserPosition
from Route import Route


class PositionSource(Protocol):
    def latest(self) -> Optional[UserPosition]: ...


class LatestPositionSource:
    """Holds the most recent fix pushed by the device/browser."""

    def __init__(self):
        self._pos: Optional[UserPosition] = None

    def update(self, lat: float, lon: float, accuracy_m: float = 0.0) -> UserPosition:
        self._pos = UserPosition(lat=lat, lon=lon, accuracy_m=accuracy_m)
        return self._pos

    def latest(self) -> Optional[UserPosition]:
        return self._pos

    def clear(self) -> None:
        self._pos = None


@dataclass
class SimulatedWalker:
    """
    Walks along a route at a constant speed, for demos and manual testing.
    Position at wall time t is the point cum_dist == (t - started_at) * speed * time_scale.
    """
    route: Route
    speed_mps: float = WALKING_SPEED_MPS
    time_scale: float = 1.0
    accuracy_m: float = 5.0
    clock: Callable[[], float] = time.monotonic
    started_at: Optional[float] = None
    done: bool = field(default=False, init=False)

    def start(self) -> None:
        self.started_at = self.clock()
        self.done = False

    def latest(self) -> Optional[UserPosition]:
        if self.started_at is None:
            return None

        t_rel = (self.clock() - self.started_at) * self.time_scale
        walked = max(0.0, t_rel * self.speed_mps)
        if walked >= self.route.cum_dist_m[-1]:
            self.done = True

        p = self.route.position_at_distance(walked)
        return UserPosition(lat=p.lat, lon=p.lon, accuracy_m=self.accuracy_m)

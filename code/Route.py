from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass, field
from functools import cached_property
from typing import Any, Dict, List, Optional, Sequence, Tuple

from config import DEFAULT_PROFILE
from GeoPoint import GeoPoint, LatLon
from geo_kernel import cum_array, segment_lengths_m


@dataclass(frozen=True)
class Route:
    """
    A drawable path from start to destination.
    points: polyline vertices, never fewer than two
    degraded: True only for the straight-line fallback, never for provider geometry
    reason: why the route is degraded, for the caller to surface as a warning
    """
    points: Tuple[GeoPoint, ...]
    distance_m: float
    duration_s: float
    degraded: bool = False
    profile: str = DEFAULT_PROFILE
    reason: Optional[str] = field(default=None, compare=False)

    def __post_init__(self):
        pts = tuple(self.points)
        if len(pts) < 2:
            raise ValueError("A route needs at least two points")
        if self.distance_m < 0 or self.duration_s < 0:
            raise ValueError("distance_m and duration_s must be >= 0")
        object.__setattr__(self, "points", pts)

    @property
    def start(self) -> GeoPoint:
        return self.points[0]

    @property
    def dest(self) -> GeoPoint:
        return self.points[-1]

    @cached_property
    def seg_dist_m(self) -> List[float]:
        return segment_lengths_m(self.points)

    @cached_property
    def cum_dist_m(self) -> List[float]:
        return cum_array(self.seg_dist_m)

    def latlon(self) -> List[LatLon]:
        return [p.as_tuple() for p in self.points]

    def position_at_distance(self, d_m: float) -> GeoPoint:
        """Linear interpolation along the polyline, clamped to both ends."""
        if d_m <= 0.0:
            return self.points[0]
        cum = self.cum_dist_m
        if d_m >= cum[-1]:
            return self.points[-1]

        i = bisect_right(cum, d_m) - 1
        seg = self.seg_dist_m[i]
        if seg <= 0.0:
            return self.points[i + 1]

        alpha = (d_m - cum[i]) / seg
        a, b = self.points[i], self.points[i + 1]
        return GeoPoint(a.lat + alpha * (b.lat - a.lat), a.lon + alpha * (b.lon - a.lon))

    def remaining_from(self, index: int) -> float:
        cum = self.cum_dist_m
        index = max(0, min(index, len(cum) - 1))
        return cum[-1] - cum[index]

    # -------------------------
    # persistence
    # -------------------------
    def to_dict(self) -> Dict[str, Any]:
        return {
            "points": [[p.lat, p.lon] for p in self.points],
            "distance_m": self.distance_m,
            "duration_s": self.duration_s,
            "degraded": self.degraded,
            "profile": self.profile,
            "reason": self.reason,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Route":
        return cls(
            points=tuple(GeoPoint(float(lat), float(lon)) for lat, lon in data["points"]),
            distance_m=float(data["distance_m"]),
            duration_s=float(data["duration_s"]),
            degraded=bool(data.get("degraded", False)),
            profile=data.get("profile", DEFAULT_PROFILE),
            reason=data.get("reason"),
        )

    @classmethod
    def from_latlon(cls, geometry: Sequence[LatLon], dist: float, duration: float,
                    profile: str = DEFAULT_PROFILE) -> "Route":
        return cls(
            points=tuple(GeoPoint(lat, lon) for lat, lon in geometry),
            distance_m=float(dist),
            duration_s=float(duration),
            profile=profile,
        )

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from geo_kernel import is_valid_coordinate
from route_errors import InvalidCoordinate

LatLon = Tuple[float, float]  # (lat, lon)


@dataclass(frozen=True)
class GeoPoint:
    """
    Immutable WGS84 point.
    Not validated on construction; use parse() at trust boundaries.
    """
    lat: float
    lon: float

    @classmethod
    def parse(cls, lat, lon) -> "GeoPoint":
        if not is_valid_coordinate(lat, lon):
            raise InvalidCoordinate(f"Invalid coordinate: lat={lat!r}, lon={lon!r}")
        return cls(float(lat), float(lon))

    @classmethod
    def from_latlon(cls, p: LatLon) -> "GeoPoint":
        return cls(p[0], p[1])

    @property
    def is_valid(self) -> bool:
        return is_valid_coordinate(self.lat, self.lon)

    def as_tuple(self) -> LatLon:
        return (self.lat, self.lon)


@dataclass(frozen=True)
class UserPosition:
    lat: float
    lon: float
    accuracy_m: float = 0.0

    def __post_init__(self):
        if self.accuracy_m < 0:
            raise ValueError("accuracy_m must be >= 0")

    @property
    def point(self) -> GeoPoint:
        return GeoPoint(self.lat, self.lon)

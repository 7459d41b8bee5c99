import math
from typing import List, Protocol, Sequence

from config import EARTH_RADIUS_M, WALKING_SPEED_MPS


class PointLike(Protocol):
    lat: float
    lon: float


# -------------------------
# validation
# -------------------------
def is_valid_coordinate(lat, lon) -> bool:
    # bools are ints in python, a True latitude is a bug upstream
    if isinstance(lat, bool) or isinstance(lon, bool):
        return False
    if not isinstance(lat, (int, float)) or not isinstance(lon, (int, float)):
        return False
    if not (math.isfinite(lat) and math.isfinite(lon)):
        return False
    return -90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0


# -------------------------
# distance / bearing
# callers validate first, these assume sane input
# -------------------------
def distance_m(a: PointLike, b: PointLike) -> float:
    lat1, lon1 = math.radians(a.lat), math.radians(a.lon)
    lat2, lon2 = math.radians(b.lat), math.radians(b.lon)
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    x = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(x)))


def normalize_heading(deg: float) -> float:
    h = deg % 360.0
    # -1e-15 % 360 == 360.0
    return 0.0 if h >= 360.0 else h


def bearing_deg(a: PointLike, b: PointLike) -> float:
    """Initial great-circle bearing from a to b in [0, 360). North is 0, east is 90."""
    lat1, lat2 = math.radians(a.lat), math.radians(b.lat)
    dlon = math.radians(b.lon - a.lon)
    y = math.sin(dlon) * math.cos(lat2)
    x = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(dlon)
    return normalize_heading(math.degrees(math.atan2(y, x)))


def is_within_radius(point: PointLike, center: PointLike, radius_m: float) -> bool:
    return distance_m(point, center) <= radius_m


_CARDINALS = ("N", "NE", "E", "SE", "S", "SW", "W", "NW")


def bearing_to_cardinal(bearing: float) -> str:
    return _CARDINALS[int(round(normalize_heading(bearing) / 45.0)) % 8]


# -------------------------
# polyline helpers
# -------------------------
def cum_array(values: List[float]) -> List[float]:
    cum = [0.0]
    s = 0.0
    for v in values:
        s += v
        cum.append(s)
    return cum


def segment_lengths_m(points: Sequence[PointLike]) -> List[float]:
    return [distance_m(points[i], points[i + 1]) for i in range(len(points) - 1)]


def closest_point_index(points: Sequence[PointLike], target: PointLike) -> int:
    best_i = 0
    best_d = float("inf")
    for i, p in enumerate(points):
        d = distance_m(p, target)
        if d < best_d:
            best_d = d
            best_i = i
    return best_i


def is_near_segment(point: PointLike, a: PointLike, b: PointLike, threshold_m: float = 30.0) -> bool:
    """
    True when point lies within threshold_m of the segment a-b.
    Uses the triangle height (Heron) over haversine side lengths,
    good enough for segments of a few hundred meters.
    """
    d_a = distance_m(point, a)
    d_b = distance_m(point, b)
    seg = distance_m(a, b)

    # beyond either end of the segment: plain endpoint distance
    if d_a > seg + threshold_m or d_b > seg + threshold_m:
        return min(d_a, d_b) <= threshold_m
    if seg < 1.0:
        return min(d_a, d_b) <= threshold_m

    s = (d_a + d_b + seg) / 2
    area = math.sqrt(max(0.0, s * (s - d_a) * (s - d_b) * (s - seg)))
    height = 2 * area / seg
    return height <= threshold_m


def has_arrived(position: PointLike, destination: PointLike, threshold_m: float = 15.0) -> bool:
    return distance_m(position, destination) <= threshold_m


def estimate_duration_s(dist_m: float, speed_mps: float = WALKING_SPEED_MPS) -> float:
    if not speed_mps or speed_mps <= 0:
        speed_mps = WALKING_SPEED_MPS
    return dist_m / speed_mps

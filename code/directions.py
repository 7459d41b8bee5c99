#Directions providers.
#Sole responsibility: talk to a routing service over HTTP and return normalized outputs:
#    {"geometry": [(lat, lon), ...], "total_dist": meters, "total_time": seconds}
#Every failure is raised as a route_errors.DirectionsError subclass.
#No caching and no fallback logic here, see route_pipeline.

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Protocol, Tuple

import aiohttp
import polyline

from config import PROVIDER_TIMEOUT_S
from GeoPoint import GeoPoint, LatLon
from route_errors import (
    MalformedResponse,
    NoRoutablePoint,
    NoRouteFound,
    ProviderNetworkError,
    ProviderTimeout,
    RateLimited,
    UnsupportedProfile,
)

logger = logging.getLogger(__name__)

ORS_NO_ROUTABLE_POINT = 2010
ORS_ROUTE_NOT_FOUND = 2009


class DirectionsProvider(Protocol):
    async def route(self, start: GeoPoint, end: GeoPoint, profile: str) -> Dict[str, Any]: ...


def get_osrm_profile(profile: str) -> str:
    profiles = {
        "foot-walking": "walking",
        "walking": "walking",
        "foot": "walking",
        "driving-car": "driving",
        "driving": "driving",
        "car": "driving",
    }
    if profile not in profiles:
        raise UnsupportedProfile(f"Unknown profile: {profile}")
    return profiles[profile]


def _geometry_result(geometry: List[LatLon], dist, duration) -> Dict[str, Any]:
    if len(geometry) < 2:
        raise MalformedResponse(f"Route geometry has {len(geometry)} point(s)")
    try:
        total_dist = float(dist)
        total_time = float(duration)
    except (TypeError, ValueError) as e:
        raise MalformedResponse(f"Bad distance/duration: {dist!r}/{duration!r}") from e
    return {
        "geometry": geometry,
        "total_dist": total_dist,
        "total_time": total_time,
    }


class _HttpProvider:
    def __init__(self, timeout_s: float = PROVIDER_TIMEOUT_S,
                 session: Optional[aiohttp.ClientSession] = None):
        self.timeout_s = timeout_s
        self.session = session

    async def _request(self, method: str, url: str, **kwargs) -> Tuple[int, str]:
        timeout = aiohttp.ClientTimeout(total=self.timeout_s)
        try:
            if self.session is not None:
                async with self.session.request(method, url, timeout=timeout, **kwargs) as resp:
                    return resp.status, await resp.text()
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.request(method, url, **kwargs) as resp:
                    return resp.status, await resp.text()
        except asyncio.TimeoutError as e:
            raise ProviderTimeout(f"No response from {url} within {self.timeout_s}s") from e
        except aiohttp.ClientError as e:
            raise ProviderNetworkError(f"{type(e).__name__}: {e}") from e


# -------------------------
# OpenRouteService
# -------------------------
def parse_ors_response(status: int, text: str) -> Dict[str, Any]:
    try:
        data = json.loads(text) if text else {}
    except ValueError:
        if status >= 400:
            raise ProviderNetworkError(f"ORS returned {status}: {text[:200]}")
        raise MalformedResponse("ORS response is not JSON")

    if status == 429:
        raise RateLimited("ORS rate limit exceeded")

    error = data.get("error") if isinstance(data, dict) else None
    if status >= 400 or error:
        if isinstance(error, dict):
            code = error.get("code")
            message = str(error.get("message", ""))
        else:
            code = None
            message = str(error or "")
        if code == ORS_NO_ROUTABLE_POINT or "Could not find routable point" in message:
            raise NoRoutablePoint(message or "Could not find routable point")
        if code == 403 or status == 403:
            raise RateLimited(message or "ORS quota exceeded")
        if code == ORS_ROUTE_NOT_FOUND:
            raise NoRouteFound(message)
        raise ProviderNetworkError(f"ORS returned {status}: {message}")

    try:
        feature = data["features"][0]
        coords = feature["geometry"]["coordinates"]
        props = feature.get("properties", {})
    except (KeyError, IndexError, TypeError) as e:
        raise MalformedResponse(f"ORS response without route feature: {e}") from e

    summary = props.get("summary") or {}
    if not summary:
        segments = props.get("segments") or [{}]
        summary = segments[0]

    try:
        geometry = [(float(lat), float(lon)) for lon, lat, *_ in coords]
    except (TypeError, ValueError) as e:
        raise MalformedResponse(f"ORS coordinates unreadable: {e}") from e

    # ORS drops zero-valued summary fields
    return _geometry_result(geometry, summary.get("distance", 0.0), summary.get("duration", 0.0))


class OrsDirectionsProvider(_HttpProvider):
    """
    OpenRouteService adapter.
    Profiles are ORS names: foot-walking, driving-car, ...
    """

    def __init__(self, api_key: str, base_url: str = "https://api.openrouteservice.org",
                 timeout_s: float = PROVIDER_TIMEOUT_S,
                 session: Optional[aiohttp.ClientSession] = None):
        super().__init__(timeout_s=timeout_s, session=session)
        if not api_key:
            raise ValueError("ORS API key not set. Please set ORS_API_KEY in the .env file.")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")

    async def route(self, start: GeoPoint, end: GeoPoint, profile: str) -> Dict[str, Any]:
        url = f"{self.base_url}/v2/directions/{profile}/geojson"
        headers = {
            "Authorization": self.api_key,
            "Content-Type": "application/json",
        }
        body = {
            "coordinates": [[start.lon, start.lat], [end.lon, end.lat]],
            "geometry_simplify": False,
        }
        logger.debug("ORS request %s %s -> %s", profile, start.as_tuple(), end.as_tuple())
        status, text = await self._request("POST", url, json=body, headers=headers)
        return parse_ors_response(status, text)


# -------------------------
# OSRM
# -------------------------
def format_coordinates(coords: List[GeoPoint]) -> str:
    """OSRM wants 'lon,lat;lon,lat;...'"""
    return ";".join(f"{p.lon},{p.lat}" for p in coords)


def parse_osrm_response(status: int, text: str) -> Dict[str, Any]:
    if status == 429:
        raise RateLimited("OSRM rate limit exceeded")
    try:
        data = json.loads(text)
    except ValueError:
        if status >= 400:
            raise ProviderNetworkError(f"OSRM returned {status}: {text[:200]}")
        raise MalformedResponse("OSRM response is not JSON")

    code = data.get("code") if isinstance(data, dict) else None
    if code == "NoSegment":
        raise NoRoutablePoint(data.get("message", "No segment near coordinate"))
    if code == "NoRoute":
        raise NoRouteFound(data.get("message", "No route found"))
    if code != "Ok":
        if status >= 400:
            raise ProviderNetworkError(f"OSRM returned {status}: {code}")
        raise MalformedResponse(f"OSRM error: {data!r:.200}")

    try:
        route = data["routes"][0]
        geometry = [(float(lat), float(lon)) for lat, lon in polyline.decode(route["geometry"])]
    except (KeyError, IndexError, TypeError, ValueError) as e:
        raise MalformedResponse(f"OSRM route unreadable: {e}") from e

    return _geometry_result(geometry, route.get("distance"), route.get("duration"))


class OsrmDirectionsProvider(_HttpProvider):
    """
    OSRM adapter. A local OSRM instance serves one profile, so each profile
    has its own base URL.
    """

    def __init__(self, bases: Dict[str, str], timeout_s: float = PROVIDER_TIMEOUT_S,
                 session: Optional[aiohttp.ClientSession] = None):
        super().__init__(timeout_s=timeout_s, session=session)
        self.bases = {k: v.rstrip("/") for k, v in bases.items()}

    async def route(self, start: GeoPoint, end: GeoPoint, profile: str) -> Dict[str, Any]:
        osrm_profile = get_osrm_profile(profile)
        base = self.bases.get(osrm_profile)
        if base is None:
            raise UnsupportedProfile(f"No OSRM server configured for profile {osrm_profile}")

        url = f"{base}/route/v1/{osrm_profile}/{format_coordinates([start, end])}"
        params = {
            "overview": "full",
            "geometries": "polyline",
            "steps": "false",
        }
        status, text = await self._request("GET", url, params=params)
        return parse_osrm_response(status, text)

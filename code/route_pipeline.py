from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, Optional

from config import (
    DEFAULT_PROFILE,
    FALLBACK_PROFILE,
    FAR_DESTINATION_M,
    PROVIDER_TIMEOUT_S,
)
from directions import DirectionsProvider
from GeoPoint import GeoPoint
from geo_kernel import distance_m, estimate_duration_s
from Route import Route
from RouteCache import RouteCache, make_cache_key
from route_errors import (
    DirectionsError,
    MalformedResponse,
    NoRoutablePoint,
    ProviderNetworkError,
    ProviderTimeout,
)

logger = logging.getLogger(__name__)


def straight_line_route(start: GeoPoint, end: GeoPoint, profile: str, reason: str) -> Route:
    """Two-point fallback. Duration assumes walking speed whatever the profile."""
    dist = distance_m(start, end)
    return Route(
        points=(start, end),
        distance_m=dist,
        duration_s=estimate_duration_s(dist),
        degraded=True,
        profile=profile,
        reason=reason,
    )


class RoutePipeline:
    """
    Turns (start, end, profile) into a drawable Route.

    Order: validation, cache, primary provider, vehicle profile retry,
    straight line. acquire_route() never raises; a failed acquisition is a
    Route with degraded=True and a reason.
    """

    def __init__(self,
                 provider: DirectionsProvider,
                 cache: Optional[RouteCache] = None,
                 *,
                 timeout_s: float = PROVIDER_TIMEOUT_S,
                 default_profile: str = DEFAULT_PROFILE,
                 fallback_profile: str = FALLBACK_PROFILE,
                 far_destination_m: float = FAR_DESTINATION_M,
                 on_warning: Optional[Callable[[str], None]] = None):
        self.provider = provider
        self.cache = cache if cache is not None else RouteCache()
        self.timeout_s = timeout_s
        self.default_profile = default_profile
        self.fallback_profile = fallback_profile
        self.far_destination_m = far_destination_m
        self.on_warning = on_warning
        self._inflight: Dict[str, asyncio.Future] = {}

    async def acquire_route(self, start: GeoPoint, end: GeoPoint,
                            profile: Optional[str] = None) -> Route:
        profile = profile or self.default_profile

        if not (start.is_valid and end.is_valid):
            logger.warning("Invalid coordinates %s -> %s, drawing straight line", start, end)
            return self._invalid_route(start, end, profile)

        direct = distance_m(start, end)
        if direct > self.far_destination_m:
            self._warn(f"Destination is {direct / 1000:.1f} km away, too far for walking navigation",
                       extra={"event": "far_destination", "distance_m": direct})

        key = make_cache_key(start, end, profile)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Route cache hit %s", key)
            return cached

        # identical concurrent requests share one acquisition
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._acquire(start, end, profile, key))
            self._inflight[key] = task
            task.add_done_callback(lambda _t, k=key: self._inflight.pop(k, None))
        return await asyncio.shield(task)

    async def _acquire(self, start: GeoPoint, end: GeoPoint, profile: str, key: str) -> Route:
        try:
            route = await self._fetch(start, end, profile)
        except NoRoutablePoint as e:
            if profile != self.default_profile:
                return await self._degrade(start, end, profile, key, e)
            logger.warning("No routable point for %s, retrying with %s", profile, self.fallback_profile)
            try:
                route = await self._fetch(start, end, self.fallback_profile)
            except DirectionsError as e2:
                return await self._degrade(start, end, profile, key, e2)
        except DirectionsError as e:
            return await self._degrade(start, end, profile, key, e)

        await self.cache.aset(key, route)
        logger.info("Route acquired: %d points, %.0f m, %.0f s (%s)",
                    len(route.points), route.distance_m, route.duration_s, route.profile,
                    extra={"extra": {"event": "route_acquired", "key": key, "profile": route.profile,
                                     "points": len(route.points), "distance_m": route.distance_m}})
        return route

    async def _fetch(self, start: GeoPoint, end: GeoPoint, profile: str) -> Route:
        try:
            r = await asyncio.wait_for(self.provider.route(start, end, profile), timeout=self.timeout_s)
        except asyncio.TimeoutError as e:
            raise ProviderTimeout(f"No route within {self.timeout_s}s") from e
        except DirectionsError:
            raise
        except Exception as e:
            logger.exception("Directions provider failed unexpectedly")
            raise ProviderNetworkError(f"{type(e).__name__}: {e}") from e

        try:
            return Route.from_latlon(r["geometry"], r["total_dist"], r["total_time"], profile=profile)
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedResponse(f"Unusable provider result: {e}") from e

    async def _degrade(self, start: GeoPoint, end: GeoPoint, profile: str, key: str,
                       error: DirectionsError) -> Route:
        reason = f"{error.kind}: {error}" if str(error) else error.kind
        route = straight_line_route(start, end, profile, reason)
        # cached too, so repeated failures inside the TTL stay offline
        await self.cache.aset(key, route)
        self._warn(f"No route available ({reason}), showing direct line",
                   extra={"event": "route_degraded", "key": key, "kind": error.kind})
        return route

    def _invalid_route(self, start: GeoPoint, end: GeoPoint, profile: str) -> Route:
        # no usable geometry to measure, and no meaningful cache key
        return Route(
            points=(start, end),
            distance_m=0.0,
            duration_s=0.0,
            degraded=True,
            profile=profile,
            reason="invalid coordinates",
        )

    def _warn(self, message: str, extra: Optional[Dict[str, Any]] = None) -> None:
        logger.warning("%s", message, extra={"extra": extra} if extra else None)
        if self.on_warning is not None:
            try:
                self.on_warning(message)
            except Exception:
                logger.exception("on_warning callback failed")

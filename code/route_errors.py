class InvalidCoordinate(ValueError):
    """Latitude/longitude not finite or outside the WGS84 range."""
    pass


class DirectionsError(Exception):
    """Base class for every directions provider failure."""
    kind = "provider-error"


class ProviderTimeout(DirectionsError):
    kind = "timeout"


class ProviderNetworkError(DirectionsError):
    kind = "network"


class NoRoutablePoint(DirectionsError):
    """The provider found no routable road near one of the endpoints."""
    kind = "no-routable-point"


class NoRouteFound(DirectionsError):
    kind = "no-route"


class RateLimited(DirectionsError):
    kind = "rate-limited"


class MalformedResponse(DirectionsError):
    kind = "malformed-response"


class UnsupportedProfile(DirectionsError, ValueError):
    """The provider has no routing for the requested profile."""
    kind = "unsupported-profile"


class CacheLoadFailure(Exception):
    """Persisted cache could not be read. Callers treat it as an empty cache."""
    pass

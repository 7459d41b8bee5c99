import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

# Example .env:
# ORS_API_KEY=...
# DIRECTIONS_PROVIDER=ors
# OSRM_WALK_URL=http://localhost:5001
load_dotenv()

# -------------------------
# engine constants
# -------------------------
EARTH_RADIUS_M = 6371000.0
CACHE_TTL_MS = 5 * 60 * 1000
CACHE_KEY_PRECISION = 6

DEFAULT_PROFILE = "foot-walking"
FALLBACK_PROFILE = "driving-car"
WALKING_SPEED_MPS = 5000.0 / 3600.0

PROVIDER_TIMEOUT_S = 15.0
FAR_DESTINATION_M = 15000.0

TRACKER_INTERVAL_S = 1.0
LOOKAHEAD_MIN_M = 10.0
LOOKAHEAD_WINDOW = 20
OFF_ROUTE_M = 30.0
ARRIVAL_RADIUS_M = 15.0


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


@dataclass(frozen=True)
class Settings:
    ors_api_key: Optional[str] = None
    ors_base_url: str = "https://api.openrouteservice.org"
    osrm_walk_url: str = "http://localhost:5001"
    osrm_drive_url: str = "http://localhost:5000"
    directions_provider: str = "ors"
    route_timeout_s: float = PROVIDER_TIMEOUT_S
    route_cache_path: str = "route_cache.json"
    log_level: str = "INFO"
    log_json: bool = False


def load_settings() -> Settings:
    provider = os.getenv("DIRECTIONS_PROVIDER", "ors").strip().lower()
    if provider not in ("ors", "osrm"):
        raise ValueError(f"Unknown directions provider: {provider}")

    return Settings(
        ors_api_key=os.getenv("ORS_API_KEY"),
        ors_base_url=os.getenv("ORS_BASE_URL", Settings.ors_base_url),
        osrm_walk_url=os.getenv("OSRM_WALK_URL", Settings.osrm_walk_url),
        osrm_drive_url=os.getenv("OSRM_DRIVE_URL", Settings.osrm_drive_url),
        directions_provider=provider,
        route_timeout_s=_env_float("ROUTE_TIMEOUT_S", PROVIDER_TIMEOUT_S),
        route_cache_path=os.getenv("ROUTE_CACHE_PATH", Settings.route_cache_path),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        log_json=_env_bool("LOG_JSON"),
    )

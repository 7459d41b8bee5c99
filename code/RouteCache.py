from __future__ import annotations

import asyncio
import json
import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Protocol

from config import CACHE_KEY_PRECISION, CACHE_TTL_MS
from json_io import write_json_atomic
from GeoPoint import GeoPoint
from Route import Route
from route_errors import CacheLoadFailure

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


def _fmt(value: float) -> str:
    v = round(value, CACHE_KEY_PRECISION)
    if v == 0:
        v = 0.0  # -0.0 and 0.0 must share a key
    return f"{v:.{CACHE_KEY_PRECISION}f}"


def make_cache_key(start: GeoPoint, end: GeoPoint, profile: str) -> str:
    return f"{_fmt(start.lat)}_{_fmt(start.lon)}_{_fmt(end.lat)}_{_fmt(end.lon)}_{profile}"


@dataclass(frozen=True)
class CacheEntry:
    key: str
    route: Route
    stored_at_ms: int

    def age_ms(self, now: int) -> int:
        return now - self.stored_at_ms

    def to_dict(self) -> Dict[str, Any]:
        return {"key": self.key, "route": self.route.to_dict(), "stored_at_ms": self.stored_at_ms}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheEntry":
        return cls(
            key=data["key"],
            route=Route.from_dict(data["route"]),
            stored_at_ms=int(data["stored_at_ms"]),
        )


class CacheStore(Protocol):
    def load(self) -> Dict[str, CacheEntry]: ...

    def save(self, entries: Dict[str, CacheEntry]) -> None: ...


# -------------------------
# stores
# -------------------------
class MemoryStore:
    def __init__(self, entries: Optional[Dict[str, CacheEntry]] = None):
        self.entries: Dict[str, CacheEntry] = dict(entries or {})
        self.saves = 0

    def load(self) -> Dict[str, CacheEntry]:
        return dict(self.entries)

    def save(self, entries: Dict[str, CacheEntry]) -> None:
        self.entries = dict(entries)
        self.saves += 1


class JsonFileStore:
    """Cache entries as one JSON object on disk, keyed by cache key."""

    def __init__(self, path: str):
        self.path = path

    def load(self) -> Dict[str, CacheEntry]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, ValueError) as e:
            raise CacheLoadFailure(f"Cannot read route cache {self.path}: {e}") from e

        if not isinstance(raw, dict):
            raise CacheLoadFailure(f"Route cache {self.path} is not a JSON object")

        entries: Dict[str, CacheEntry] = {}
        for key, value in raw.items():
            try:
                entries[key] = CacheEntry.from_dict(value)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping unreadable cache entry %s: %s", key, e)
        return entries

    def save(self, entries: Dict[str, CacheEntry]) -> None:
        write_json_atomic({k: e.to_dict() for k, e in entries.items()}, self.path)


# -------------------------
# cache
# -------------------------
class RouteCache:
    """
    TTL cache of acquired routes, keyed by make_cache_key().
    Expired entries are dropped when read, never swept.
    Every set()/aset() persists the whole mapping to the store.
    """

    def __init__(self,
                 store: Optional[CacheStore] = None,
                 ttl_ms: int = CACHE_TTL_MS,
                 clock: Callable[[], int] = now_ms):
        self.store = store if store is not None else MemoryStore()
        self.ttl_ms = ttl_ms
        self.clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._save_lock = asyncio.Lock()

        try:
            self._entries = dict(self.store.load())
        except Exception as e:
            # a broken cache must never stop navigation
            logger.warning("Route cache load failed, starting empty: %s", e)
            self._entries = {}
        else:
            logger.debug("Route cache loaded %d entries", len(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def get(self, key: str) -> Optional[Route]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.age_ms(self.clock()) >= self.ttl_ms:
            self._entries.pop(key, None)
            logger.debug("Route cache entry expired: %s", key)
            return None
        return entry.route

    def set(self, key: str, route: Route) -> None:
        self._put(key, route)
        self._persist()

    async def aset(self, key: str, route: Route) -> None:
        """
        set() for coroutines. The entry is readable at once; the store write
        runs in a worker thread, one at a time, each saving the newest mapping.
        """
        self._put(key, route)
        async with self._save_lock:
            await asyncio.to_thread(self._save, dict(self._entries))

    def _put(self, key: str, route: Route) -> None:
        self._entries[key] = CacheEntry(key=key, route=route, stored_at_ms=self.clock())

    def clear(self) -> None:
        self._entries = {}
        self._persist()

    def _persist(self) -> None:
        # save a snapshot so the store never sees a dict mid-update
        self._save(dict(self._entries))

    def _save(self, snapshot: Dict[str, CacheEntry]) -> None:
        try:
            self.store.save(snapshot)
        except Exception:
            # persistence is best effort, the in-memory entry stays valid
            logger.exception("Route cache save failed")

import asyncio
import time
from typing import Any, Dict, List, Optional

from GeoPoint import GeoPoint, UserPosition


def ors_like(points, dist=100.0, duration=72.0) -> Dict[str, Any]:
    return {"geometry": list(points), "total_dist": dist, "total_time": duration}


class FakeProvider:
    """Returns (or raises) a canned result per profile and records every call."""

    def __init__(self, results: Dict[str, Any], delay_s: float = 0.0):
        self.results = results
        self.delay_s = delay_s
        self.calls: List[str] = []
        self.requests: List[tuple] = []

    async def route(self, start: GeoPoint, end: GeoPoint, profile: str) -> Dict[str, Any]:
        self.calls.append(profile)
        self.requests.append((start, end, profile))
        await asyncio.sleep(self.delay_s)
        r = self.results[profile]
        if isinstance(r, BaseException):
            raise r
        return r


class HangingProvider:
    def __init__(self):
        self.calls = 0

    async def route(self, start, end, profile):
        self.calls += 1
        await asyncio.sleep(3600)


class FakeClock:
    def __init__(self, t: int = 0):
        self.t = t

    def __call__(self) -> int:
        return self.t


class FixedPosition:
    def __init__(self, pos: Optional[UserPosition] = None):
        self.pos = pos

    def latest(self) -> Optional[UserPosition]:
        return self.pos


class FailingStore:
    """Cache store whose writes always fail with a non-I/O error."""

    def __init__(self, exc: Exception):
        self.exc = exc
        self.saves = 0

    def load(self):
        return {}

    def save(self, entries):
        self.saves += 1
        raise self.exc


class SlowStore:
    """Cache store whose writes block the calling thread."""

    def __init__(self, delay_s: float):
        self.delay_s = delay_s
        self.entries = {}

    def load(self):
        return {}

    def save(self, entries):
        time.sleep(self.delay_s)
        self.entries = dict(entries)

import asyncio

import pytest
from aiohttp.test_utils import TestClient, TestServer

import realtime_runner
from config import Settings
from fakes import FakeProvider, FixedPosition, ors_like
from GeoPoint import GeoPoint, UserPosition
from navigation import NavigationSession, build_provider, build_session
from directions import OrsDirectionsProvider, OsrmDirectionsProvider
from OrientationTracker import TrackerState
from position_source import SimulatedWalker
from render_sinks import RecordingRenderSink
from RenderSink import RenderSinkAdapter
from Route import Route
from RouteCache import RouteCache, make_cache_key
from route_errors import ProviderNetworkError
from route_pipeline import RoutePipeline

A = GeoPoint(-13.3775457, -38.9159969)
MID = GeoPoint(-13.379, -38.918)
B = GeoPoint(-13.38, -38.92)
GEOMETRY = [A.as_tuple(), MID.as_tuple(), B.as_tuple()]


def _session(results=None, sink=None, positions=None):
    provider = FakeProvider(results or {"foot-walking": ors_like(GEOMETRY, 612.0, 441.0)})
    pipeline = RoutePipeline(provider, RouteCache())
    return NavigationSession(pipeline, RenderSinkAdapter(sink), positions=positions), provider


# -------------------------
# session
# -------------------------
def test_navigate_draws_and_tracks():
    sink = RecordingRenderSink()
    session, provider = _session(sink=sink)

    async def go():
        route = await session.navigate(A, B)
        running = session.tracker.state
        session.positions.update(A.lat, A.lon, 5.0)
        state = session.tracker.tick()
        session.stop()
        return route, running, state

    route, running, state = asyncio.run(go())
    assert running is TrackerState.RUNNING
    assert len(route.points) == 3
    assert state.target_point_index == 1
    assert sink.names() == ["draw_route", "set_heading", "clear_route"]
    assert session.tracker.state is TrackerState.STOPPED
    assert session.route is None
    # the route stays cached after stop
    assert make_cache_key(A, B, "foot-walking") in session.pipeline.cache


def test_navigate_twice_reuses_cache_and_tracker():
    session, provider = _session()

    async def go():
        await session.navigate(A, B)
        task = session.tracker._task
        await session.navigate(A, B)
        same = session.tracker._task is task
        session.stop()
        return same

    assert asyncio.run(go())
    assert provider.calls == ["foot-walking"]


def test_navigate_offline_still_tracks():
    session, _ = _session({"foot-walking": ProviderNetworkError("offline")})

    async def go():
        route = await session.navigate(A, B)
        state = session.tracker.state
        session.stop()
        return route, state

    route, state = asyncio.run(go())
    assert route.degraded
    assert state is TrackerState.RUNNING


def test_switch_sink_mid_session():
    first, second = RecordingRenderSink(), RecordingRenderSink()
    session, _ = _session(sink=first)

    async def go():
        await session.navigate(A, B)
        session.positions.update(A.lat, A.lon)
        session.tracker.tick()
        session.switch_sink(second)
        session.stop()

    asyncio.run(go())
    assert second.names() == ["draw_route", "set_heading", "clear_route"]
    assert "clear_route" not in first.names()


def test_build_provider_from_settings():
    assert isinstance(build_provider(Settings(directions_provider="osrm")), OsrmDirectionsProvider)
    assert isinstance(build_provider(Settings(ors_api_key="k")), OrsDirectionsProvider)
    with pytest.raises(ValueError):
        build_provider(Settings())


def test_build_session_uses_json_cache(tmp_path):
    settings = Settings(route_cache_path=str(tmp_path / "cache.json"))
    provider = FakeProvider({"foot-walking": ors_like(GEOMETRY)})
    session = build_session(settings, provider=provider)

    async def go():
        await session.navigate(A, B)
        session.stop()

    asyncio.run(go())
    assert (tmp_path / "cache.json").exists()
    reloaded = build_session(settings, provider=provider)
    assert len(reloaded.pipeline.cache) == 1


def test_simulated_walker_moves_along_route():
    route = Route.from_latlon(GEOMETRY, 612.0, 441.0)
    clock = [100.0]
    walker = SimulatedWalker(route, speed_mps=10.0, clock=lambda: clock[0])
    assert walker.latest() is None

    walker.start()
    assert walker.latest().point == A
    clock[0] += 1000
    assert walker.latest().point == B
    assert walker.done


# -------------------------
# http / websocket runner
# -------------------------
def _run_app(session, fn):
    async def go():
        app = realtime_runner.create_app(session)
        async with TestClient(TestServer(app)) as client:
            return await fn(client)

    return asyncio.run(go())


def test_http_route_position_state():
    session, _ = _session()

    async def fn(client):
        resp = await client.post("/route", json={
            "start": {"lat": A.lat, "lon": A.lon},
            "dest": {"lat": B.lat, "lon": B.lon},
        })
        assert resp.status == 200
        route = await resp.json()

        resp = await client.post("/position", json={"lat": A.lat, "lon": A.lon, "accuracy": 8})
        assert resp.status == 200
        session.tracker.tick()

        resp = await client.get("/state")
        return route, await resp.json()

    route, state = _run_app(session, fn)
    assert route["degraded"] is False
    assert route["geometry_latlon"][0] == [A.lat, A.lon]
    assert state["tracker"] == "RUNNING"
    assert state["orientation"]["target_point_index"] == 1
    # cleanup stops the session
    assert session.tracker.state is TrackerState.STOPPED


def test_http_bad_requests():
    session, _ = _session()

    async def fn(client):
        statuses = []
        for path, kw in [
            ("/route", {"data": "not json"}),
            ("/route", {"json": [1, 2]}),
            ("/route", {"json": {"start": {"lat": 1}}}),
            ("/position", {"json": {"lat": "north", "lon": 0}}),
        ]:
            resp = await client.post(path, **kw)
            statuses.append(resp.status)
        return statuses

    assert _run_app(session, fn) == [400, 400, 400, 400]


def test_http_position_conflict_for_fixed_source():
    session, _ = _session(positions=FixedPosition())

    async def fn(client):
        resp = await client.post("/position", json={"lat": 0, "lon": 0})
        return resp.status

    assert _run_app(session, fn) == 409


def test_websocket_gets_route_then_headings():
    session, _ = _session()

    async def fn(client):
        await client.post("/route", json={
            "start": {"lat": A.lat, "lon": A.lon},
            "dest": {"lat": B.lat, "lon": B.lon},
        })
        ws = await client.ws_connect("/ws")
        first = await ws.receive_json(timeout=2)

        await client.post("/position", json={"lat": A.lat, "lon": A.lon})
        session.tracker.tick()
        second = await ws.receive_json(timeout=2)
        await ws.close()
        return first, second

    first, second = _run_app(session, fn)
    assert first["type"] == "route"
    assert len(first["geometry_latlon"]) == 3
    assert second["type"] == "heading"
    assert 0.0 <= second["heading"] < 360.0


# -------------------------
# off-route recalculation
# -------------------------
OFF = GeoPoint(-13.3760, -38.9140)  # ~270 m north-east of A, away from the route


def test_off_route_recalculates_from_current_position():
    positions = FixedPosition(UserPosition(OFF.lat, OFF.lon))
    session, provider = _session(positions=positions)

    async def go():
        await session.navigate(A, B)
        session.tracker.tick()
        pending = session._rerouting
        session.tracker.tick()  # still pending, no second recalculation
        same = session._rerouting is pending
        await pending
        route = session.tracker.route
        session.stop()
        return same, route

    same, route = asyncio.run(go())
    assert same
    assert len(provider.requests) == 2
    start, end, profile = provider.requests[1]
    assert start == OFF
    assert end == B
    assert profile == "foot-walking"
    assert route is not None


def test_stop_cancels_pending_recalculation():
    positions = FixedPosition(UserPosition(OFF.lat, OFF.lon))
    session, provider = _session(positions=positions)

    async def go():
        await session.navigate(A, B)
        session.tracker.tick()
        pending = session._rerouting
        session.stop()
        await asyncio.sleep(0)
        return pending

    pending = asyncio.run(go())
    assert pending.cancelled()
    assert len(provider.requests) == 1
    assert session.tracker.state is TrackerState.STOPPED

import asyncio
import json
import logging
from dataclasses import asdict
from typing import Any, Dict

from aiohttp import WSMsgType, web

from GeoPoint import GeoPoint
from geo_kernel import bearing_to_cardinal
from navigation import NavigationSession
from render_sinks import QueueRenderSink
from Route import Route
from ws_bus import broadcast_forever

logger = logging.getLogger(__name__)


def route_json(route: Route) -> Dict[str, Any]:
    return {
        "geometry_latlon": [p.as_tuple() for p in route.points],
        "distance_m": route.distance_m,
        "duration_s": route.duration_s,
        "degraded": route.degraded,
        "profile": route.profile,
        "warning": route.reason,
    }


def _point(payload: Dict[str, Any], name: str) -> GeoPoint:
    p = payload[name]
    # range problems are left to the pipeline, which degrades instead of failing
    return GeoPoint(float(p["lat"]), float(p["lon"]))


async def _read_json(request: web.Request) -> Dict[str, Any]:
    try:
        payload = await request.json()
    except json.JSONDecodeError:
        raise web.HTTPBadRequest(text="body must be JSON")
    if not isinstance(payload, dict):
        raise web.HTTPBadRequest(text="body must be a JSON object")
    return payload


# -------------------------
# handlers
# -------------------------
async def handle_route(request: web.Request) -> web.Response:
    session: NavigationSession = request.app["session"]
    payload = await _read_json(request)
    try:
        start = _point(payload, "start")
        dest = _point(payload, "dest")
    except (KeyError, TypeError, ValueError) as e:
        raise web.HTTPBadRequest(text=f"bad start/dest: {e}")

    route = await session.navigate(start, dest, payload.get("profile"))
    return web.json_response(route_json(route))


async def handle_position(request: web.Request) -> web.Response:
    session: NavigationSession = request.app["session"]
    payload = await _read_json(request)
    update = getattr(session.positions, "update", None)
    if update is None:
        raise web.HTTPConflict(text="position source does not accept updates")
    try:
        update(float(payload["lat"]), float(payload["lon"]), float(payload.get("accuracy", 0.0)))
    except (KeyError, TypeError, ValueError) as e:
        raise web.HTTPBadRequest(text=f"bad position: {e}")
    return web.json_response({"status": "ok"})


async def handle_stop(request: web.Request) -> web.Response:
    request.app["session"].stop()
    return web.json_response({"status": "stopped"})


async def handle_state(request: web.Request) -> web.Response:
    session: NavigationSession = request.app["session"]
    orientation = session.adapter.last_orientation
    return web.json_response({
        "tracker": session.tracker.state.name,
        "route": route_json(session.route) if session.route else None,
        "orientation": asdict(orientation) if orientation else None,
    })


async def handle_ws(request: web.Request) -> web.WebSocketResponse:
    session: NavigationSession = request.app["session"]
    ws = web.WebSocketResponse(heartbeat=30)
    await ws.prepare(request)

    # late subscribers start from the current picture
    if session.route is not None:
        await ws.send_json({"type": "route", **route_json(session.route)})
    orientation = session.adapter.last_orientation
    if orientation is not None:
        await ws.send_json({
            "type": "heading",
            "heading": orientation.heading_degrees,
            "cardinal": bearing_to_cardinal(orientation.heading_degrees),
        })

    request.app["subscribers"].add(ws)
    try:
        async for msg in ws:
            if msg.type == WSMsgType.ERROR:
                logger.warning("websocket closed with %s", ws.exception())
    finally:
        request.app["subscribers"].discard(ws)
    return ws


# -------------------------
# app
# -------------------------
async def _start_background(app: web.Application) -> None:
    app["broadcaster"] = asyncio.get_running_loop().create_task(broadcast_forever(app))


async def _stop_background(app: web.Application) -> None:
    app["session"].stop()
    task = app["broadcaster"]
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    for ws in list(app["subscribers"]):
        await ws.close()


def create_app(session: NavigationSession, queue_size: int = 100) -> web.Application:
    app = web.Application()
    app["session"] = session
    app["pub_q"] = asyncio.Queue(maxsize=queue_size)
    app["subscribers"] = set()

    if session.adapter.active_sink is None:
        session.switch_sink(QueueRenderSink(app["pub_q"]))

    app.router.add_post("/route", handle_route)
    app.router.add_post("/position", handle_position)
    app.router.add_post("/stop", handle_stop)
    app.router.add_get("/state", handle_state)
    app.router.add_get("/ws", handle_ws)

    app.on_startup.append(_start_background)
    app.on_cleanup.append(_stop_background)
    return app


def run(session: NavigationSession, host: str = "127.0.0.1", port: int = 8000) -> None:
    web.run_app(create_app(session), host=host, port=port)

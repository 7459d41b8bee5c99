import argparse
import asyncio
import webbrowser

from config import DEFAULT_PROFILE, load_settings
from engine_logging import configure_logging
from GeoPoint import GeoPoint
from navigation import build_session
from position_source import LatestPositionSource, SimulatedWalker
from render_sinks import FoliumRenderSink
import realtime_runner

# Coordinates: (lat, lon)
start = (-13.3775457, -38.9159969)   # Itacaré, centro
end = (-13.3800000, -38.9200000)     # praia


async def simulate(args, settings) -> None:
    sink = FoliumRenderSink(args.map)
    session = build_session(settings, sink=sink)

    route = await session.navigate(GeoPoint(*start), GeoPoint(*end), args.profile)
    print(f"route: {len(route.points)} points, {route.distance_m:.0f} m, "
          f"{route.duration_s / 60:.1f} min, degraded={route.degraded}")
    if route.degraded:
        print("warning:", route.reason)

    walker = SimulatedWalker(route, time_scale=args.speedup)
    session.positions = walker
    session.tracker.start(route, walker)
    walker.start()
    webbrowser.open(args.map)

    while not walker.done:
        await asyncio.sleep(session.tracker.interval_s)
        pos = walker.latest()
        if pos is not None:
            sink.move_marker(pos.lat, pos.lon)
        state = session.adapter.last_orientation
        if state is not None:
            print(f"heading {state.heading_degrees:6.1f}  "
                  f"next #{state.target_point_index}  remaining {state.distance_remaining_m:.0f} m")

    session.stop()


def main() -> None:
    parser = argparse.ArgumentParser(description="Walking route + live heading demo")
    parser.add_argument("--serve", action="store_true", help="run the HTTP/websocket server")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--profile", default=DEFAULT_PROFILE)
    parser.add_argument("--map", default="map.html")
    parser.add_argument("--speedup", type=float, default=10.0)
    args = parser.parse_args()

    settings = load_settings()
    configure_logging(settings.log_level, settings.log_json)

    if args.serve:
        session = build_session(settings, positions=LatestPositionSource())
        realtime_runner.run(session, port=args.port)
    else:
        asyncio.run(simulate(args, settings))


if __name__ == "__main__":
    main()

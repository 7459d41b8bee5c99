from __future__ import annotations

import asyncio
import time
from typing import Any, List, Optional, Sequence, Tuple

import folium

from GeoPoint import GeoPoint, LatLon
from geo_kernel import bearing_to_cardinal
from json_io import write_json_atomic
from ws_bus import publish_nowait

ROUTE_COLOR = "#3b82f6"


# -------------------------
# 2D map (folium / leaflet html)
# -------------------------
class FoliumRenderSink:
    """
    Renders the route and a heading arrow into a standalone leaflet page.
    The file is rewritten on every change; open it once and reload.
    """

    def __init__(self, path: str = "map.html", zoom_start: int = 16):
        self.path = path
        self.zoom_start = zoom_start
        self.points: List[LatLon] = []
        self.degraded = False
        self.heading: Optional[float] = None
        self.marker_pos: Optional[LatLon] = None

    def draw_route(self, points: Sequence[GeoPoint], degraded: bool) -> None:
        self.points = [p.as_tuple() for p in points]
        self.degraded = degraded
        self.heading = None
        if self.marker_pos is None and self.points:
            self.marker_pos = self.points[0]
        self.save()

    def set_heading(self, heading_degrees: float) -> None:
        self.heading = heading_degrees
        self.save()

    def clear_route(self) -> None:
        self.points = []
        self.degraded = False
        self.heading = None
        self.save()

    def move_marker(self, lat: float, lon: float) -> None:
        # the renderer owns the user position, the engine only sends headings
        self.marker_pos = (lat, lon)

    def build_map(self) -> folium.Map:
        center = self.marker_pos or (self.points[0] if self.points else (0.0, 0.0))
        m = folium.Map(location=center, zoom_start=self.zoom_start)

        if self.points:
            line_opts = {"color": ROUTE_COLOR, "weight": 5, "opacity": 0.8}
            if self.degraded:
                line_opts["dash_array"] = "10,10"
            tooltip = "Direct line (no route available)" if self.degraded else "Route"
            folium.PolyLine(self.points, tooltip=tooltip, **line_opts).add_to(m)
            folium.Marker(self.points[-1], tooltip="Destination", icon=folium.Icon(color="red")).add_to(m)

        if self.marker_pos is not None:
            if self.heading is None:
                folium.Marker(self.marker_pos, tooltip="You", icon=folium.Icon(color="blue")).add_to(m)
            else:
                arrow = (
                    f'<div style="transform: rotate({self.heading:.1f}deg); '
                    f'font-size: 24px; color: {ROUTE_COLOR};">&#11014;</div>'
                )
                folium.Marker(
                    self.marker_pos,
                    tooltip=f"You ({self.heading:.0f}° {bearing_to_cardinal(self.heading)})",
                    icon=folium.DivIcon(html=arrow, icon_size=(24, 24), icon_anchor=(12, 12)),
                ).add_to(m)
        return m

    def save(self) -> None:
        self.build_map().save(self.path)


# -------------------------
# json snapshot (polled by the web/3D frontend)
# -------------------------
class JsonRenderSink:
    def __init__(self, path: str = "navigation.json"):
        self.path = path
        self.snapshot = {"route": None, "heading": None, "cardinal": None, "t": None}

    def draw_route(self, points: Sequence[GeoPoint], degraded: bool) -> None:
        self.snapshot["route"] = {
            "geometry_latlon": [p.as_tuple() for p in points],
            "degraded": degraded,
        }
        self.snapshot["heading"] = None
        self.snapshot["cardinal"] = None
        self._write()

    def set_heading(self, heading_degrees: float) -> None:
        self.snapshot["heading"] = heading_degrees
        self.snapshot["cardinal"] = bearing_to_cardinal(heading_degrees)
        self._write()

    def clear_route(self) -> None:
        self.snapshot = {"route": None, "heading": None, "cardinal": None, "t": None}
        self._write()

    def _write(self) -> None:
        self.snapshot["t"] = time.time()
        write_json_atomic(self.snapshot, self.path)


# -------------------------
# event queue (websocket subscribers, see ws_bus)
# -------------------------
class QueueRenderSink:
    def __init__(self, q: asyncio.Queue):
        self.q = q

    def draw_route(self, points: Sequence[GeoPoint], degraded: bool) -> None:
        publish_nowait(self.q, {
            "type": "route",
            "geometry_latlon": [p.as_tuple() for p in points],
            "degraded": degraded,
        })

    def set_heading(self, heading_degrees: float) -> None:
        publish_nowait(self.q, {
            "type": "heading",
            "heading": heading_degrees,
            "cardinal": bearing_to_cardinal(heading_degrees),
        })

    def clear_route(self) -> None:
        publish_nowait(self.q, {"type": "clear"})


class RecordingRenderSink:
    """Keeps every call; handy for debugging a session without a renderer."""

    def __init__(self):
        self.calls: List[Tuple[str, Any]] = []

    def draw_route(self, points: Sequence[GeoPoint], degraded: bool) -> None:
        self.calls.append(("draw_route", (tuple(points), degraded)))

    def set_heading(self, heading_degrees: float) -> None:
        self.calls.append(("set_heading", heading_degrees))

    def clear_route(self) -> None:
        self.calls.append(("clear_route", None))

    def names(self) -> List[str]:
        return [name for name, _ in self.calls]

import asyncio
from typing import Any, Dict

from aiohttp import web


def publish_nowait(q: asyncio.Queue, event: Dict[str, Any]) -> None:
    # keep only latest event if queue is full
    if q.full():
        try:
            q.get_nowait()
            q.task_done()
        except asyncio.QueueEmpty:
            pass
    q.put_nowait(event)


async def broadcast_forever(app: web.Application) -> None:
    """Fan every queued event out to all websocket subscribers."""
    q: asyncio.Queue = app["pub_q"]
    subs = app["subscribers"]

    while True:
        event = await q.get()
        try:
            for ws in list(subs):
                if ws.closed:
                    subs.discard(ws)
                    continue
                try:
                    await ws.send_json(event)
                except ConnectionResetError:
                    subs.discard(ws)
        finally:
            q.task_done()

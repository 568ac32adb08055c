"""
aiohttp websocket server exposing the host's named port.

Observers connect to ws://<host>:<port>/port/<name>; only the configured
port name is accepted. Each connection is a WebSocketPort answered by
HostDispatcher.serve(). On shutdown open connections are closed with
GOING_AWAY and in-flight requests are cancelled.
"""

import asyncio
import logging

from aiohttp import web, WSCloseCode

from ..constants import PORT_NAME
from .host import HostDispatcher
from .transport import WebSocketPort

logger = logging.getLogger(__name__)

# Live observer ports -> their dispatch task sets
CONNECTIONS = web.AppKey("connections", dict)


async def close_connections(app: web.Application):
    """on_shutdown hook: drop every observer so cleanup does not wait on them."""
    connections = list(app[CONNECTIONS].items())
    if connections:
        logger.info("[Channel] Closing %d observer connection(s)", len(connections))
    for port, tasks in connections:
        for task in list(tasks):
            task.cancel()
        await port.close(code=WSCloseCode.GOING_AWAY, message=b"Host shutting down")


def create_app(dispatcher: HostDispatcher, port_name: str = PORT_NAME) -> web.Application:
    """Build the host web app."""

    async def handle_port(request: web.Request) -> web.StreamResponse:
        if request.match_info["name"] != port_name:
            return web.json_response({"ok": False, "error": "unknown_port"}, status=404)

        ws = web.WebSocketResponse(heartbeat=30)
        await ws.prepare(request)
        logger.info("[Channel] Observer connected from %s", request.remote)

        port = WebSocketPort(ws, port_name)
        connections = request.app[CONNECTIONS]
        connections[port] = dispatcher.serve(port)
        try:
            await port.run()
        finally:
            connections.pop(port, None)

        logger.info("[Channel] Observer disconnected")
        return ws

    async def handle_health(request: web.Request) -> web.Response:
        return web.json_response({"ok": True})

    app = web.Application()
    app[CONNECTIONS] = {}
    app.router.add_get("/port/{name}", handle_port)
    app.router.add_get("/health", handle_health)
    app.on_shutdown.append(close_connections)
    return app


async def run_host(dispatcher: HostDispatcher, host: str, port: int, port_name: str = PORT_NAME):
    """Serve until cancelled."""
    app = create_app(dispatcher, port_name)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info("[Channel] Host listening on ws://%s:%d/port/%s", host, port, port_name)
    try:
        await asyncio.Event().wait()
    finally:
        await runner.cleanup()
        dispatcher.shutdown()

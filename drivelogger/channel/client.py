"""
Observer side of the channel.

PortClient multiplexes request/response calls over one lazily opened Port
and reconnects after disconnects. call() never raises: failures resolve as
{"ok": False, "error": ...}.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from ..errors import ChannelError
from .protocol import RESP
from .transport import Port

logger = logging.getLogger(__name__)

Connector = Callable[[], Awaitable[Port]]


class PortClient:
    """
    Request/response client with a pending-request table.

    Request IDs come from a counter that only grows for the lifetime of the
    client. When no port can be used, a call backs off 150ms, 300ms, 600ms...
    between attempts.
    """

    def __init__(
        self,
        connector: Connector,
        host_alive: Callable[[], bool] = lambda: True,
        base_delay: float = 0.15,
        reconnect_delay: float = 0.6,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            connector: Coroutine factory opening a new Port; raises
                ChannelError when the host can't be reached
            host_alive: Cheap liveness check run before every attempt
            base_delay: First backoff delay in seconds
            reconnect_delay: Hold-off after a disconnect before reconnecting
        """
        self.connector = connector
        self.host_alive = host_alive
        self.base_delay = base_delay
        self.reconnect_delay = reconnect_delay
        self.sleep = sleep
        self.clock = clock
        self.port: Optional[Port] = None
        self.pending: dict[str, asyncio.Future] = {}
        self._seq = 0
        self._reconnect_at = 0.0

    def _next_request_id(self) -> str:
        self._seq += 1
        return str(self._seq)

    async def _ensure_port(self) -> Optional[Port]:
        if self.port is not None and not self.port.closed:
            return self.port
        if self.clock() < self._reconnect_at:
            return None
        try:
            port = await self.connector()
        except ChannelError as e:
            logger.debug("[Channel] Port unavailable: %s", e.code)
            return None
        port.on_message(self._on_message)
        port.on_disconnect(lambda: self._on_disconnect(port))
        self.port = port
        return port

    def _on_message(self, message: dict):
        if message.get("type") != RESP:
            return
        future = self.pending.pop(message.get("requestId"), None)
        if future is not None and not future.done():
            future.set_result(message)

    def _on_disconnect(self, port: Port):
        if port is not self.port:
            return
        self.port = None
        self._reconnect_at = self.clock() + self.reconnect_delay
        pending, self.pending = self.pending, {}
        if pending:
            logger.debug("[Channel] Disconnected with %d pending request(s)", len(pending))
        for future in pending.values():
            if not future.done():
                future.set_result({"ok": False, "error": ChannelError.PORT_DISCONNECTED})

    async def _backoff(self, attempt: int):
        await self.sleep(self.base_delay * (2 ** attempt))

    async def call(self, payload: dict, max_attempts: int = 5) -> dict:
        """
        Send one request and wait for its response.

        Returns:
            The host's RESP message, or a soft failure dict with error
            "port_unavailable" / "port_disconnected"
        """
        loop = asyncio.get_running_loop()
        for attempt in range(max_attempts):
            port = await self._ensure_port() if self.host_alive() else None
            if port is None:
                await self._backoff(attempt)
                continue

            request_id = self._next_request_id()
            future = loop.create_future()
            self.pending[request_id] = future
            try:
                await port.send({**payload, "requestId": request_id})
            except ChannelError:
                self.pending.pop(request_id, None)
                await self._backoff(attempt)
                continue
            return await future

        logger.debug("[Channel] %s gave up after %d attempts", payload.get("type"), max_attempts)
        return {"ok": False, "error": ChannelError.PORT_UNAVAILABLE}

    async def close(self):
        if self.port is not None and not self.port.closed:
            await self.port.close()

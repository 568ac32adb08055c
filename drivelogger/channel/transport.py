"""
Duplex message ports.

A Port carries JSON-able dicts in both directions and reports disconnects
once. LocalPort pairs live in one event loop (tests, embedded use);
WebSocketPort wraps either end of the host's aiohttp websocket.
"""

import asyncio
import logging
import ssl
from typing import Callable, Optional

import aiohttp
import certifi

from ..constants import PORT_NAME
from ..errors import ChannelError

logger = logging.getLogger(__name__)

MessageHandler = Callable[[dict], None]
DisconnectHandler = Callable[[], None]


class Port:
    """Named duplex channel endpoint."""

    def __init__(self, name: str = PORT_NAME):
        self.name = name
        self.closed = False
        self._message_handlers: list[MessageHandler] = []
        self._disconnect_handlers: list[DisconnectHandler] = []

    def on_message(self, handler: MessageHandler):
        self._message_handlers.append(handler)

    def on_disconnect(self, handler: DisconnectHandler):
        self._disconnect_handlers.append(handler)

    def _deliver(self, message: dict):
        for handler in list(self._message_handlers):
            handler(message)

    def _disconnected(self):
        if self.closed:
            return
        self.closed = True
        for handler in list(self._disconnect_handlers):
            handler()

    async def send(self, message: dict):
        """
        Post a message to the other side.

        Raises:
            ChannelError: the port is closed
        """
        raise NotImplementedError

    async def close(self):
        raise NotImplementedError


class LocalPort(Port):
    """One end of an in-loop port pair. Delivery is asynchronous."""

    def __init__(self, name: str = PORT_NAME):
        super().__init__(name)
        self.peer: Optional["LocalPort"] = None

    async def send(self, message: dict):
        if self.closed or self.peer is None or self.peer.closed:
            raise ChannelError(ChannelError.PORT_DISCONNECTED)
        asyncio.get_running_loop().call_soon(self.peer._deliver, dict(message))

    async def close(self):
        loop = asyncio.get_running_loop()
        self._disconnected()
        if self.peer is not None:
            loop.call_soon(self.peer._disconnected)


def local_port_pair(name: str = PORT_NAME) -> tuple[LocalPort, LocalPort]:
    """Create two connected LocalPorts: (observer side, host side)."""
    a, b = LocalPort(name), LocalPort(name)
    a.peer, b.peer = b, a
    return a, b


class WebSocketPort(Port):
    """
    Port over an aiohttp websocket.

    Wraps either end: the observer's ClientWebSocketResponse (start() spawns
    the reader) or the host's web.WebSocketResponse (the request handler
    awaits run() itself).
    """

    def __init__(self, ws, name: str = PORT_NAME):
        super().__init__(name)
        self.ws = ws
        self._reader: Optional[asyncio.Task] = None

    def start(self):
        self._reader = asyncio.create_task(self.run())

    async def run(self):
        """Deliver inbound messages until the socket closes."""
        try:
            async for msg in self.ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    try:
                        data = msg.json()
                    except ValueError:
                        logger.debug("[Channel] Dropping non-JSON frame")
                        continue
                    if isinstance(data, dict):
                        self._deliver(data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    logger.warning("[Channel] Connection error: %s", self.ws.exception())
                    break
                elif msg.type == aiohttp.WSMsgType.CLOSED:
                    break
        finally:
            self._disconnected()

    async def send(self, message: dict):
        if self.closed or self.ws.closed:
            raise ChannelError(ChannelError.PORT_DISCONNECTED)
        try:
            await self.ws.send_json(message)
        except (ConnectionError, aiohttp.ClientError) as e:
            logger.debug("[Channel] Send failed: %s", e)
            raise ChannelError(ChannelError.PORT_DISCONNECTED) from e

    async def close(self, code: int = aiohttp.WSCloseCode.OK, message: bytes = b""):
        await self.ws.close(code=code, message=message)
        if self._reader is not None:
            await self._reader


class WebSocketConnector:
    """
    Opens WebSocketPorts to the host on demand.

    Used as the PortClient connector; connection failures surface as
    ChannelError so the client can back off and retry.
    """

    def __init__(self, base_url: str, name: str = PORT_NAME, timeout: float = 5.0):
        self.url = f"{base_url.rstrip('/')}/{name}"
        self.name = name
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    def _ssl_context(self):
        if self.url.startswith("wss://"):
            return ssl.create_default_context(cafile=certifi.where())
        return True

    async def __call__(self) -> WebSocketPort:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=None, connect=self.timeout),
            )
        try:
            ws = await self._session.ws_connect(self.url, ssl=self._ssl_context(), heartbeat=30)
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            logger.debug("[Channel] Connect to %s failed: %s", self.url, e)
            raise ChannelError(ChannelError.PORT_UNAVAILABLE) from e
        port = WebSocketPort(ws, self.name)
        port.start()
        return port

    async def close(self):
        if self._session is not None:
            await self._session.close()

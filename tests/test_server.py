"""
Tests for the host's websocket server.

Runs the real aiohttp app on an ephemeral loopback port and talks to it
through WebSocketConnector and PortClient, the same path the observer uses.
"""

import asyncio
import threading

import aiohttp
from aiohttp import test_utils

from drivelogger.channel.client import PortClient
from drivelogger.channel.host import HostDispatcher
from drivelogger.channel.protocol import Ping, ResetConvo, SaveSnapshot
from drivelogger.channel.server import CONNECTIONS, create_app
from drivelogger.channel.transport import WebSocketConnector
from drivelogger.store import MemoryStore, ConversationBindings


class StubTokens:
    def get_access_token(self):
        return "tok"

    def set_client(self, client_id, client_secret=None):
        pass


class BlockingTokens(StubTokens):
    """Holds the host's worker thread until released."""

    def __init__(self):
        self.entered = threading.Event()
        self.release = threading.Event()

    def get_access_token(self):
        self.entered.set()
        self.release.wait(10)
        return "tok"


class StubDrive:
    def __init__(self):
        self.upserts = []

    def ensure_folder(self, token):
        return "folder-1"

    def upsert(self, token, folder_id, cached_id, name, content):
        self.upserts.append((cached_id, name, content))
        return cached_id or f"R{len(self.upserts)}"


async def no_sleep(delay):
    pass


async def wait_until(predicate, timeout=5.0):
    async def poll():
        while not predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(poll(), timeout)


class Host:
    """Dispatcher served by a TestServer. Must be started inside a running loop."""

    def __init__(self, tokens=None):
        self.store = MemoryStore()
        self.drive = StubDrive()
        self.dispatcher = HostDispatcher(
            tokens or StubTokens(), self.drive, ConversationBindings(self.store),
        )
        self.server = test_utils.TestServer(create_app(self.dispatcher))
        self.connectors = []

    async def start(self):
        await self.server.start_server()
        return self

    @property
    def base_url(self):
        return f"ws://{self.server.host}:{self.server.port}/port"

    def client(self, name=None):
        if name is None:
            connector = WebSocketConnector(self.base_url)
        else:
            connector = WebSocketConnector(self.base_url, name=name)
        self.connectors.append(connector)
        return PortClient(connector, sleep=no_sleep)

    async def close(self):
        await self.server.close()
        for connector in self.connectors:
            await connector.close()
        self.dispatcher.shutdown()


def run(scenario, tokens=None):
    async def main():
        host = await Host(tokens).start()
        try:
            return await scenario(host)
        finally:
            await host.close()

    return asyncio.run(main())


class TestRequests:
    """Tests for requests over a real websocket."""

    def test_ping_round_trip(self):
        async def scenario(host):
            client = host.client()
            response = await client.call(Ping().to_payload())
            await client.close()
            return response

        response = run(scenario)
        assert response["type"] == "RESP"
        assert response["ok"] is True
        assert response["requestId"] == "1"

    def test_save_then_reset(self):
        async def scenario(host):
            client = host.client()
            first = await client.call(SaveSnapshot("abc123", "ChatGPT — abc123.md", "v1").to_payload())
            second = await client.call(SaveSnapshot("abc123", "ChatGPT — abc123.md", "v2").to_payload())
            reset = await client.call(ResetConvo("abc123").to_payload())
            await client.close()
            return first, second, reset, host

        first, second, reset, host = run(scenario)
        assert first["ok"] is True and first["fileId"] == "R1"
        assert second["fileId"] == "R1"
        assert [u[0] for u in host.drive.upserts] == [None, "R1"]
        assert reset["ok"] is True
        assert ConversationBindings(host.store).get("abc123") is None

    def test_health(self):
        async def scenario(host):
            async with aiohttp.ClientSession() as session:
                async with session.get(f"http://{host.server.host}:{host.server.port}/health") as resp:
                    return resp.status, await resp.json()

        assert run(scenario) == (200, {"ok": True})


class TestPortNames:
    def test_unknown_port_name_is_404(self):
        async def scenario(host):
            url = f"http://{host.server.host}:{host.server.port}/port/otherPort"
            async with aiohttp.ClientSession() as session:
                async with session.get(url) as resp:
                    return resp.status, await resp.json()

        assert run(scenario) == (404, {"ok": False, "error": "unknown_port"})

    def test_unknown_port_name_is_unavailable_to_client(self):
        async def scenario(host):
            client = host.client(name="otherPort")
            return await client.call(Ping().to_payload())

        assert run(scenario) == {"ok": False, "error": "port_unavailable"}


class TestDisconnects:
    """Tests for connections ending on either side."""

    def test_observer_close_is_forgotten_by_host(self):
        async def scenario(host):
            client = host.client()
            await client.call(Ping().to_payload())
            connections = host.server.app[CONNECTIONS]
            open_before = len(connections)
            await client.close()
            await wait_until(lambda: not connections)
            return open_before

        assert run(scenario) == 1

    def test_shutdown_resolves_pending_and_is_prompt(self):
        """Closing the host drops observers instead of waiting on them."""
        tokens = BlockingTokens()

        async def scenario(host):
            client = host.client()
            call = asyncio.ensure_future(
                client.call(SaveSnapshot("abc123", "ChatGPT — abc123.md", "v1").to_payload())
            )
            await wait_until(tokens.entered.is_set)

            loop = asyncio.get_running_loop()
            started = loop.time()
            await host.server.close()
            elapsed = loop.time() - started

            result = await asyncio.wait_for(call, 5)
            tokens.release.set()
            return elapsed, result, client, host

        try:
            elapsed, result, client, host = run(scenario, tokens)
        finally:
            tokens.release.set()
        assert elapsed < 5
        assert result == {"ok": False, "error": "port_disconnected"}
        assert client.pending == {}
        assert host.server.app[CONNECTIONS] == {}

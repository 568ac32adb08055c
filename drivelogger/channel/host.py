"""
Host side of the channel.

HostDispatcher owns the credentials and the Drive client. Every inbound
message gets exactly one RESP carrying its requestId, whatever happens
while handling it.
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Awaitable, Callable, Optional

from ..drive.auth import TokenManager
from ..drive.client import DriveClient
from ..errors import DriveLoggerError, RemoteError
from ..store import ConversationBindings
from .protocol import (
    Ping,
    SaveSnapshot,
    ResetConvo,
    SetClientId,
    Request,
    ProtocolError,
    parse_request,
    make_response,
)
from .transport import Port

logger = logging.getLogger(__name__)

Respond = Callable[[dict], Awaitable[None]]


class HostDispatcher:
    """
    Dispatches channel requests to token, Drive and binding operations.

    Blocking work (HTTP, the consent prompt, store writes) runs on a single
    worker thread, so it is serialized while PINGs are answered right away.
    """

    def __init__(
        self,
        tokens: TokenManager,
        drive: DriveClient,
        bindings: ConversationBindings,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        self.tokens = tokens
        self.drive = drive
        self.bindings = bindings
        self.executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="drive-logger")

    async def _run_blocking(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, func, *args)

    def save_snapshot(self, request: SaveSnapshot) -> dict:
        """Upload one snapshot, creating the file on first save."""
        token = self.tokens.get_access_token()
        folder_id = self.drive.ensure_folder(token)
        cached_id = self.bindings.get(request.conversation_id)
        file_id = self.drive.upsert(token, folder_id, cached_id, request.file_name, request.content)
        self.bindings.bind(request.conversation_id, file_id)
        return {"fileId": file_id}

    def reset_conversation(self, request: ResetConvo) -> dict:
        self.bindings.reset(request.conversation_id)
        logger.info("[Host] Reset binding for %s", request.conversation_id)
        return {}

    def set_client_id(self, request: SetClientId) -> dict:
        self.tokens.set_client(request.client_id, request.client_secret)
        logger.info("[Host] Client ID updated")
        return {}

    async def handle(self, request: Request) -> dict:
        if isinstance(request, Ping):
            return {}
        if isinstance(request, SaveSnapshot):
            return await self._run_blocking(self.save_snapshot, request)
        if isinstance(request, ResetConvo):
            return await self._run_blocking(self.reset_conversation, request)
        if isinstance(request, SetClientId):
            return await self._run_blocking(self.set_client_id, request)
        raise ProtocolError(f"unhandled request {request!r}")

    async def dispatch(self, message: dict, respond: Respond):
        """Handle one inbound message and post its single response."""
        request_id = message.get("requestId")
        try:
            request = parse_request(message)
            result = await self.handle(request)
            response = make_response(request_id, True, **result)
        except RemoteError as e:
            logger.error("[Host] %s failed: %s", message.get("type"), e)
            response = make_response(request_id, False, error=str(e), details=e.details)
        except (DriveLoggerError, ProtocolError) as e:
            logger.error("[Host] %s failed: %s", message.get("type"), e)
            response = make_response(request_id, False, error=str(e))
        except Exception as e:
            logger.exception("[Host] %s crashed", message.get("type"))
            response = make_response(request_id, False, error=str(e) or type(e).__name__)

        try:
            await respond(response)
        except DriveLoggerError as e:
            logger.debug("[Host] Could not answer request %s: %s", request_id, e)

    def serve(self, port: Port) -> set:
        """
        Answer every message arriving on port. Each message is handled in
        its own task, so responses may come back out of order.

        Returns:
            The live task set (tasks drop out when done)
        """
        tasks: set = set()

        def on_message(message: dict):
            task = asyncio.get_running_loop().create_task(self.dispatch(message, port.send))
            tasks.add(task)
            task.add_done_callback(tasks.discard)

        port.on_message(on_message)
        return tasks

    def shutdown(self):
        self.executor.shutdown(wait=False)

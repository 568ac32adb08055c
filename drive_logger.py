#!/usr/bin/env python3
"""
Drive Logger - Mirror live chat transcripts into Google Drive.

Run the host (holds OAuth credentials, talks to Drive) in one terminal and
an observer (watches the conversation page) in another:

    drive_logger.py set-client <CLIENT_ID> [--secret SECRET]
    drive_logger.py host
    drive_logger.py observe --cdp http://localhost:9222
    drive_logger.py observe --file saved.html --url https://chatgpt.com/c/<id>
"""

import argparse
import asyncio
import functools
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

from drivelogger import __version__
from drivelogger.channel.client import PortClient
from drivelogger.channel.host import HostDispatcher
from drivelogger.channel.protocol import ResetConvo, SaveSnapshot, SetClientId
from drivelogger.channel.server import run_host
from drivelogger.channel.transport import WebSocketConnector
from drivelogger.config import LoggerSettings, client_registration_from_env
from drivelogger.constants import CLIENT_ID_SUFFIX, KEY_CLIENT_ID, KEY_CLIENT_SECRET
from drivelogger.drive.auth import TokenManager, CredentialRecord
from drivelogger.drive.client import DriveClient, DriveClientConfig
from drivelogger.drive.prompt import LocalServerPrompt
from drivelogger.paths import get_settings_path, get_store_path
from drivelogger.store import JsonFileStore, ConversationBindings, KeyValueStore
from drivelogger.sync.scheduler import ScanScheduler
from drivelogger.sync.session import ObserverSession
from drivelogger.sync.sources import BrowserPageSource, FilePageSource

AUTH_TEST_CONVERSATION = "auth-test"


def setup_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)-7s %(message)s",
        datefmt="%H:%M:%S",
    )


def make_port_client(settings: LoggerSettings) -> PortClient:
    return PortClient(WebSocketConnector(settings.channel_url))


# ============================================================================
# Host
# ============================================================================


def build_dispatcher(settings: LoggerSettings) -> HostDispatcher:
    """Wire the store, token manager and Drive client for the host."""
    store = JsonFileStore(get_store_path())

    # Seed client registration from the environment on first run
    env_client_id, env_client_secret = client_registration_from_env()
    if env_client_id and not store.get_one(KEY_CLIENT_ID):
        store.set({KEY_CLIENT_ID: env_client_id})
        if env_client_secret:
            store.set({KEY_CLIENT_SECRET: env_client_secret})

    tokens = TokenManager(
        store,
        prompt=LocalServerPrompt(),
        redirect_uri=settings.redirect_uri,
    )
    drive = DriveClient(DriveClientConfig(folder_name=settings.folder_name))
    return HostDispatcher(tokens, drive, ConversationBindings(store))


def cmd_host(settings: LoggerSettings, args) -> int:
    dispatcher = build_dispatcher(settings)
    asyncio.run(run_host(dispatcher, settings.host, settings.port))
    return 0


# ============================================================================
# Observer
# ============================================================================


async def _observe(settings: LoggerSettings, args):
    if args.file:
        source = FilePageSource(Path(args.file), args.url)
    else:
        source = BrowserPageSource(args.cdp or settings.cdp_url, url_match=args.match)

    scheduler_factory = functools.partial(
        ScanScheduler,
        poll_interval=settings.poll_interval,
        mutation_debounce=settings.mutation_debounce,
        burst_delays=settings.burst_delays,
        nudge_delays=settings.nudge_delays,
    )
    session = ObserverSession(
        source,
        make_port_client(settings),
        scheduler_factory=scheduler_factory,
        ping_interval=settings.ping_interval,
    )
    await session.start()
    try:
        await asyncio.Event().wait()
    finally:
        await session.stop()


def cmd_observe(settings: LoggerSettings, args) -> int:
    if args.file and not args.url:
        print("--file needs --url (the conversation URL the file was saved from)")
        return 2
    asyncio.run(_observe(settings, args))
    return 0


# ============================================================================
# One-shot requests (settings actions)
# ============================================================================


async def _request(settings: LoggerSettings, payload: dict) -> dict:
    client = make_port_client(settings)
    try:
        return await client.call(payload)
    finally:
        await client.close()
        await client.connector.close()


def _report(response: dict, success: str, failure: str) -> int:
    if response.get("ok"):
        print(success)
        return 0
    print(f"{failure}: {response.get('error') or 'unknown'}")
    return 1


def cmd_set_client(settings: LoggerSettings, args) -> int:
    client_id = args.client_id.strip()
    if not client_id or not client_id.endswith(CLIENT_ID_SUFFIX):
        print("Please enter a valid Client ID")
        return 2
    request = SetClientId(client_id=client_id, client_secret=(args.secret or "").strip() or None)
    response = asyncio.run(_request(settings, request.to_payload()))
    return _report(response, "Client ID saved ✓", "Save failed")


def cmd_sign_in(settings: LoggerSettings, args) -> int:
    """Force the OAuth flow by saving a small test file."""
    now = datetime.now(timezone.utc).isoformat()
    request = SaveSnapshot(
        conversation_id=AUTH_TEST_CONVERSATION,
        file_name="Auth Test.md",
        content=f"# Auth test\n{now}\n",
    )
    response = asyncio.run(_request(settings, request.to_payload()))
    return _report(response, "Signed in and test file created ✓", "Sign-in failed")


def cmd_reset(settings: LoggerSettings, args) -> int:
    request = ResetConvo(conversation_id=args.conversation_id)
    response = asyncio.run(_request(settings, request.to_payload()))
    return _report(response, f"Reset {args.conversation_id} ✓", "Reset failed")


def cmd_redirect_uri(settings: LoggerSettings, args) -> int:
    print("Add this Authorized redirect URI to your Google OAuth client:")
    print(f"  {settings.redirect_uri}")
    return 0


def status_lines(store: KeyValueStore) -> list[str]:
    """Summarize the client registration and conversation bindings."""
    record = CredentialRecord.from_store(store)
    bindings = ConversationBindings(store).all()
    lines = [
        f"Client ID:     {record.client_id or 'not set'}",
        f"Signed in:     {'yes' if record.refresh_token else 'no'}",
        f"Conversations: {len(bindings)}",
    ]
    for conversation_id, file_id in sorted(bindings.items()):
        lines.append(f"  {conversation_id} -> {file_id}")
    return lines


def cmd_status(settings: LoggerSettings, args) -> int:
    for line in status_lines(JsonFileStore(get_store_path())):
        print(line)
    return 0


def main() -> int:
    """Entry point."""
    parser = argparse.ArgumentParser(
        description="Drive Logger - Mirror live chat transcripts into Google Drive"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("host", help="Run the credential-holding host")

    observe = sub.add_parser("observe", help="Watch a conversation page and sync it")
    observe.add_argument("--cdp", help="Chromium DevTools URL (default from settings)")
    observe.add_argument("--match", default="chatgpt.com", help="Tab URL substring to attach to")
    observe.add_argument("--file", help="Watch a saved HTML file instead of a browser tab")
    observe.add_argument("--url", help="Conversation URL for --file")

    set_client = sub.add_parser("set-client", help="Register your Google OAuth client")
    set_client.add_argument("client_id")
    set_client.add_argument("--secret", help="Client secret (optional)")

    sub.add_parser("sign-in", help="Sign in and create a test file")

    reset = sub.add_parser("reset", help="Forget the Drive file bound to a conversation")
    reset.add_argument("conversation_id")

    sub.add_parser("redirect-uri", help="Show the redirect URI to register")
    sub.add_parser("status", help="Show client registration and saved conversations")

    args = parser.parse_args()
    setup_logging(args.verbose)
    settings = LoggerSettings.load(get_settings_path())

    commands = {
        "host": cmd_host,
        "observe": cmd_observe,
        "set-client": cmd_set_client,
        "sign-in": cmd_sign_in,
        "reset": cmd_reset,
        "redirect-uri": cmd_redirect_uri,
        "status": cmd_status,
    }
    return commands[args.command](settings, args)


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\n\nStopped.")
        sys.exit(0)

"""
Messages exchanged between the observer and the host.

Requests are dicts tagged with "type" and carrying a "requestId"; every
response is {"type": "RESP", "requestId": ..., "ok": bool, ...}.
"""

from dataclasses import dataclass
from typing import Optional, Union

PING = "PING"
SAVE_SNAPSHOT = "SAVE_SNAPSHOT"
RESET_CONVO = "RESET_CONVO"
SET_CLIENT_ID = "SET_CLIENT_ID"
RESP = "RESP"


class ProtocolError(ValueError):
    """Inbound message could not be parsed into a request."""


@dataclass
class Ping:
    type = PING

    def to_payload(self) -> dict:
        return {"type": PING}


@dataclass
class SaveSnapshot:
    conversation_id: str
    file_name: str
    content: str
    type = SAVE_SNAPSHOT

    def to_payload(self) -> dict:
        return {
            "type": SAVE_SNAPSHOT,
            "conversationId": self.conversation_id,
            "fileName": self.file_name,
            "content": self.content,
        }


@dataclass
class ResetConvo:
    conversation_id: str
    type = RESET_CONVO

    def to_payload(self) -> dict:
        return {"type": RESET_CONVO, "conversationId": self.conversation_id}


@dataclass
class SetClientId:
    client_id: str
    client_secret: Optional[str] = None
    type = SET_CLIENT_ID

    def to_payload(self) -> dict:
        return {
            "type": SET_CLIENT_ID,
            "clientId": self.client_id,
            "clientSecret": self.client_secret,
        }


Request = Union[Ping, SaveSnapshot, ResetConvo, SetClientId]


def _require(message: dict, field: str) -> str:
    value = message.get(field)
    if not isinstance(value, str) or not value:
        raise ProtocolError(f"{message.get('type')} missing {field}")
    return value


def parse_request(message: dict) -> Request:
    """
    Turn an inbound message dict into a typed request.

    Raises:
        ProtocolError: unknown type or missing fields
    """
    kind = message.get("type")
    if kind == PING:
        return Ping()
    if kind == SAVE_SNAPSHOT:
        content = message.get("content")
        if not isinstance(content, str):
            raise ProtocolError("SAVE_SNAPSHOT missing content")
        return SaveSnapshot(
            conversation_id=_require(message, "conversationId"),
            file_name=_require(message, "fileName"),
            content=content,
        )
    if kind == RESET_CONVO:
        return ResetConvo(conversation_id=_require(message, "conversationId"))
    if kind == SET_CLIENT_ID:
        return SetClientId(
            client_id=_require(message, "clientId"),
            client_secret=message.get("clientSecret") or None,
        )
    raise ProtocolError(f"unknown message type: {kind!r}")


def make_response(request_id: Optional[str], ok: bool, **fields) -> dict:
    return {"type": RESP, "requestId": request_id, "ok": ok, **fields}

"""
HTTP helpers shared by the OAuth and Drive clients.
"""

import json
from typing import Any

import requests

from ..errors import RemoteError


def decode_body(response: requests.Response) -> Any:
    """Decode a response body as JSON, or wrap raw text as {"raw": text}."""
    text = response.text or ""
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return {"raw": text}


def error_message(data: Any, text: str) -> str:
    """Pick the clearest error message a Google endpoint returned."""
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return error["message"]
        if data.get("error_description"):
            return data["error_description"]
        if data.get("message"):
            return data["message"]
    return text or "Request failed"


def api_request(session: requests.Session, method: str, url: str, timeout: int = 60, **kwargs) -> Any:
    """
    Make one request and return its decoded body.

    Raises:
        RemoteError: on any non-2xx status
    """
    response = session.request(method, url, timeout=timeout, **kwargs)
    data = decode_body(response)
    if not response.ok:
        raise RemoteError(
            response.status_code,
            error_message(data, response.text),
            details=data,
        )
    return data

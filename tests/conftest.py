"""Pytest configuration and fixtures."""

import json
from dataclasses import dataclass, field

import pytest

from drivelogger.store import MemoryStore


@dataclass
class FakeResponse:
    """Just enough of requests.Response for drive.http."""
    status_code: int = 200
    text: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


@dataclass
class RecordedCall:
    method: str
    url: str
    kwargs: dict = field(default_factory=dict)


class FakeSession:
    """requests.Session stand-in that replays queued responses in order."""

    def __init__(self):
        self.responses: list = []
        self.calls: list[RecordedCall] = []

    def add(self, status: int = 200, body=None, text: str = None):
        if text is None:
            text = json.dumps(body) if body is not None else ""
        self.responses.append(FakeResponse(status, text))
        return self

    def add_error(self, exc: Exception):
        self.responses.append(exc)
        return self

    def request(self, method, url, timeout=None, **kwargs):
        self.calls.append(RecordedCall(method, url, kwargs))
        if not self.responses:
            raise AssertionError(f"Unexpected request: {method} {url}")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def clock():
    return FakeClock()

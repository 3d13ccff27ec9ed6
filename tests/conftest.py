"""
Shared test fixtures and helpers for the Satchel test suite.
"""

from typing import Callable, Dict, List, Optional

import pytest

from satchel.request import Request
from satchel.sessions import (
    MemoryExpiredRegistry,
    MemoryStore,
    SessionHandle,
    SessionIdState,
)


# ============================================================================
# ASGI Helpers
# ============================================================================


def make_scope(
    method: str = "GET",
    path: str = "/",
    query_string: str = "",
    headers: Optional[List[tuple]] = None,
    scheme: str = "http",
) -> dict:
    """Build a minimal ASGI HTTP scope."""
    raw_headers = []
    if headers:
        for name, value in headers:
            raw_headers.append(
                (
                    name.encode("latin-1") if isinstance(name, str) else name,
                    value.encode("latin-1") if isinstance(value, str) else value,
                )
            )
    return {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": method,
        "path": path,
        "raw_path": path.encode("utf-8"),
        "query_string": (
            query_string.encode("utf-8")
            if isinstance(query_string, str)
            else query_string
        ),
        "headers": raw_headers,
        "scheme": scheme,
        "server": ("127.0.0.1", 8000),
        "client": ("127.0.0.1", 12345),
        "root_path": "",
    }


def make_request(query_string: str = "", headers: Optional[List[tuple]] = None) -> Request:
    return Request(make_scope(query_string=query_string, headers=headers))


def make_receive(body: bytes = b""):
    async def receive():
        return {"type": "http.request", "body": body, "more_body": False}
    return receive


class ResponseCapture:
    """Captures what gets sent through ASGI ``send``."""

    def __init__(self):
        self.messages: list = []
        self.status: Optional[int] = None
        self.headers: Dict[str, List[str]] = {}
        self.body = b""

    async def __call__(self, message: dict):
        self.messages.append(message)
        if message["type"] == "http.response.start":
            self.status = message["status"]
            for name, value in message.get("headers", []):
                key = name.decode("latin-1").lower()
                self.headers.setdefault(key, []).append(value.decode("latin-1"))
        elif message["type"] == "http.response.body":
            self.body += message.get("body", b"")

    def header(self, name: str) -> Optional[str]:
        values = self.headers.get(name.lower())
        return values[0] if values else None


def session_app(action: Callable[[SessionHandle], None], *, chunks: int = 1):
    """
    ASGI app that runs ``action`` on the request's session handle and then
    answers 200 with the handle's id as body, split into ``chunks`` parts.
    """

    async def app(scope, receive, send):
        handle = SessionHandle.from_scope(scope)
        action(handle)
        await send({
            "type": "http.response.start",
            "status": 200,
            "headers": [(b"content-type", b"text/plain")],
        })
        body = (handle.id or "").encode()
        for i in range(chunks):
            await send({
                "type": "http.response.body",
                "body": body if i == 0 else b"",
                "more_body": i < chunks - 1,
            })

    return app


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry(clock):
    return MemoryExpiredRegistry(max_entries=100, ttl=3600, clock=clock)


@pytest.fixture
def state(registry):
    return SessionIdState(expired=registry)


@pytest.fixture
def store():
    return MemoryStore()

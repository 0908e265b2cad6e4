"""Shared pytest fixtures for handler-chain tests."""

from __future__ import annotations

from typing import Any

import pytest
from starlette.requests import Request

from handler_chain.application import App
from handler_chain.config import EnvConfig
from handler_chain.context import RequestContext
from handler_chain.env import Env
from handler_chain.writer import ResponseWriter


class RecordingStream:
    """ResponseStream double that records every header and body send."""

    def __init__(self) -> None:
        self.header_sends: list[tuple[int, list[tuple[bytes, bytes]]]] = []
        self.chunks: list[bytes] = []
        self.body_sends = 0
        self.closed = False

    async def send_header(self, status: int, headers: list[tuple[bytes, bytes]]) -> None:
        self.header_sends.append((status, list(headers)))

    async def send_body(self, data: bytes, more_body: bool = True) -> None:
        self.body_sends += 1
        if data:
            self.chunks.append(data)
        if not more_body:
            self.closed = True

    @property
    def status(self) -> int | None:
        return self.header_sends[-1][0] if self.header_sends else None

    @property
    def body(self) -> bytes:
        return b"".join(self.chunks)

    def header(self, name: str) -> str | None:
        if not self.header_sends:
            return None
        wanted = name.lower().encode("latin-1")
        for key, value in self.header_sends[-1][1]:
            if key == wanted:
                return value.decode("latin-1")
        return None


class CapableStream(RecordingStream):
    """RecordingStream that also flushes, hijacks and reports disconnects."""

    def __init__(self) -> None:
        super().__init__()
        self.flushes = 0
        self.hijacked = False

    async def flush(self) -> None:
        self.flushes += 1

    async def hijack(self) -> tuple[Any, Any]:
        self.hijacked = True
        return ("receive", "send")

    async def is_disconnected(self) -> bool:
        return True


@pytest.fixture
def make_request() -> Any:
    """Factory for creating Starlette Request objects."""

    def _make(
        method: str = "GET",
        path: str = "/",
        headers: dict[str, str] | None = None,
        query_string: str = "",
    ) -> Request:
        all_headers = {"host": "testserver", **(headers or {})}
        scope: dict[str, Any] = {
            "type": "http",
            "method": method,
            "scheme": "http",
            "path": path,
            "query_string": query_string.encode(),
            "headers": [
                (k.lower().encode(), v.encode()) for k, v in all_headers.items()
            ],
            "root_path": "",
            "server": ("testserver", 80),
            "path_params": {},
        }
        return Request(scope)

    return _make


@pytest.fixture
def stream() -> RecordingStream:
    return RecordingStream()


@pytest.fixture
def capable_stream() -> CapableStream:
    return CapableStream()


@pytest.fixture
def app() -> App:
    return App(Env.base(EnvConfig(mode="testing")))


@pytest.fixture
def make_context(app: App, make_request: Any, stream: RecordingStream) -> Any:
    """Factory for contexts bound to ``app``, a fresh request and ``stream``."""

    def _make(
        *handlers: Any,
        request: Request | None = None,
        with_session: bool = True,
    ) -> RequestContext:
        ctx = RequestContext(
            app=app,
            handlers=tuple(handlers),
            functions=app.env.functions,
            writer=ResponseWriter(stream),
            request=request or make_request(),
        )
        if with_session:
            ctx.start()
        return ctx

    return _make

"""ResponseWriter - lazy, write-once header transmission over a response stream."""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from starlette.datastructures import MutableHeaders
from starlette.requests import Request
from starlette.types import Receive, Send

from handler_chain._types import RawHeaders
from handler_chain.exceptions import CapabilityUnsupported

logger = logging.getLogger(__name__)

NOT_WRITTEN = -1


@runtime_checkable
class ResponseStream(Protocol):
    """Minimal writable response stream."""

    async def send_header(self, status: int, headers: RawHeaders) -> None: ...
    async def send_body(self, data: bytes, more_body: bool = True) -> None: ...


@runtime_checkable
class Flusher(Protocol):
    async def flush(self) -> None: ...


@runtime_checkable
class Hijacker(Protocol):
    async def hijack(self) -> tuple[Receive, Send]: ...


@runtime_checkable
class CloseNotifier(Protocol):
    async def is_disconnected(self) -> bool: ...


class ASGIResponseStream:
    """ResponseStream over an ASGI ``send`` callable."""

    def __init__(self, send: Send, request: Request | None = None) -> None:
        self._send = send
        self._request = request

    async def send_header(self, status: int, headers: RawHeaders) -> None:
        await self._send(
            {"type": "http.response.start", "status": status, "headers": headers}
        )

    async def send_body(self, data: bytes, more_body: bool = True) -> None:
        await self._send(
            {"type": "http.response.body", "body": data, "more_body": more_body}
        )

    async def is_disconnected(self) -> bool:
        if self._request is None:
            raise CapabilityUnsupported("close notification")
        return await self._request.is_disconnected()


class ResponseWriter:
    """Decorates a ResponseStream, deferring headers until first write or flush.

    ``size`` is the sole record of whether headers went out: it moves from
    ``NOT_WRITTEN`` to 0 on the first transmission and then counts body bytes.
    """

    def __init__(self, stream: ResponseStream | None = None) -> None:
        self._stream: ResponseStream | None = None
        self.headers = MutableHeaders()
        self._status = 200
        self._size = NOT_WRITTEN
        self._finished = False
        self.reset(stream)

    def reset(self, stream: ResponseStream | None) -> None:
        self._stream = stream
        self.headers = MutableHeaders()
        self._status = 200
        self._size = NOT_WRITTEN
        self._finished = False

    @property
    def status(self) -> int:
        return self._status

    @property
    def size(self) -> int:
        return self._size

    @property
    def written(self) -> bool:
        return self._size != NOT_WRITTEN

    @property
    def finished(self) -> bool:
        return self._finished

    def write_header(self, code: int) -> None:
        if code > 0:
            self._status = code
            if self.written:
                logger.warning("Headers were already written!")

    async def write_header_now(self) -> None:
        if not self.written:
            self._size = 0
            await self._require_stream().send_header(self._status, self.headers.raw)

    async def write(self, data: bytes) -> int:
        await self.write_header_now()
        if data:
            await self._require_stream().send_body(data, more_body=True)
        self._size += len(data)
        return len(data)

    async def finish(self) -> None:
        """Send headers if still pending and close the body. Safe to repeat."""
        if self._finished:
            return
        await self.write_header_now()
        self._finished = True
        await self._require_stream().send_body(b"", more_body=False)

    async def flush(self) -> None:
        await self.write_header_now()
        if isinstance(self._stream, Flusher):
            await self._stream.flush()

    async def hijack(self) -> tuple[Receive, Send]:
        if not isinstance(self._stream, Hijacker):
            raise CapabilityUnsupported("connection hijacking")
        return await self._stream.hijack()

    async def is_disconnected(self) -> bool:
        if not isinstance(self._stream, CloseNotifier):
            raise CapabilityUnsupported("close notification")
        return await self._stream.is_disconnected()

    def _require_stream(self) -> ResponseStream:
        if self._stream is None:
            raise RuntimeError("ResponseWriter is not bound to a stream")
        return self._stream

    def __repr__(self) -> str:
        return f"ResponseWriter(status={self._status}, size={self._size})"

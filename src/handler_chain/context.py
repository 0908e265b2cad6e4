"""RequestContext - per-request chain executor and handler-facing API."""

from __future__ import annotations

import sys
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

from starlette.requests import Request

from handler_chain._types import FinalizeStep, Handler, StatusHook
from handler_chain.exceptions import FatalKeyAbsence, FunctionNotFound, KeyNotFound
from handler_chain.files import FileResource
from handler_chain.registry import CallResult, FunctionRegistry
from handler_chain.session import SessionStore
from handler_chain.template import Templator
from handler_chain.writer import ResponseWriter

if TYPE_CHECKING:
    from handler_chain.application import App

ABORT_INDEX = sys.maxsize // 2


@dataclass(eq=False)
class RequestContext:
    """State for one in-flight request, passed to every handler.

    Instances are pooled per route: ``handlers`` and ``app`` are fixed for the
    slot, everything else is rebound on borrow and cleared by :meth:`reset`.
    """

    app: App | None = None
    handlers: tuple[Handler, ...] = ()
    functions: FunctionRegistry = field(default_factory=FunctionRegistry)
    writer: ResponseWriter = field(default_factory=ResponseWriter)
    request: Request | None = None
    session: SessionStore | None = None
    store: dict[str, Any] = field(default_factory=dict)
    index: int = -1
    status_hook: StatusHook | None = None
    finalizers: list[FinalizeStep] = field(default_factory=list)

    # -- chain control --

    async def next(self) -> None:
        """Run the next handler; it continues the chain by awaiting ``next`` itself."""
        self.index += 1
        if self.index < len(self.handlers):
            await self.handlers[self.index](self)

    @property
    def aborted(self) -> bool:
        return self.index >= ABORT_INDEX

    def halt(self) -> None:
        """Stop the chain without touching the response."""
        self.index = ABORT_INDEX

    async def abort(self, code: int) -> None:
        """Stop the chain and finalize with ``code`` (negative: keep the status)."""
        self.halt()
        await self.call("abort", code)

    async def status(self, code: int) -> None:
        """Record ``code`` through the status hook, or the abort behavior.

        Unlike :meth:`abort` this never moves the chain position.
        """
        if self.status_hook is not None:
            await self.status_hook(self, code)
        else:
            await self.call("abort", code)

    def push(self, step: FinalizeStep) -> None:
        self.finalizers.append(step)

    async def finalize(self) -> None:
        steps = list(self.finalizers)
        self.finalizers.clear()
        for step in steps:
            await step(self)

    # -- per-request store --

    def set(self, key: str, value: Any) -> None:
        self.store[key] = value

    def get(self, key: str) -> Any:
        try:
            return self.store[key]
        except KeyError:
            raise KeyNotFound(key) from None

    def must_get(self, key: str) -> Any:
        """Like :meth:`get`, but a missing or ``None`` value is fatal for the request."""
        value = self.store.get(key)
        if value is None:
            raise FatalKeyAbsence(key)
        return value

    # -- lifecycle --

    @property
    def templator(self) -> Templator | None:
        return self.app.env.templator if self.app is not None else None

    def start(self) -> None:
        manager = self.app.env.session_manager if self.app is not None else None
        if manager is not None and self.request is not None:
            self.session = manager.start_session(self.writer, self.request)

    def release(self) -> None:
        """Flush pending session writes while headers can still carry them."""
        if self.session is not None:
            self.session.release(self.writer)

    def copy(self) -> RequestContext:
        """A detached snapshot safe to keep after the request has finished."""
        return replace(
            self,
            index=ABORT_INDEX,
            handlers=(),
            store=dict(self.store),
            finalizers=[],
        )

    def reset(self) -> None:
        self.index = -1
        self.request = None
        self.session = None
        self.store.clear()
        self.status_hook = None
        self.finalizers.clear()
        self.writer.reset(None)

    def write_to_header(self, code: int, content_type: str = "") -> None:
        if content_type:
            self.writer.headers["content-type"] = content_type
        if code >= 0:
            self.writer.write_header(code)

    # -- pluggable behaviors --

    async def call(self, name: str, *args: Any) -> CallResult:
        """Invoke the behavior registered as ``name`` with this context first."""
        try:
            func = self.functions.resolve(name)
        except FunctionNotFound as exc:
            return CallResult(None, exc)
        return await func.invoke(self, *args)

    async def redirect(self, code: int, location: str) -> Exception | None:
        return (await self.call("redirect", code, location)).error

    async def render_template(self, name: str, data: Any = None) -> Exception | None:
        return (await self.call("render_template", name, data)).error

    async def serve_file(self, resource: FileResource) -> Exception | None:
        return (await self.call("serve_file", resource)).error

    async def serve_data(self, code: int, data: bytes | str) -> Exception | None:
        return (await self.call("serve_data", code, data)).error

    async def serve_plain(self, code: int, data: bytes | str) -> Exception | None:
        return (await self.call("serve_plain", code, data)).error

    async def cookie(self, name: str, value: str, **options: Any) -> Exception | None:
        """Set a response cookie; ``options`` are cookie attributes such as ``max_age``."""
        return (await self.call("cookie", name, value, options)).error

    async def cookies(self, values: Mapping[str, str], **options: Any) -> Exception | None:
        return (await self.call("cookies", values, options)).error

    async def flash(self, category: str, message: str) -> None:
        await self.call("flash", category, message)

    async def flash_messages(self, *categories: str) -> list[str]:
        messages, _ = await self.call("flash_messages", list(categories))
        return list(messages or [])

    async def all_flash_messages(self) -> dict[str, str]:
        messages, _ = await self.call("all_flash_messages")
        return dict(messages or {})

    async def url_relative(self, route: str, *params: str) -> str:
        return await self._url(route, False, params)

    async def url_external(self, route: str, *params: str) -> str:
        return await self._url(route, True, params)

    async def _url(self, route: str, external: bool, params: tuple[str, ...]) -> str:
        url, error = await self.call("url_for", route, external, list(params))
        if error is not None:
            return str(error)
        return str(url)

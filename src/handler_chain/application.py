"""App - ASGI entry point that borrows, runs and returns request contexts."""

from __future__ import annotations

import logging
import types
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from starlette.requests import Request
from starlette.types import Receive, Scope, Send

from handler_chain._types import Handler, StatusHook
from handler_chain.context import RequestContext
from handler_chain.env import Env
from handler_chain.exceptions import FatalKeyAbsence
from handler_chain.registry import FunctionShape
from handler_chain.routing import Route
from handler_chain.writer import ASGIResponseStream, ResponseStream, ResponseWriter

logger = logging.getLogger(__name__)


class App:
    """Route table plus the request lifecycle around each handler chain."""

    def __init__(
        self, env: Env | None = None, *, middleware: Sequence[Handler] = ()
    ) -> None:
        self.env = env if env is not None else Env.base()
        self.env.session_init()
        self.env.templator_init()
        self.middleware: list[Handler] = list(middleware)
        self._routes: list[Route] = []
        self._named: dict[str, Route] = {}
        self._status_handlers: dict[int, Handler] = {}

    # -- configuration --

    def use(self, *handlers: Handler) -> None:
        """Prepend ``handlers`` to every route registered afterwards."""
        self.middleware.extend(handlers)

    def add_route(
        self, method: str, path: str, *handlers: Handler, name: str | None = None
    ) -> Route:
        route = Route(
            method,
            path,
            (*self.middleware, *handlers),
            name=name,
            app=self,
            pool_size=self.env.config.pool_size,
        )
        self._routes.append(route)
        self._named[route.name] = route
        return route

    def get(self, path: str, *, name: str | None = None) -> Callable[[Handler], Handler]:
        return self._route_decorator("GET", path, name)

    def post(self, path: str, *, name: str | None = None) -> Callable[[Handler], Handler]:
        return self._route_decorator("POST", path, name)

    def _route_decorator(
        self, method: str, path: str, name: str | None
    ) -> Callable[[Handler], Handler]:
        def decorator(handler: Handler) -> Handler:
            self.add_route(method, path, handler, name=name or handler.__name__)
            return handler

        return decorator

    def routes(self) -> Mapping[str, Route]:
        return types.MappingProxyType(self._named)

    def add_function(
        self, name: str, func: Any, shape: FunctionShape | None = None
    ) -> None:
        self.env.add_function(name, func, shape)

    def add_template_function(self, name: str, func: Any) -> None:
        self.env.add_template_function(name, func)

    def status_handler(self, code: int) -> Callable[[Handler], Handler]:
        """Register a handler run by ``ctx.status(code)`` after the status is set."""

        def decorator(handler: Handler) -> Handler:
            self._status_handlers[code] = handler
            return handler

        return decorator

    @property
    def status_hook(self) -> StatusHook | None:
        return self._run_status_handler if self._status_handlers else None

    async def _run_status_handler(self, ctx: RequestContext, code: int) -> None:
        await ctx.call("abort", code)
        handler = self._status_handlers.get(code)
        if handler is not None:
            await handler(ctx)

    # -- lifespan --

    async def startup(self) -> None:
        if self.env.session_manager is not None:
            await self.env.session_manager.start()

    async def shutdown(self) -> None:
        if self.env.session_manager is not None:
            await self.env.session_manager.stop()

    async def _lifespan(self, receive: Receive, send: Send) -> None:
        while True:
            message = await receive()
            if message["type"] == "lifespan.startup":
                try:
                    await self.startup()
                except Exception as exc:
                    logger.exception("startup failed")
                    await send({"type": "lifespan.startup.failed", "message": str(exc)})
                    return
                await send({"type": "lifespan.startup.complete"})
            elif message["type"] == "lifespan.shutdown":
                await self.shutdown()
                await send({"type": "lifespan.shutdown.complete"})
                return

    # -- requests --

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "lifespan":
            await self._lifespan(receive, send)
            return
        if scope["type"] != "http":
            raise RuntimeError(f"unsupported ASGI scope type {scope['type']!r}")

        route, params, path_matched = self._match(scope["method"], scope["path"])
        scope = {**scope, "path_params": params}
        request = Request(scope, receive)
        stream = ASGIResponseStream(send, request)

        if route is None:
            await self._respond_status(request, stream, 405 if path_matched else 404)
            return

        ctx = route.borrow(request, stream)
        try:
            await self._run(ctx)
        finally:
            route.give_back(ctx)

    def _match(self, method: str, path: str) -> tuple[Route | None, dict[str, Any], bool]:
        path_matched = False
        for route in self._routes:
            params = route.match_path(path)
            if params is None:
                continue
            if route.accepts(method):
                return route, params, True
            path_matched = True
        return None, {}, path_matched

    async def _run(self, ctx: RequestContext) -> None:
        try:
            await ctx.next()
            await ctx.finalize()
        except FatalKeyAbsence:
            logger.exception("required request value missing")
            await self._fail(ctx)
        except Exception:
            logger.exception("unhandled error in handler chain")
            await self._fail(ctx)
        ctx.release()
        await ctx.writer.finish()

    async def _fail(self, ctx: RequestContext) -> None:
        ctx.halt()
        if ctx.writer.written:
            return
        ctx.write_to_header(500, "text/plain; charset=utf-8")
        await ctx.writer.write(b"Internal Server Error")

    async def _respond_status(
        self, request: Request, stream: ResponseStream, code: int
    ) -> None:
        """Answer a request no route accepts, through an ad hoc context."""
        ctx = RequestContext(
            app=self,
            functions=self.env.functions,
            writer=ResponseWriter(stream),
            request=request,
            status_hook=self.status_hook,
        )
        ctx.start()
        try:
            await ctx.status(code)
        except Exception:
            logger.exception("unhandled error in status handler")
            await self._fail(ctx)
        ctx.release()
        await ctx.writer.finish()

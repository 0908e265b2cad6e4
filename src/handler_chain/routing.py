"""Route - a named path pattern, its handler chain and its context pool."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from starlette.datastructures import URL
from starlette.requests import Request
from starlette.routing import compile_path, replace_params

from handler_chain._types import Handler
from handler_chain.context import RequestContext
from handler_chain.exceptions import InvalidArgument
from handler_chain.pool import ContextPool
from handler_chain.writer import ResponseStream

if TYPE_CHECKING:
    from handler_chain.application import App


class Route:
    """Matches one method and path; owns the pool serving its requests."""

    def __init__(
        self,
        method: str,
        path: str,
        handlers: Sequence[Handler],
        *,
        name: str | None = None,
        app: App | None = None,
        pool_size: int = 64,
    ) -> None:
        self.method = method.upper()
        self.path = path
        self.name = name or f"{self.method} {path}"
        self.handlers: tuple[Handler, ...] = tuple(handlers)
        self.app = app
        self.path_regex, self.path_format, self.param_convertors = compile_path(path)
        self.pool = ContextPool(self._new_context, max_size=pool_size)

    def _new_context(self) -> RequestContext:
        return RequestContext(app=self.app, handlers=self.handlers)

    @property
    def param_names(self) -> list[str]:
        return list(self.param_convertors)

    def match_path(self, path: str) -> dict[str, Any] | None:
        found = self.path_regex.match(path)
        if found is None:
            return None
        return {
            key: self.param_convertors[key].convert(value)
            for key, value in found.groupdict().items()
        }

    def accepts(self, method: str) -> bool:
        return method == self.method or (method == "HEAD" and self.method == "GET")

    def url(self, *params: str) -> URL:
        """Build this route's path from positional parameters, in pattern order."""
        names = self.param_names
        if len(params) != len(names):
            raise InvalidArgument(
                f"unable to get url for route {self.name} with params {list(params)}"
            )
        try:
            path, _ = replace_params(
                self.path_format, self.param_convertors, dict(zip(names, params))
            )
        except (AssertionError, ValueError) as exc:
            raise InvalidArgument(
                f"unable to get url for route {self.name} with params {list(params)}"
            ) from exc
        return URL(path=path)

    def borrow(self, request: Request, stream: ResponseStream) -> RequestContext:
        """Take a context from the pool and bind it to ``request``."""
        ctx = self.pool.acquire()
        if self.app is not None:
            ctx.functions = self.app.env.functions
            ctx.status_hook = self.app.status_hook
        ctx.request = request
        ctx.writer.reset(stream)
        ctx.store.update(request.path_params)
        ctx.start()
        return ctx

    def give_back(self, ctx: RequestContext) -> None:
        self.pool.release(ctx)

    def __repr__(self) -> str:
        return f"Route({self.method} {self.path!r}, name={self.name!r})"

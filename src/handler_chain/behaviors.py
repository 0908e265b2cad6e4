"""Builtin context behaviors, resolved by name through a FunctionRegistry.

Each behavior takes the request context first. Applications replace any of
them with ``Env.add_function`` without touching the call sites on
:class:`~handler_chain.context.RequestContext`.
"""

from __future__ import annotations

import http.cookies
import mimetypes
from collections.abc import Mapping, Sequence
from email.utils import formatdate, parsedate_to_datetime
from typing import TYPE_CHECKING, Any
from urllib.parse import urljoin, urlsplit

from starlette.concurrency import run_in_threadpool

from handler_chain.exceptions import (
    ChainException,
    InvalidArgument,
    RouteNotFound,
    TemplateRenderError,
)
from handler_chain.files import FileResource
from handler_chain.registry import FunctionRegistry
from handler_chain.template import template_data

if TYPE_CHECKING:
    from starlette.requests import Request

    from handler_chain.context import RequestContext

FLASH_KEY = "_flashes"


def abort(ctx: RequestContext, code: int) -> None:
    if code >= 0:
        ctx.writer.write_header(code)


async def redirect(
    ctx: RequestContext, code: int, location: str
) -> tuple[None, InvalidArgument | None]:
    if not 300 <= code <= 308:
        return None, InvalidArgument(f"Cannot send a redirect with status code {code}")
    ctx.release()
    ctx.writer.headers["location"] = _resolve_location(ctx.request, location)
    ctx.writer.write_header(code)
    await ctx.writer.write_header_now()
    return None, None


def _resolve_location(request: Request | None, location: str) -> str:
    if request is None or urlsplit(location).scheme or location.startswith("/"):
        return location
    return urljoin(request.url.path, location)


async def serve_data(ctx: RequestContext, code: int, data: bytes | str) -> None:
    if isinstance(data, str):
        data = data.encode("utf-8")
    ctx.release()
    ctx.write_to_header(code, "text/plain; charset=utf-8")
    await ctx.writer.write(data)


def cookie(
    ctx: RequestContext,
    name: str,
    value: str,
    options: Mapping[str, Any] | None = None,
) -> tuple[None, InvalidArgument | None]:
    return cookies(ctx, {name: value}, options)


def cookies(
    ctx: RequestContext,
    values: Mapping[str, str],
    options: Mapping[str, Any] | None = None,
) -> tuple[None, InvalidArgument | None]:
    if ctx.writer.written:
        return None, InvalidArgument("Cannot set cookies, headers were already written")
    try:
        headers = [
            _cookie_header(name, value, options or {}) for name, value in values.items()
        ]
    except http.cookies.CookieError as exc:
        return None, InvalidArgument(f"invalid cookie: {exc}")
    for header in headers:
        ctx.writer.headers.append("set-cookie", header)
    return None, None


def _cookie_header(name: str, value: str, options: Mapping[str, Any]) -> str:
    jar: http.cookies.BaseCookie[str] = http.cookies.SimpleCookie()
    jar[name] = value
    jar[name]["path"] = "/"
    for option, setting in options.items():
        jar[name][option.replace("_", "-")] = setting
    return jar.output(header="").strip()


async def serve_file(
    ctx: RequestContext, resource: FileResource
) -> tuple[None, OSError | None]:
    ctx.release()
    try:
        info = await run_in_threadpool(resource.stat)
    except OSError as exc:
        return None, exc

    writer = ctx.writer
    media_type, _ = mimetypes.guess_type(info.name)
    writer.headers["content-type"] = media_type or "application/octet-stream"
    writer.headers["last-modified"] = formatdate(info.modified, usegmt=True)

    if _not_modified(ctx.request, info.modified):
        del writer.headers["content-type"]
        writer.write_header(304)
        await writer.write_header_now()
        return None, None

    try:
        content = await run_in_threadpool(resource.read)
    except OSError as exc:
        return None, exc

    writer.headers["content-length"] = str(len(content))
    writer.write_header(200)
    if ctx.request is not None and ctx.request.method == "HEAD":
        await writer.write_header_now()
    else:
        await writer.write(content)
    return None, None


def _not_modified(request: Request | None, modified: float) -> bool:
    if request is None:
        return False
    since = request.headers.get("if-modified-since")
    if not since:
        return False
    try:
        since_ts = parsedate_to_datetime(since).timestamp()
    except (TypeError, ValueError):
        return False
    return int(modified) <= since_ts


async def render_template(
    ctx: RequestContext, name: str, data: Any = None
) -> tuple[None, TemplateRenderError | None]:
    envelope = await template_data(ctx, data)
    # headers lock on the first body byte the templator writes
    ctx.release()
    templator = ctx.templator
    if templator is None:
        return None, TemplateRenderError("no templator configured")
    try:
        await templator.render(ctx.writer, name, envelope)
    except TemplateRenderError as exc:
        return None, exc
    return None, None


def _flashes(ctx: RequestContext) -> dict[str, str] | None:
    if ctx.session is None:
        return None
    stored = ctx.session.get(FLASH_KEY)
    return stored if isinstance(stored, dict) else None


def flash(ctx: RequestContext, category: str, message: str) -> None:
    if ctx.session is None:
        return
    merged = dict(_flashes(ctx) or {})
    merged[category] = message
    ctx.session.set(FLASH_KEY, merged)


def flash_messages(ctx: RequestContext, categories: Sequence[str]) -> list[str]:
    stored = _flashes(ctx)
    if stored is None or ctx.session is None:
        return []
    messages = [message for category, message in stored.items() if category in categories]
    remaining = {c: m for c, m in stored.items() if c not in categories}
    ctx.session.set(FLASH_KEY, remaining)
    return messages


def all_flash_messages(ctx: RequestContext) -> dict[str, str]:
    stored = dict(_flashes(ctx) or {})
    if ctx.session is not None:
        ctx.session.delete(FLASH_KEY)
    return stored


def url_for(
    ctx: RequestContext, route: str, external: bool, params: Sequence[str]
) -> tuple[str, ChainException | None]:
    routes = ctx.app.routes() if ctx.app is not None else {}
    found = routes.get(route)
    if found is None:
        return "", RouteNotFound(route, tuple(params))
    try:
        url = found.url(*params)
    except InvalidArgument as exc:
        return "", exc
    if external and ctx.request is not None:
        url = url.replace(scheme=ctx.request.url.scheme, netloc=ctx.request.url.netloc)
    return str(url), None


BUILTIN_FUNCTIONS = FunctionRegistry.from_callables(
    {
        "abort": abort,
        "all_flash_messages": all_flash_messages,
        "cookie": cookie,
        "cookies": cookies,
        "flash": flash,
        "flash_messages": flash_messages,
        "redirect": redirect,
        "render_template": render_template,
        "serve_data": serve_data,
        "serve_plain": serve_data,
        "serve_file": serve_file,
        "url_for": url_for,
    }
)

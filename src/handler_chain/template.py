"""Template data envelope and the templator collaborator."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import jinja2
from starlette.requests import Request

from handler_chain.exceptions import TemplateRenderError
from handler_chain.session import SessionStore
from handler_chain.writer import ResponseWriter

if TYPE_CHECKING:
    from handler_chain.context import RequestContext


@dataclass(frozen=True)
class TemplateData:
    """Everything a template sees: the handler payload plus request state.

    ``store`` and ``session`` are references to the live context objects;
    ``flash`` holds messages already popped from the session.
    """

    data: Any
    request: Request | None
    session: SessionStore | None
    store: Mapping[str, Any]
    flash: dict[str, str] = field(default_factory=dict)

    def as_context(self) -> dict[str, Any]:
        return {
            "data": self.data,
            "request": self.request,
            "session": self.session,
            "store": self.store,
            "flash": self.flash,
        }


async def template_data(ctx: RequestContext, data: Any) -> TemplateData:
    """Build the envelope for ``ctx``, consuming its pending flash messages."""
    return TemplateData(
        data=data,
        request=ctx.request,
        session=ctx.session,
        store=ctx.store,
        flash=await ctx.all_flash_messages(),
    )


@runtime_checkable
class Templator(Protocol):
    async def render(self, writer: ResponseWriter, name: str, data: TemplateData) -> None: ...
    def template_dirs(self) -> list[str]: ...
    def add_template_dirs(self, *directories: str) -> None: ...
    def add_template_functions(self, functions: Mapping[str, Any]) -> None: ...


class Jinja2Templator:
    """Renders Jinja2 templates found in a list of directories."""

    def __init__(
        self,
        directories: Iterable[str] = (),
        *,
        content_type: str = "text/html; charset=utf-8",
        **env_options: Any,
    ) -> None:
        self._loader = jinja2.FileSystemLoader(list(directories))
        env_options.setdefault("autoescape", jinja2.select_autoescape())
        self.environment = jinja2.Environment(loader=self._loader, **env_options)
        self.content_type = content_type

    def template_dirs(self) -> list[str]:
        return list(self._loader.searchpath)

    def add_template_dirs(self, *directories: str) -> None:
        for directory in directories:
            if directory not in self._loader.searchpath:
                self._loader.searchpath.append(directory)

    def add_template_functions(self, functions: Mapping[str, Any]) -> None:
        """Expose ``functions`` as globals in every template."""
        self.environment.globals.update(functions)

    async def render(self, writer: ResponseWriter, name: str, data: TemplateData) -> None:
        try:
            template = self.environment.get_template(name)
            body = template.render(data.as_context())
        except jinja2.TemplateError as exc:
            raise TemplateRenderError(
                f"unable to render template {name}: {exc}", cause=exc
            ) from exc
        if "content-type" not in writer.headers:
            writer.headers["content-type"] = self.content_type
        await writer.write(body.encode("utf-8"))

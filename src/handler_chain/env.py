"""Env - configuration, the base function table and collaborator defaults."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from msgspec import structs

from handler_chain.behaviors import BUILTIN_FUNCTIONS
from handler_chain.config import EnvConfig, Mode
from handler_chain.registry import FunctionRegistry, FunctionShape, merge_registries
from handler_chain.session import MemorySessionManager, SessionManager
from handler_chain.template import Jinja2Templator, Templator

logger = logging.getLogger(__name__)


class Env:
    """Application environment shared by every route of an App.

    ``functions`` is an immutable FunctionRegistry; adding a function swaps
    in an extended copy, so contexts that already took a snapshot keep
    seeing the table they started with.
    """

    def __init__(
        self,
        config: EnvConfig | None = None,
        *,
        functions: FunctionRegistry | None = None,
        templator: Templator | None = None,
        session_manager: SessionManager | None = None,
    ) -> None:
        self.config = config or EnvConfig()
        self.functions = functions if functions is not None else FunctionRegistry()
        self.templator = templator
        self.session_manager = session_manager
        self.template_functions: dict[str, Any] = {}

    @classmethod
    def base(cls, config: EnvConfig | None = None, **kwargs: Any) -> Env:
        """An Env with the builtin behaviors merged under any given functions."""
        env = cls(config, **kwargs)
        env.functions = merge_registries(BUILTIN_FUNCTIONS, env.functions)
        return env

    @property
    def mode(self) -> Mode:
        return self.config.run_mode

    def add_function(
        self, name: str, func: Any, shape: FunctionShape | None = None
    ) -> None:
        """Register ``func`` as ``name``.

        An unannotated override keeps the calling shape of the behavior it
        replaces; pass ``shape`` to choose one explicitly.
        """
        self.functions = self.functions.register(name, func, shape)

    def add_functions(self, funcs: Mapping[str, Any]) -> None:
        self.functions = self.functions.register_many(funcs)

    def add_template_function(self, name: str, func: Any) -> None:
        self.add_template_functions({name: func})

    def add_template_functions(self, funcs: Mapping[str, Any]) -> None:
        """Make ``funcs`` callable from templates, now and after ``templator_init``."""
        self.template_functions.update(funcs)
        if self.templator is not None:
            self.templator.add_template_functions(funcs)

    def merge(self, other: Env) -> Env:
        """Return a new Env combining ``self`` with ``other``.

        ``other``'s functions win on name clashes, template directories are
        unioned, and collaborators already set on ``self`` are kept.
        """
        directories = list(self.config.template_directories)
        for directory in other.template_dirs():
            if directory not in directories:
                directories.append(directory)
        merged = Env(
            structs.replace(self.config, template_directories=tuple(directories)),
            functions=merge_registries(self.functions, other.functions),
            templator=self.templator if self.templator is not None else other.templator,
            session_manager=(
                self.session_manager
                if self.session_manager is not None
                else other.session_manager
            ),
        )
        merged.template_functions = {**self.template_functions, **other.template_functions}
        return merged

    def template_dirs(self) -> list[str]:
        dirs = list(self.config.template_directories)
        if self.templator is not None:
            dirs.extend(d for d in self.templator.template_dirs() if d not in dirs)
        return dirs

    def templator_init(self) -> Templator:
        if self.templator is None:
            self.templator = Jinja2Templator(self.config.template_directories)
        else:
            self.templator.add_template_dirs(*self.config.template_directories)
        self.templator.add_template_functions(self.template_functions)
        return self.templator

    def session_init(self) -> SessionManager:
        if self.session_manager is None:
            self.session_manager = MemorySessionManager(
                cookie_name=self.config.session_cookie_name,
                lifetime=self.config.session_lifetime,
                gc_interval=self.config.session_gc_interval,
                secure=self.mode is Mode.PRODUCTION,
            )
            logger.debug("using in-memory session manager")
        return self.session_manager

"""Typed environment configuration."""

from __future__ import annotations

import os
from collections.abc import Mapping
from enum import Enum
from typing import Any

import msgspec
from msgspec import Struct

from handler_chain.exceptions import InvalidArgument

ENVIRON_PREFIX = "HANDLER_CHAIN_"


class Mode(Enum):
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    TESTING = "testing"

    @classmethod
    def parse(cls, value: str) -> Mode:
        """Map a mode name to a Mode, falling back to development."""
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.DEVELOPMENT


class EnvConfig(Struct, frozen=True):
    """Configuration for an :class:`~handler_chain.env.Env`."""

    mode: str = Mode.DEVELOPMENT.value
    session_cookie_name: str = "session"
    session_lifetime: int = 2629743  # seconds
    session_gc_interval: float = 3600.0  # seconds
    template_directories: tuple[str, ...] = ()
    pool_size: int = 64

    @property
    def run_mode(self) -> Mode:
        return Mode.parse(self.mode)

    @classmethod
    def from_environ(
        cls,
        prefix: str = ENVIRON_PREFIX,
        environ: Mapping[str, str] | None = None,
    ) -> EnvConfig:
        """Read ``<prefix><FIELD>`` variables, e.g. ``HANDLER_CHAIN_POOL_SIZE``."""
        source = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        for key, value in source.items():
            if not key.startswith(prefix):
                continue
            name = key[len(prefix) :].lower()
            if name == "template_directories":
                values[name] = [d for d in value.split(os.pathsep) if d]
            else:
                values[name] = value
        return load_config(values)


def load_config(values: Mapping[str, Any]) -> EnvConfig:
    """Build an EnvConfig from loosely typed values (strings are coerced)."""
    try:
        return msgspec.convert(dict(values), EnvConfig, strict=False)
    except msgspec.ValidationError as exc:
        raise InvalidArgument(f"invalid configuration: {exc}") from exc

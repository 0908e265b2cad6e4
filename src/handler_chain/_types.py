"""Shared type aliases."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from handler_chain.context import RequestContext

# Chain handlers and status hooks
Handler = Callable[["RequestContext"], Awaitable[None]]
StatusHook = Callable[["RequestContext", int], Awaitable[None]]
FinalizeStep = Callable[["RequestContext"], Awaitable[None]]

# Raw behavior callables; shape is checked by the registry
Behavior = Callable[..., Any]

RawHeaders = list[tuple[bytes, bytes]]

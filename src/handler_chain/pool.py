"""ContextPool - per-route reuse of RequestContext instances."""

from __future__ import annotations

import threading
from collections.abc import Callable

from handler_chain.context import RequestContext
from handler_chain.exceptions import PoolError


class ContextPool:
    """Lends contexts to one request at a time and takes them back reset.

    ``acquire`` and ``release`` are atomic with respect to each other; a
    borrowed context belongs to its request until released.
    """

    def __init__(
        self, factory: Callable[[], RequestContext], *, max_size: int = 64
    ) -> None:
        self._factory = factory
        self._max_size = max_size
        self._idle: list[RequestContext] = []
        self._borrowed: set[int] = set()
        self._lock = threading.Lock()

    def acquire(self) -> RequestContext:
        with self._lock:
            ctx = self._idle.pop() if self._idle else None
            if ctx is None:
                ctx = self._factory()
            self._borrowed.add(id(ctx))
        return ctx

    def release(self, ctx: RequestContext) -> None:
        with self._lock:
            if id(ctx) not in self._borrowed:
                raise PoolError("context was not borrowed from this pool")
            self._borrowed.discard(id(ctx))
            ctx.reset()
            if len(self._idle) < self._max_size:
                self._idle.append(ctx)

    @property
    def idle(self) -> int:
        return len(self._idle)

    @property
    def borrowed(self) -> int:
        return len(self._borrowed)

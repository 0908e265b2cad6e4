"""Session collaborator interfaces and the default in-memory backend."""

from __future__ import annotations

import asyncio
import contextlib
import http.cookies
import logging
import secrets
import threading
import time
from typing import Any, Protocol, runtime_checkable

from starlette.requests import Request

from handler_chain.writer import ResponseWriter

logger = logging.getLogger(__name__)


@runtime_checkable
class SessionStore(Protocol):
    """Per-request view of one user's session data."""

    def get(self, key: str) -> Any: ...
    def set(self, key: str, value: Any) -> None: ...
    def delete(self, key: str) -> None: ...
    def release(self, writer: ResponseWriter) -> None: ...


@runtime_checkable
class SessionManager(Protocol):
    """Creates session stores and owns any background maintenance."""

    def start_session(self, writer: ResponseWriter, request: Request) -> SessionStore: ...
    async def start(self) -> None: ...
    async def stop(self) -> None: ...


class MemorySessionStore:
    """Session data held by a MemorySessionManager, keyed by a cookie id."""

    def __init__(
        self,
        manager: MemorySessionManager,
        session_id: str,
        data: dict[str, Any],
        *,
        resumed: bool = False,
    ) -> None:
        self._manager = manager
        self.session_id = session_id
        self.data = data
        self.resumed = resumed
        self.modified = False
        self._cookie_sent = False

    def get(self, key: str) -> Any:
        return self.data.get(key)

    def set(self, key: str, value: Any) -> None:
        self.data[key] = value
        self.modified = True

    def delete(self, key: str) -> None:
        if self.data.pop(key, None) is not None:
            self.modified = True

    @property
    def should_persist(self) -> bool:
        """False for a fresh session nothing was ever stored in."""
        return self.resumed or self.modified or bool(self.data)

    def release(self, writer: ResponseWriter) -> None:
        """Persist the data and, while headers are still pending, set the cookie.

        Fresh sessions that were never written to are dropped without a cookie.
        """
        if not self.should_persist:
            return
        self._manager.save(self)
        if self._cookie_sent:
            return
        if writer.written:
            logger.debug("session %s released after headers were sent", self.session_id)
            return
        writer.headers.append("set-cookie", self._manager.cookie_header(self.session_id))
        self._cookie_sent = True


class MemorySessionManager:
    """In-process session backend with an explicitly scheduled GC task.

    ``start()`` launches the periodic sweep and ``stop()`` cancels it; nothing
    runs in the background until ``start()`` is awaited.
    """

    def __init__(
        self,
        *,
        cookie_name: str = "session",
        lifetime: int = 2629743,
        gc_interval: float = 3600.0,
        secure: bool = False,
    ) -> None:
        self.cookie_name = cookie_name
        self.lifetime = lifetime
        self.gc_interval = gc_interval
        self.secure = secure
        self._sessions: dict[str, tuple[dict[str, Any], float]] = {}
        self._lock = threading.Lock()
        self._gc_task: asyncio.Task[None] | None = None

    def start_session(self, writer: ResponseWriter, request: Request) -> MemorySessionStore:
        session_id = request.cookies.get(self.cookie_name)
        now = time.time()
        if session_id:
            with self._lock:
                entry = self._sessions.get(session_id)
            if entry is not None and entry[1] > now:
                return MemorySessionStore(
                    self, session_id, dict(entry[0]), resumed=True
                )
        return MemorySessionStore(self, secrets.token_urlsafe(32), {})

    def save(self, store: MemorySessionStore) -> None:
        with self._lock:
            self._sessions[store.session_id] = (
                dict(store.data),
                time.time() + self.lifetime,
            )

    def cookie_header(self, session_id: str) -> str:
        cookie: http.cookies.BaseCookie[str] = http.cookies.SimpleCookie()
        cookie[self.cookie_name] = session_id
        cookie[self.cookie_name]["path"] = "/"
        cookie[self.cookie_name]["max-age"] = self.lifetime
        cookie[self.cookie_name]["httponly"] = True
        cookie[self.cookie_name]["samesite"] = "lax"
        if self.secure:
            cookie[self.cookie_name]["secure"] = True
        return cookie.output(header="").strip()

    def gc(self) -> int:
        """Drop expired sessions, returning how many were removed."""
        now = time.time()
        with self._lock:
            expired = [sid for sid, (_, expires) in self._sessions.items() if expires <= now]
            for sid in expired:
                del self._sessions[sid]
        if expired:
            logger.debug("session gc removed %d expired sessions", len(expired))
        return len(expired)

    @property
    def running(self) -> bool:
        return self._gc_task is not None and not self._gc_task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._gc_task = asyncio.create_task(self._gc_loop())

    async def stop(self) -> None:
        task, self._gc_task = self._gc_task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _gc_loop(self) -> None:
        while True:
            await asyncio.sleep(self.gc_interval)
            self.gc()

    def __len__(self) -> int:
        return len(self._sessions)

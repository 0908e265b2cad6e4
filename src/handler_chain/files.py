"""File resources served by the ``serve_file`` behavior."""

from __future__ import annotations

import os
from pathlib import Path
from typing import NamedTuple, Protocol, runtime_checkable


class FileInfo(NamedTuple):
    name: str
    size: int
    modified: float  # POSIX timestamp


@runtime_checkable
class FileResource(Protocol):
    """Metadata plus readable content for one servable file.

    Both methods may raise ``OSError``.
    """

    def stat(self) -> FileInfo: ...
    def read(self) -> bytes: ...


class LocalFile:
    """A file on the local filesystem."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)

    def stat(self) -> FileInfo:
        result = self.path.stat()
        if not self.path.is_file():
            raise IsADirectoryError(f"{self.path} is not a regular file")
        return FileInfo(self.path.name, result.st_size, result.st_mtime)

    def read(self) -> bytes:
        return self.path.read_bytes()

    def __repr__(self) -> str:
        return f"LocalFile({str(self.path)!r})"


class MemoryFile:
    """An in-memory resource for generated downloads."""

    def __init__(self, name: str, content: bytes, *, modified: float = 0.0) -> None:
        self.name = name
        self.content = content
        self.modified = modified

    def stat(self) -> FileInfo:
        return FileInfo(self.name, len(self.content), self.modified)

    def read(self) -> bytes:
        return self.content

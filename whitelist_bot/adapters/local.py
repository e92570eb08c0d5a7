"""File access on the bot's own filesystem."""

from __future__ import annotations

import asyncio
from pathlib import Path

from ..errors import TransportError
from .base import FileAccess


class LocalFileAccess(FileAccess):
    """Read and write files below a local directory."""

    def __init__(self, path: str) -> None:
        self.root = Path(path).resolve()

    def _resolve(self, name: str) -> Path:
        full = (self.root / name.lstrip("/")).resolve()
        if full != self.root and self.root not in full.parents:
            raise TransportError(f"{name!r} escapes {self.root}")
        return full

    async def read_file(self, name: str) -> bytes:
        path = self._resolve(name)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except OSError as exc:
            raise TransportError(f"Cannot read {path}: {exc}") from exc

    async def write_file(self, name: str, data: bytes) -> None:
        path = self._resolve(name)
        try:
            await asyncio.to_thread(path.write_bytes, data)
        except OSError as exc:
            raise TransportError(f"Cannot write {path}: {exc}") from exc

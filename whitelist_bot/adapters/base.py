"""Capability interfaces for reaching a Minecraft server.

Each configured server gets one :class:`FileAccess` and one
:class:`CommandChannel`. The reconciliation engine only talks to these
interfaces and never inspects which backend sits behind them.
"""

from __future__ import annotations

import posixpath
from abc import ABC, abstractmethod

from ..errors import TransportError


def resolve_beneath(root: str, name: str) -> str:
    """Join ``name`` onto ``root`` and refuse results outside of ``root``."""
    root = posixpath.normpath("/" + root.strip("/")) if root else "/"
    full = posixpath.normpath(posixpath.join(root, name.lstrip("/")))
    if full != root and not full.startswith(root.rstrip("/") + "/"):
        raise TransportError(f"{name!r} escapes {root!r}")
    return full


class FileAccess(ABC):
    """Read and write files below a server's root directory."""

    @abstractmethod
    async def read_file(self, name: str) -> bytes:
        """Return the contents of ``name``."""

    @abstractmethod
    async def write_file(self, name: str, data: bytes) -> None:
        """Replace the contents of ``name`` with ``data``."""


class CommandChannel(ABC):
    """Run administrative console commands on a server."""

    @abstractmethod
    async def run_commands(self, *commands: str) -> list[str]:
        """Issue ``commands`` in order and return their responses."""

    async def close(self) -> None:
        """Release any held connection."""


class MemberSource(ABC):
    """Look up the Discord roles held by guild members."""

    @abstractmethod
    async def fetch_members(self, user_ids: list[str]) -> dict[str, set[str]]:
        """Return ``user id -> role ids``; unknown members are left out."""

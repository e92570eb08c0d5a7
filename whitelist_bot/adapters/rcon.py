"""Command channel talking to the server console over RCON.

Connections are pooled per ``host:port`` in a process wide :class:`RconPool`.
Each pool entry is guarded by its own lock so that concurrent batches for the
same server are serialised, and an idle connection is closed after
``IDLE_TIMEOUT`` seconds. The next batch reconnects.
"""

from __future__ import annotations

import asyncio
import logging
import socket
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from mcrcon import MCRcon, MCRconException

from ..errors import CommandTimeout, TransportError
from .base import CommandChannel

log = logging.getLogger("whitelist.rcon")

IDLE_TIMEOUT = 5.0
COMMAND_TIMEOUT = 10.0

Connector = Callable[[str, int, str, float], Awaitable[Any]]


class SocketTimeoutMCRcon(MCRcon):
    """:class:`MCRcon` bounded by a socket timeout.

    mcrcon's own ``timeout`` relies on ``SIGALRM``, which only works on the
    main thread. A socket timeout also lets a worker thread stuck on an
    unresponsive server return.
    """

    def __init__(self, host: str, password: str, port: int, socket_timeout: float):
        super().__init__(host, password, port=port, timeout=0)
        self.socket_timeout = socket_timeout

    def connect(self) -> None:
        self.socket = socket.create_connection(
            (self.host, self.port), timeout=self.socket_timeout
        )
        try:
            # login packet
            self._send(3, self.password)
        except BaseException:
            self.disconnect()
            raise


async def connect_mcrcon(host: str, port: int, password: str, timeout: float) -> MCRcon:
    """Open a blocking :class:`MCRcon` connection off the event loop."""
    connection = SocketTimeoutMCRcon(host, password, port, timeout)
    try:
        await asyncio.to_thread(connection.connect)
    except asyncio.CancelledError:
        connection.disconnect()
        raise
    return connection


@dataclass
class _PoolEntry:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    connection: Any = None
    last_used: float = 0.0
    evictor: asyncio.Task | None = None


class RconPool:
    """Reusable RCON connections keyed by ``host:port``."""

    def __init__(
        self,
        idle_timeout: float = IDLE_TIMEOUT,
        command_timeout: float = COMMAND_TIMEOUT,
        connector: Connector = connect_mcrcon,
    ) -> None:
        self.idle_timeout = idle_timeout
        self.command_timeout = command_timeout
        self.connector = connector
        self._entries: dict[str, _PoolEntry] = {}

    def is_connected(self, host: str, port: int) -> bool:
        entry = self._entries.get(f"{host}:{port}")
        return entry is not None and entry.connection is not None

    async def execute(
        self, host: str, port: int, password: str, commands: tuple[str, ...]
    ) -> list[str]:
        """Run ``commands`` in order over the pooled connection."""
        key = f"{host}:{port}"
        entry = self._entries.setdefault(key, _PoolEntry())
        async with entry.lock:
            try:
                if entry.connection is None:
                    log.debug("Connecting to %s", key)
                    entry.connection = await asyncio.wait_for(
                        self.connector(host, port, password, self.command_timeout),
                        self.command_timeout,
                    )
                results = []
                for command in commands:
                    results.append(
                        await asyncio.wait_for(
                            asyncio.to_thread(entry.connection.command, command),
                            self.command_timeout,
                        )
                    )
            except asyncio.TimeoutError as exc:
                await self._close(key, entry)
                raise CommandTimeout(f"RCON command to {key} timed out") from exc
            except (OSError, MCRconException) as exc:
                await self._close(key, entry)
                raise TransportError(f"RCON {key}: {exc}") from exc
            entry.last_used = asyncio.get_running_loop().time()
            if entry.evictor is None or entry.evictor.done():
                entry.evictor = asyncio.create_task(self._evict_when_idle(key, entry))
        return results

    async def _evict_when_idle(self, key: str, entry: _PoolEntry) -> None:
        loop = asyncio.get_running_loop()
        while True:
            await asyncio.sleep(max(entry.last_used + self.idle_timeout - loop.time(), 0))
            async with entry.lock:
                if entry.connection is None:
                    return
                if loop.time() >= entry.last_used + self.idle_timeout:
                    log.debug("Closing idle connection to %s", key)
                    await self._close(key, entry)
                    return

    async def _close(self, key: str, entry: _PoolEntry) -> None:
        connection, entry.connection = entry.connection, None
        if connection is None:
            return
        try:
            await asyncio.to_thread(connection.disconnect)
        except (OSError, MCRconException):
            log.exception("Error closing RCON connection to %s", key)

    async def close(self) -> None:
        """Close every pooled connection."""
        for key, entry in self._entries.items():
            if entry.evictor is not None:
                entry.evictor.cancel()
            async with entry.lock:
                await self._close(key, entry)


DEFAULT_POOL = RconPool()


class RconCommandChannel(CommandChannel):
    """Send commands through a pooled RCON connection."""

    def __init__(
        self, host: str, password: str, port: int = 25575, pool: RconPool | None = None
    ) -> None:
        self.host = host
        self.port = port
        self.password = password
        self.pool = pool or DEFAULT_POOL

    async def run_commands(self, *commands: str) -> list[str]:
        return await self.pool.execute(self.host, self.port, self.password, commands)

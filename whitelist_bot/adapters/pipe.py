"""Command channel writing console lines into a named pipe."""

from __future__ import annotations

import asyncio
import errno
import logging
import os

from ..errors import CommandTimeout, TransportError
from .base import CommandChannel

log = logging.getLogger("whitelist.pipe")

PIPE_TIMEOUT = 5.0
POLL_INTERVAL = 0.05


class PipeCommandChannel(CommandChannel):
    """Append one line per command to a pipe read by the server console.

    Batches are serialised. The pipe is opened without blocking and polled
    on the event loop until the server has it open for reading, so a batch
    that takes longer than ``timeout`` fails as a whole and leaves nothing
    queued behind it. Lines already written at that point stay written.
    """

    def __init__(self, path: str, timeout: float = PIPE_TIMEOUT) -> None:
        self.path = path
        self.timeout = timeout
        self._lock = asyncio.Lock()

    def _open(self) -> int | None:
        try:
            return os.open(self.path, os.O_WRONLY | os.O_APPEND | os.O_NONBLOCK)
        except OSError as exc:
            # ENXIO: a FIFO without a reader
            if exc.errno == errno.ENXIO:
                return None
            raise

    async def _write(self, data: bytes) -> None:
        fd = self._open()
        while fd is None:
            await asyncio.sleep(POLL_INTERVAL)
            fd = self._open()
        try:
            view = memoryview(data)
            while view:
                try:
                    written = os.write(fd, view)
                except BlockingIOError:
                    await asyncio.sleep(POLL_INTERVAL)
                    continue
                view = view[written:]
        finally:
            os.close(fd)

    async def run_commands(self, *commands: str) -> list[str]:
        payload = "".join(f"{command}\n" for command in commands).encode("utf-8")
        async with self._lock:
            try:
                await asyncio.wait_for(self._write(payload), self.timeout)
            except asyncio.TimeoutError as exc:
                raise CommandTimeout(
                    f"Writing {len(commands)} command(s) to {self.path} timed out"
                ) from exc
            except OSError as exc:
                raise TransportError(f"Cannot write to {self.path}: {exc}") from exc
        log.debug("Sent %d command(s) to %s", len(commands), self.path)
        # A pipe gives no feedback.
        return []

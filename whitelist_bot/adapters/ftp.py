"""File access over plain FTP using :mod:`aioftp`."""

from __future__ import annotations

import aioftp

from ..errors import TransportError
from .base import FileAccess, resolve_beneath


class FtpFileAccess(FileAccess):
    """Open one FTP session per call and close it afterwards."""

    def __init__(
        self,
        host: str,
        path: str,
        username: str = "anonymous",
        password: str = "",
        port: int = 21,
    ) -> None:
        self.host = host
        self.port = port
        self.root = path
        self.username = username
        self.password = password

    async def read_file(self, name: str) -> bytes:
        full = resolve_beneath(self.root, name)
        try:
            async with aioftp.Client.context(
                self.host, self.port, self.username, self.password
            ) as client:
                chunks = []
                async with client.download_stream(full) as stream:
                    async for block in stream.iter_by_block():
                        chunks.append(block)
                return b"".join(chunks)
        except (OSError, aioftp.AIOFTPException) as exc:
            raise TransportError(f"ftp://{self.host}{full}: {exc}") from exc

    async def write_file(self, name: str, data: bytes) -> None:
        full = resolve_beneath(self.root, name)
        try:
            async with aioftp.Client.context(
                self.host, self.port, self.username, self.password
            ) as client:
                async with client.upload_stream(full) as stream:
                    await stream.write(data)
        except (OSError, aioftp.AIOFTPException) as exc:
            raise TransportError(f"ftp://{self.host}{full}: {exc}") from exc

"""File access over SFTP using :mod:`asyncssh`."""

from __future__ import annotations

from typing import Any

import asyncssh

from ..errors import TransportError
from .base import FileAccess, resolve_beneath


class SftpFileAccess(FileAccess):
    """Open one SSH connection per call and close it afterwards.

    Either ``password`` or ``private_key`` (a path to a key file) is used
    for authentication.
    """

    def __init__(
        self,
        host: str,
        path: str,
        username: str,
        port: int = 22,
        password: str | None = None,
        private_key: str | None = None,
        passphrase: str | None = None,
    ) -> None:
        self.host = host
        self.port = port
        self.root = path
        self.username = username
        self.password = password
        self.private_key = private_key
        self.passphrase = passphrase

    def _connect_options(self) -> dict[str, Any]:
        options: dict[str, Any] = {
            "port": self.port,
            "username": self.username,
            "known_hosts": None,
        }
        if self.password is not None:
            options["password"] = self.password
        if self.private_key:
            options["client_keys"] = [self.private_key]
            if self.passphrase is not None:
                options["passphrase"] = self.passphrase
        return options

    async def read_file(self, name: str) -> bytes:
        full = resolve_beneath(self.root, name)
        try:
            async with asyncssh.connect(self.host, **self._connect_options()) as conn:
                async with conn.start_sftp_client() as sftp:
                    async with sftp.open(full, "rb") as f:
                        return await f.read()
        except (OSError, asyncssh.Error) as exc:
            raise TransportError(f"sftp://{self.host}{full}: {exc}") from exc

    async def write_file(self, name: str, data: bytes) -> None:
        full = resolve_beneath(self.root, name)
        try:
            async with asyncssh.connect(self.host, **self._connect_options()) as conn:
                async with conn.start_sftp_client() as sftp:
                    async with sftp.open(full, "wb") as f:
                        await f.write(data)
        except (OSError, asyncssh.Error) as exc:
            raise TransportError(f"sftp://{self.host}{full}: {exc}") from exc

"""Transport backends and the factory that picks them from configuration."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import ConfigError
from .base import CommandChannel, FileAccess, MemberSource
from .ftp import FtpFileAccess
from .local import LocalFileAccess
from .pipe import PIPE_TIMEOUT, PipeCommandChannel
from .rcon import RconCommandChannel, RconPool
from .sftp import SftpFileAccess


class _Block(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class LocalConfig(_Block):
    path: str


class SftpConfig(_Block):
    host: str
    port: int = 22
    username: str
    password: str | None = None
    private_key: str | None = Field(None, alias="privateKey")
    passphrase: str | None = None
    path: str = "/"


class FtpConfig(_Block):
    host: str
    port: int = 21
    username: str = "anonymous"
    password: str = ""
    path: str = "/"


class PipeConfig(_Block):
    path: str
    timeout: float = PIPE_TIMEOUT


class RconConfig(_Block):
    host: str
    port: int = 25575
    password: str


class ServerConfig(_Block):
    """One entry of the ``servers`` section of ``config.json``."""

    local: LocalConfig | None = None
    sftp: SftpConfig | None = None
    ftp: FtpConfig | None = None
    pipe: PipeConfig | None = None
    rcon: RconConfig | None = None
    op_everyone: bool = Field(False, alias="opEveryone")


@dataclass
class Server:
    """A configured server with its transports."""

    server_id: str
    files: FileAccess
    commands: CommandChannel
    op_everyone: bool = False


def _only_one(server_id: str, kind: str, options: dict[str, Any]) -> str:
    chosen = [name for name, value in options.items() if value is not None]
    if not chosen:
        raise ConfigError(
            f"Server {server_id}: no {kind} backend, expected one of "
            + ", ".join(options)
        )
    if len(chosen) > 1:
        raise ConfigError(
            f"Server {server_id}: several {kind} backends given ({', '.join(chosen)})"
        )
    return chosen[0]


def build_file_access(server_id: str, config: ServerConfig) -> FileAccess:
    backend = _only_one(
        server_id, "file", {"local": config.local, "sftp": config.sftp, "ftp": config.ftp}
    )
    if backend == "local":
        return LocalFileAccess(config.local.path)
    if backend == "sftp":
        c = config.sftp
        return SftpFileAccess(
            c.host,
            c.path,
            c.username,
            port=c.port,
            password=c.password,
            private_key=c.private_key,
            passphrase=c.passphrase,
        )
    c = config.ftp
    return FtpFileAccess(c.host, c.path, c.username, c.password, port=c.port)


def build_command_channel(
    server_id: str, config: ServerConfig, pool: RconPool | None = None
) -> CommandChannel:
    backend = _only_one(server_id, "command", {"pipe": config.pipe, "rcon": config.rcon})
    if backend == "pipe":
        return PipeCommandChannel(config.pipe.path, timeout=config.pipe.timeout)
    c = config.rcon
    return RconCommandChannel(c.host, c.password, port=c.port, pool=pool)


def build_server(
    server_id: str, block: dict[str, Any], pool: RconPool | None = None
) -> Server:
    """Validate ``block`` and construct the transports it names."""
    try:
        config = ServerConfig.model_validate(block)
    except ValidationError as exc:
        raise ConfigError(f"Server {server_id}: {exc}") from exc
    return Server(
        server_id=server_id,
        files=build_file_access(server_id, config),
        commands=build_command_channel(server_id, config, pool),
        op_everyone=config.op_everyone,
    )


__all__ = [
    "CommandChannel",
    "FileAccess",
    "FtpFileAccess",
    "LocalFileAccess",
    "MemberSource",
    "PipeCommandChannel",
    "RconCommandChannel",
    "RconPool",
    "Server",
    "ServerConfig",
    "SftpFileAccess",
    "build_command_channel",
    "build_file_access",
    "build_server",
]

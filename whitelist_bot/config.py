import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .adapters import Server, build_server
from .adapters.rcon import RconPool
from .errors import ConfigError

log = logging.getLogger("whitelist.config")


@dataclass(frozen=True)
class Settings:
    token: str
    data_path: str = "whitelist.json"
    config_path: str = "config.json"
    usercache_path: str = "usercache.json"
    # Seconds between a trigger and the whitelist update it causes
    update_delay: float = 5.0


def load_settings() -> Settings:
    token = os.getenv("DISCORD_BOT_TOKEN", "").strip()
    return Settings(
        token=token or "",
        data_path=os.getenv("WHITELIST_DATA_PATH", "whitelist.json"),
        config_path=os.getenv("WHITELIST_CONFIG_PATH", "config.json"),
        usercache_path=os.getenv("WHITELIST_USERCACHE_PATH", "usercache.json"),
        update_delay=float(os.getenv("WHITELIST_UPDATE_DELAY", "5.0")),
    )


class RoleConfig(BaseModel):
    """Servers granted by one Discord role and how many accounts it allows."""

    model_config = ConfigDict(populate_by_name=True)

    servers: list[str] = Field(default_factory=list)
    allowed_links: int = Field(1, alias="allowedLinks")


class _RawConfig(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    guild: str
    log: str | None = None
    servers: dict[str, dict[str, Any]] = Field(default_factory=dict)
    roles: dict[str, RoleConfig] = Field(default_factory=dict)


@dataclass
class WhitelistConfig:
    guild: str
    log_channel: str | None = None
    servers: dict[str, Server] = field(default_factory=dict)
    roles: dict[str, RoleConfig] = field(default_factory=dict)


def parse_whitelist_config(
    data: dict[str, Any], pool: RconPool | None = None
) -> WhitelistConfig:
    """Build a :class:`WhitelistConfig` from the decoded ``config.json``.

    A broken server block only disables that server; the error is logged.
    """
    try:
        raw = _RawConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc
    servers: dict[str, Server] = {}
    for server_id, block in raw.servers.items():
        try:
            servers[server_id] = build_server(server_id, block, pool)
        except ConfigError:
            log.exception("Ignoring server %s", server_id)
    return WhitelistConfig(
        guild=raw.guild, log_channel=raw.log, servers=servers, roles=raw.roles
    )


def load_whitelist_config(path: str | Path) -> WhitelistConfig:
    with open(path, encoding="utf-8") as f:
        return parse_whitelist_config(json.load(f))

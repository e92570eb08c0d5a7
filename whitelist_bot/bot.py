"""Discord bot hosting the whitelist synchronisation."""

from __future__ import annotations

from typing import Any

import discord
from discord.ext import commands

from .adapters.discord import DiscordAdapter
from .adapters.rcon import DEFAULT_POOL
from .commands.utils import mapped_roles_changed
from .config import WhitelistConfig
from .logging_config import setup_logging
from .whitelist.service import WhitelistService


class WhitelistBot(commands.Bot):
    """Small ``discord.py`` based bot keeping server whitelists in sync."""

    def __init__(
        self,
        service: WhitelistService,
        config: WhitelistConfig,
        adapter: DiscordAdapter,
        **kwargs: Any,
    ) -> None:
        """Initialize the bot with the intents needed for role updates."""
        intents = kwargs.pop("intents", None) or discord.Intents.default()
        # Role changes only arrive with the members intent; slash commands
        # do not need message content.
        intents.members = True
        intents.message_content = False
        super().__init__(
            command_prefix=kwargs.pop("command_prefix", "!"),
            intents=intents,
        )
        self.log = setup_logging()
        self.service = service
        self.whitelist_config = config
        self.adapter = adapter

    async def setup_hook(self) -> None:
        """Sync slash commands, migrate legacy names and schedule an update."""
        # ``discord.py`` does not register slash commands with Discord on its
        # own. Syncing to the configured guild makes them show up at once.
        guild = discord.Object(id=int(self.whitelist_config.guild))
        self.tree.copy_global_to(guild=guild)
        await self.tree.sync(guild=guild)

        await self.service.store.convert_names_to_uuids(self.service.cache)
        self.service.scheduler.trigger()
        await super().setup_hook()

    async def on_ready(self) -> None:  # pragma: no cover - requires discord
        """Log a short confirmation once the bot connected successfully."""
        self.log.info(
            "Logged in as %s (%s)",
            self.user,
            self.user.id if self.user else "?",
        )

    async def on_member_update(
        self, before: discord.Member, after: discord.Member
    ) -> None:
        """Schedule an update when a mapped role was granted or taken away."""
        if str(after.guild.id) != self.whitelist_config.guild:
            return
        role = mapped_roles_changed(
            (str(r.id) for r in before.roles),
            (str(r.id) for r in after.roles),
            self.whitelist_config.roles,
        )
        if role is not None:
            self.log.info("Role update: %s, scheduling whitelist update", role)
            self.service.scheduler.trigger()

    async def close(self) -> None:
        await self.service.scheduler.close()
        await DEFAULT_POOL.close()
        await self.service.cache.close()
        await self.adapter.close()
        await super().close()


__all__ = ["WhitelistBot"]

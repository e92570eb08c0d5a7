from __future__ import annotations

import asyncio

from .adapters.discord import DiscordAdapter
from .bot import WhitelistBot
from .commands.register import register_commands
from .config import load_settings, load_whitelist_config
from .core.storage import IdentityStore
from .logging_config import setup_logging
from .usercache import UserCache
from .whitelist import MembershipResolver, Reconciler, UpdateScheduler, WhitelistService


def main() -> int:
    log = setup_logging()
    settings = load_settings()
    if not settings.token:
        log.error(
            "DISCORD_BOT_TOKEN is not set. "
            "Export it in your environment before running."
        )
        return 2
    config = load_whitelist_config(settings.config_path)
    if not config.servers:
        log.warning("No usable servers configured, nothing will be synchronised")

    async def runner():
        store = IdentityStore(settings.data_path)
        cache = UserCache(settings.usercache_path)
        adapter = DiscordAdapter(settings.token, config.guild)
        resolver = MembershipResolver(
            store, adapter, cache, config.roles, config.servers
        )
        reconciler = Reconciler(resolver, config.servers)
        scheduler = UpdateScheduler(reconciler.reconcile, delay=settings.update_delay)
        service = WhitelistService(store, cache, resolver, scheduler)
        bot = WhitelistBot(service, config, adapter)
        register_commands(bot, service, config, adapter)
        try:
            async with bot:
                await bot.start(settings.token)
        except KeyboardInterrupt:
            log.info("Shutting down...")
        return 0

    return asyncio.run(runner())


if __name__ == "__main__":
    raise SystemExit(main())

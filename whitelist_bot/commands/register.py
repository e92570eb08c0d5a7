"""Registration of the ``/whitelist`` slash commands."""

from __future__ import annotations

import io
import json
import logging

import discord
from discord import app_commands
from discord.ext import commands

from ..adapters.discord import DiscordAdapter
from ..config import WhitelistConfig
from ..core.models import IdentityRecord
from ..whitelist.service import UNKNOWN_PLAYER, UNKNOWN_USER, WhitelistService, escape_name
from .utils import can_modify, command_line, is_admin

log = logging.getLogger("whitelist.commands")

NO_PERMISSION = "You do not have permission to use this command."


class WhitelistGroup(app_commands.Group):
    """``/whitelist`` with a shared error reply."""

    async def on_error(
        self, interaction: discord.Interaction, error: app_commands.AppCommandError
    ) -> None:
        log.error("Error while executing command", exc_info=error)
        content = "An error occured trying to execute this command"
        try:
            if interaction.response.is_done():
                await interaction.edit_original_response(content=content)
            else:
                await interaction.response.send_message(content, ephemeral=True)
        except discord.HTTPException:
            log.exception("Could not report the error to the user")


def register_commands(
    bot: commands.Bot,
    service: WhitelistService,
    config: WhitelistConfig,
    adapter: DiscordAdapter,
) -> None:
    """Add the ``/whitelist`` group to ``bot``'s command tree."""
    group = WhitelistGroup(name="whitelist", description="Manages the whitelists")

    async def get_member(
        interaction: discord.Interaction, user: discord.abc.User
    ) -> discord.Member:
        guild = interaction.guild or await bot.fetch_guild(int(config.guild))
        return guild.get_member(user.id) or await guild.fetch_member(user.id)

    async def make_embed(
        interaction: discord.Interaction, user: discord.abc.User, record: IdentityRecord
    ) -> discord.Embed:
        member = await get_member(interaction, user)
        roles = [str(r.id) for r in member.roles]
        profiles = await service.profiles(record)
        limit = service.resolver.allowed_links(roles)
        servers = sorted(service.resolver.servers_for_roles(roles))
        count = f"{len(profiles)}/{limit}"
        embed = discord.Embed(title=user.name)
        embed.add_field(
            name=f"Username{'' if len(record.uuids) == 1 else 's'} ({count})",
            value=",\n".join(f"{escape_name(p.name)} `{p.uuid}`" for p in profiles)
            or "None",
            inline=False,
        )
        embed.add_field(name="Servers", value="\n".join(servers) or "None", inline=False)
        embed.set_footer(text=str(user), icon_url=user.display_avatar.url)
        return embed

    async def audit(
        interaction: discord.Interaction,
        subcommand: str,
        options: dict[str, object],
        embed: discord.Embed | None = None,
    ) -> None:
        if not config.log_channel:
            return
        line = command_line("whitelist", subcommand, options)
        await adapter.send_message(
            config.log_channel,
            f"{interaction.user}: `{line}`",
            embed=embed.to_dict() if embed else None,
        )

    async def resolve_target(
        interaction: discord.Interaction,
        name: str | None,
        uuid: str | None,
        user: discord.User | None,
        require_argument: bool,
    ) -> tuple[bool, discord.abc.User | None, str | None]:
        """Work out whose links a command is about.

        Returns ``(ok, target, uuid)``. On failure the user was already told.
        """
        if sum(arg is not None for arg in (name, uuid, user)) > 1:
            await interaction.response.send_message(
                "At most one of `uuid`, `name` and `user` expected", ephemeral=True
            )
            return False, None, None
        if require_argument and name is None and uuid is None and user is None:
            await interaction.response.send_message(
                "One of `uuid`, `name` and `user` expected", ephemeral=True
            )
            return False, None, None
        await interaction.response.defer(ephemeral=True)
        if name:
            uuid = await service.find_uuid(name)
            if not uuid:
                await interaction.edit_original_response(content=UNKNOWN_PLAYER)
                return False, None, None
        if uuid:
            try:
                owner = service.find_owner(uuid)
            except ValueError:
                await interaction.edit_original_response(content="Invalid UUID")
                return False, None, None
            target = await bot.fetch_user(int(owner)) if owner else None
            return True, target, uuid
        return True, user or interaction.user, None

    @group.command(name="add", description="Add yourself (or another user) to the whitelist")
    @app_commands.describe(name="The Minecraft username", user="The Discord user")
    async def add(
        interaction: discord.Interaction, name: str, user: discord.User | None = None
    ) -> None:
        target = user or interaction.user
        await interaction.response.defer(ephemeral=True)
        actor = await get_member(interaction, interaction.user)
        member = await get_member(interaction, target)
        if not can_modify(actor, member):
            await interaction.edit_original_response(
                content=f"You're not allowed to modify the whitelist settings for {target.name}"
            )
            return
        roles = [str(r.id) for r in member.roles]
        err = await service.add_account(str(target.id), name, roles)
        if err:
            await interaction.edit_original_response(content=err)
            return
        embed = await make_embed(interaction, target, service.store.get_user(str(target.id)))
        await interaction.edit_original_response(embed=embed)
        await audit(interaction, "add", {"name": name, "user": user}, embed)

    @group.command(name="remove", description="Remove one or all linked Minecraft accounts")
    @app_commands.describe(
        name="The Minecraft username", uuid="The Minecraft UUID", user="The Discord user"
    )
    async def remove(
        interaction: discord.Interaction,
        name: str | None = None,
        uuid: str | None = None,
        user: discord.User | None = None,
    ) -> None:
        ok, target, target_uuid = await resolve_target(
            interaction, name, uuid, user, require_argument=True
        )
        if not ok:
            return
        if target is None or not service.store.get_user(str(target.id)).uuids:
            await interaction.edit_original_response(content=UNKNOWN_USER)
            return
        actor = await get_member(interaction, interaction.user)
        if not can_modify(actor, await get_member(interaction, target)):
            await interaction.edit_original_response(
                content=f"You're not allowed to modify the whitelist settings for {target.name}"
            )
            return
        options = {"name": name, "uuid": uuid, "user": user}
        if target_uuid:
            err = service.remove_account(str(target.id), target_uuid)
            if err:
                await interaction.edit_original_response(content=err)
                return
            embed = await make_embed(
                interaction, target, service.store.get_user(str(target.id))
            )
            await interaction.edit_original_response(embed=embed)
            await audit(interaction, "remove", options, embed)
        else:
            err = service.remove_identity(str(target.id))
            await interaction.edit_original_response(
                content=err or f"Removed all linked accounts for <@{target.id}>"
            )
            await audit(interaction, "remove", options)

    @group.command(name="info", description="Get info about a whitelisted user")
    @app_commands.describe(
        name="The Minecraft username", uuid="The Minecraft UUID", user="The Discord user"
    )
    async def info(
        interaction: discord.Interaction,
        name: str | None = None,
        uuid: str | None = None,
        user: discord.User | None = None,
    ) -> None:
        ok, target, _ = await resolve_target(
            interaction, name, uuid, user, require_argument=False
        )
        if not ok:
            return
        record = service.store.get_user(str(target.id)) if target else None
        if record is None or not record.uuids:
            await interaction.edit_original_response(content=UNKNOWN_USER)
            return
        await interaction.edit_original_response(
            embed=await make_embed(interaction, target, record)
        )

    @group.command(name="dump", description="Dump the whitelist state as human readable json")
    async def dump(interaction: discord.Interaction) -> None:
        await interaction.response.defer(ephemeral=True)
        if not is_admin(await get_member(interaction, interaction.user)):
            await interaction.edit_original_response(content=NO_PERMISSION)
            return
        data = json.dumps(await service.dump(), indent=2).encode("utf-8")
        await interaction.followup.send(
            file=discord.File(io.BytesIO(data), filename="dump.json"), ephemeral=True
        )

    @group.command(name="reload", description="Reload the whitelist database")
    async def reload(interaction: discord.Interaction) -> None:
        await interaction.response.defer(ephemeral=True)
        if not is_admin(await get_member(interaction, interaction.user)):
            await interaction.edit_original_response(content=NO_PERMISSION)
            return
        try:
            ok = await service.reload()
            await interaction.edit_original_response(
                content="Database reloaded" if ok else "Database reloaded, update failed"
            )
        finally:
            await audit(interaction, "reload", {})

    @group.command(name="ban", description="Keep a user's accounts off every server")
    @app_commands.describe(user="The Discord user", banned="Whether the user is banned")
    async def ban(
        interaction: discord.Interaction, user: discord.User, banned: bool = True
    ) -> None:
        await interaction.response.defer(ephemeral=True)
        if not is_admin(await get_member(interaction, interaction.user)):
            await interaction.edit_original_response(content=NO_PERMISSION)
            return
        err = service.set_banned(str(user.id), banned)
        await interaction.edit_original_response(
            content=err or f"{'Banned' if banned else 'Unbanned'} <@{user.id}>"
        )
        if not err:
            await audit(interaction, "ban", {"user": user, "banned": banned})

    bot.tree.add_command(group)

"""Reply handling of the ``/whitelist`` commands without a gateway."""

import asyncio
from types import SimpleNamespace

import discord
from discord.ext import commands

from whitelist_bot.commands.register import NO_PERMISSION, register_commands
from whitelist_bot.config import WhitelistConfig


def member(user_id: int, name: str, admin: bool = False) -> SimpleNamespace:
    return SimpleNamespace(
        id=user_id,
        name=name,
        roles=[],
        top_role=0,
        guild_permissions=SimpleNamespace(manage_roles=admin, administrator=admin),
    )


class FakeResponse:
    def __init__(self, events: list) -> None:
        self.events = events
        self.done = False

    def is_done(self) -> bool:
        return self.done

    async def defer(self, **kwargs) -> None:
        self.events.append("defer")
        self.done = True

    async def send_message(self, content, **kwargs) -> None:
        self.events.append(("send", content))
        self.done = True


class FakeGuild:
    def __init__(self, events: list, members: dict) -> None:
        self.events = events
        self.members = members

    def get_member(self, user_id):
        return None

    async def fetch_member(self, user_id):
        self.events.append(("fetch_member", user_id))
        return self.members[user_id]


class FakeInteraction:
    def __init__(self, user, members: dict) -> None:
        self.events: list = []
        self.user = user
        self.guild = FakeGuild(self.events, members)
        self.response = FakeResponse(self.events)

    async def edit_original_response(self, **kwargs) -> None:
        self.events.append(("edit", kwargs.get("content")))


def whitelist_command(name: str):
    bot = commands.Bot(command_prefix="!", intents=discord.Intents.none())
    register_commands(bot, service=None, config=WhitelistConfig(guild="1"), adapter=None)
    return bot.tree.get_command("whitelist").get_command(name)


def test_add_defers_before_looking_up_members() -> None:
    steve, alex = member(1, "steve"), member(2, "alex")
    interaction = FakeInteraction(steve, {1: steve, 2: alex})

    asyncio.run(whitelist_command("add").callback(interaction, name="Alex", user=alex))

    assert interaction.events[0] == "defer"
    assert ("fetch_member", 1) in interaction.events
    assert interaction.events[-1] == (
        "edit",
        "You're not allowed to modify the whitelist settings for alex",
    )


def test_admin_commands_defer_before_checking_permissions() -> None:
    steve = member(1, "steve")
    for name in ("dump", "reload"):
        interaction = FakeInteraction(steve, {1: steve})
        asyncio.run(whitelist_command(name).callback(interaction))
        assert interaction.events == ["defer", ("fetch_member", 1), ("edit", NO_PERMISSION)]

    interaction = FakeInteraction(steve, {1: steve})
    asyncio.run(whitelist_command("ban").callback(interaction, user=member(2, "alex")))
    assert interaction.events == ["defer", ("fetch_member", 1), ("edit", NO_PERMISSION)]

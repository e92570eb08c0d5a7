import py_compile
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent


def test_bot_and_main_compile() -> None:
    """The Discord facing modules should at least be syntactically valid.

    They need a gateway connection to do anything useful, so compiling them
    is the cheapest way to catch a broken import-time module.
    """

    py_compile.compile(str(ROOT / "whitelist_bot/bot.py"), doraise=True)
    py_compile.compile(str(ROOT / "whitelist_bot/main.py"), doraise=True)
    py_compile.compile(str(ROOT / "whitelist_bot/commands/register.py"), doraise=True)


def test_register_commands_adds_group() -> None:
    import discord
    from discord.ext import commands

    from whitelist_bot.commands.register import register_commands
    from whitelist_bot.config import WhitelistConfig

    bot = commands.Bot(command_prefix="!", intents=discord.Intents.none())
    register_commands(bot, service=None, config=WhitelistConfig(guild="1"), adapter=None)

    group = bot.tree.get_command("whitelist")
    assert group is not None
    assert sorted(c.name for c in group.commands) == [
        "add",
        "ban",
        "dump",
        "info",
        "reload",
        "remove",
    ]

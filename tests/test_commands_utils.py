from types import SimpleNamespace

from whitelist_bot.commands.utils import can_modify, command_line, is_admin, mapped_roles_changed


def member(uid, rank=0, manage_roles=False, administrator=False):
    return SimpleNamespace(
        id=uid,
        top_role=rank,
        guild_permissions=SimpleNamespace(
            manage_roles=manage_roles, administrator=administrator
        ),
    )


def test_mapped_roles_changed():
    mapped = {"100", "200"}
    assert mapped_roles_changed(["1", "100"], ["1", "100"], mapped) is None
    assert mapped_roles_changed(["1"], ["1", "2"], mapped) is None
    assert mapped_roles_changed(["1"], ["1", "200"], mapped) == "200"
    assert mapped_roles_changed(["100"], [], mapped) == "100"


def test_can_modify():
    assert can_modify(member(1), member(1))
    assert not can_modify(member(1, rank=5), member(2, rank=1))
    assert can_modify(member(1, rank=5, manage_roles=True), member(2, rank=1))
    assert not can_modify(member(1, rank=1, manage_roles=True), member(2, rank=1))


def test_is_admin():
    assert is_admin(member(1, administrator=True))
    assert not is_admin(member(1))


def test_command_line():
    line = command_line("whitelist", "remove", {"name": "Steve", "uuid": None})
    assert line == "/whitelist remove name:Steve"

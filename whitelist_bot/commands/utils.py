from __future__ import annotations

from collections.abc import Iterable
from typing import Any


def mapped_roles_changed(
    before: Iterable[str], after: Iterable[str], mapped: Iterable[str]
) -> str | None:
    """Return a mapped role that was added or removed, if any."""
    changed = set(before) ^ set(after)
    mapped = set(mapped)
    return next((role for role in sorted(changed) if role in mapped), None)


def can_modify(member: Any, other: Any) -> bool:
    """Members manage their own links; moderators manage those ranked below."""
    if member.id == other.id:
        return True
    return bool(
        member.guild_permissions.manage_roles and member.top_role > other.top_role
    )


def is_admin(member: Any) -> bool:
    return bool(member.guild_permissions.administrator)


def command_line(name: str, subcommand: str, options: dict[str, Any]) -> str:
    """Render an invocation like ``/whitelist add name:Steve``."""
    parts = [f"/{name}", subcommand]
    parts += [f"{k}:{v}" for k, v in options.items() if v is not None]
    return " ".join(parts)

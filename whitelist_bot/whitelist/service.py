"""Whitelist operations behind the ``/whitelist`` commands.

Methods return ``None`` on success or a message for the user, in the same
way the store helpers do. Every successful mutation schedules an update.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from ..core.models import IdentityRecord, Profile, format_uuid
from ..core.storage import IdentityStore
from ..usercache import UserCache
from .resolver import MembershipResolver
from .scheduler import UpdateScheduler

log = logging.getLogger("whitelist.service")

UNKNOWN_PLAYER = "Cannot find a Minecraft player by that name"
UNKNOWN_USER = "Unknown user"


class WhitelistService:
    def __init__(
        self,
        store: IdentityStore,
        cache: UserCache,
        resolver: MembershipResolver,
        scheduler: UpdateScheduler,
    ) -> None:
        self.store = store
        self.cache = cache
        self.resolver = resolver
        self.scheduler = scheduler

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    async def find_uuid(self, name: str) -> str | None:
        return await self.cache.resolve_uuid(name)

    def find_owner(self, uuid: str) -> str | None:
        """Return the identity ``uuid`` is linked to (accepts undashed form)."""
        linked = self.store.get_linked_user(format_uuid(uuid))
        return linked[0] if linked else None

    async def profiles(self, record: IdentityRecord) -> list[Profile]:
        return await self.cache.resolve_names(record.uuids)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    async def add_account(
        self, target_id: str, name: str, roles: Iterable[str]
    ) -> str | None:
        """Link the Minecraft account ``name`` to ``target_id``."""
        uuid = await self.cache.resolve_uuid(name)
        if not uuid:
            return UNKNOWN_PLAYER
        current = self.store.get_user(target_id)
        if uuid in current.uuids:
            return f"{escape_name(name)} ({uuid}) is already added to this user"
        if self.store.get_linked_user(uuid) is not None:
            return f"{escape_name(name)} ({uuid}) is already linked to another user"
        allowed = self.resolver.allowed_links(roles)
        if len(current.uuids) + 1 > allowed:
            plural = "" if allowed == 1 else "s"
            return (
                f"This account is only allowed {allowed} linked "
                f"minecraft account{plural}"
            )
        self.store.link_user(target_id, uuid)
        log.info("Linked %s (%s) to %s", name, uuid, target_id)
        self.scheduler.trigger()
        return None

    def remove_account(self, target_id: str, uuid: str) -> str | None:
        """Unlink one account from ``target_id``."""
        uuid = format_uuid(uuid)
        if uuid not in self.store.get_user(target_id).uuids:
            return UNKNOWN_USER
        self.store.unlink_user(target_id, uuid)
        log.info("Unlinked %s from %s", uuid, target_id)
        self.scheduler.trigger()
        return None

    def remove_identity(self, target_id: str) -> str | None:
        """Unlink every account of ``target_id``."""
        if not self.store.get_user(target_id).uuids:
            return UNKNOWN_USER
        removed = self.store.remove_user(target_id)
        log.info("Removed %s (%s)", target_id, ", ".join(removed.uuids))
        self.scheduler.trigger()
        return None

    def set_banned(self, target_id: str, banned: bool) -> str | None:
        if not self.store.has_user(target_id):
            return UNKNOWN_USER
        self.store.set_banned(target_id, banned)
        log.info("%s %s", "Banned" if banned else "Unbanned", target_id)
        self.scheduler.trigger()
        return None

    async def reload(self) -> bool:
        """Re-read the database, migrate names and wait for the update."""
        self.store.reload()
        await self.store.convert_names_to_uuids(self.cache)
        return await self.scheduler.trigger()

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------
    async def dump(self) -> dict:
        """Human readable snapshot of who is whitelisted where."""
        state = await self.resolver.calculate_state()
        banned = self.store.get_banned_uuids()
        users: dict[str, dict] = {}
        for uuid, uid in state.by_uuid.items():
            user = users.setdefault(uid, {"uuids": {}})
            if uuid in banned:
                user["banned"] = True
            user["uuids"][uuid] = state.names.get(uuid)
            if uid in state.servers_for_id:
                user["servers"] = sorted(state.servers_for_id[uid])
        removed = {uuid: state.names.get(uuid) for uuid in sorted(self.store.removed)}
        return {"users": users, "removed": removed}


def escape_name(name: str) -> str:
    """Escape underscores so Discord does not render names in italics."""
    return name.replace("_", "\\_")

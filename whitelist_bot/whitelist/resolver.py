"""Work out which servers every known Minecraft account belongs on."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from ..adapters.base import MemberSource
from ..config import RoleConfig
from ..core.storage import IdentityStore
from ..usercache import UserCache

log = logging.getLogger("whitelist.resolver")

# Discord accepts at most 100 user ids per member query.
MEMBER_BATCH_SIZE = 100


@dataclass
class AuthorizationState:
    """Result of one resolution pass.

    ``servers_for_uuid`` holds every managed UUID; an empty set means the
    account must be removed everywhere.
    """

    servers_for_uuid: dict[str, set[str]] = field(default_factory=dict)
    servers_for_id: dict[str, set[str]] = field(default_factory=dict)
    by_uuid: dict[str, str] = field(default_factory=dict)
    members: dict[str, set[str]] = field(default_factory=dict)
    names: dict[str, str] = field(default_factory=dict)


class MembershipResolver:
    """Combine the identity store, Discord roles and the role mapping."""

    def __init__(
        self,
        store: IdentityStore,
        members: MemberSource,
        cache: UserCache,
        roles: dict[str, RoleConfig],
        server_ids: Iterable[str],
    ) -> None:
        self.store = store
        self.members = members
        self.cache = cache
        self.roles = roles
        self.server_ids = list(server_ids)

    def servers_for_role(self, role_id: str) -> set[str]:
        """Expand the role's server list; ``*.suffix`` matches by suffix."""
        servers: set[str] = set()
        for glob in self.roles[role_id].servers:
            if glob.startswith("*."):
                suffix = glob[2:]
                servers.update(s for s in self.server_ids if s.endswith(suffix))
            else:
                servers.add(glob)
        return servers

    def servers_for_roles(self, roles: Iterable[str]) -> set[str]:
        servers: set[str] = set()
        for role_id in roles:
            if role_id in self.roles:
                servers |= self.servers_for_role(role_id)
        return servers

    def allowed_links(self, roles: Iterable[str]) -> int:
        """Largest ``allowedLinks`` among the mapped roles held, else 0."""
        return max(
            (self.roles[r].allowed_links for r in roles if r in self.roles), default=0
        )

    async def fetch_members(self, user_ids: list[str]) -> dict[str, set[str]]:
        batches = [
            user_ids[i : i + MEMBER_BATCH_SIZE]
            for i in range(0, len(user_ids), MEMBER_BATCH_SIZE)
        ]
        members: dict[str, set[str]] = {}
        for found in await asyncio.gather(
            *(self.members.fetch_members(b) for b in batches)
        ):
            members.update(found)
        return members

    async def calculate_state(self) -> AuthorizationState:
        by_uuid = self.store.get_all_by_uuid()
        removed = self.store.removed
        banned = self.store.get_banned_uuids()

        profiles = await self.cache.resolve_names(sorted(set(by_uuid) | removed))
        names = {p.uuid: p.name for p in profiles}

        members = await self.fetch_members(sorted(set(by_uuid.values())))
        servers_for_id = {
            uid: self.servers_for_roles(roles) for uid, roles in members.items()
        }

        servers_for_uuid: dict[str, set[str]] = {uuid: set() for uuid in removed}
        for uuid, uid in by_uuid.items():
            servers = servers_for_id.get(uid)
            if servers is None:
                log.warning("Could not find servers for %s (%s)", uuid, uid)
                continue
            servers_for_uuid[uuid] = set(servers)
        for uuid in banned:
            servers_for_uuid[uuid] = set()

        return AuthorizationState(
            servers_for_uuid=servers_for_uuid,
            servers_for_id=servers_for_id,
            by_uuid=by_uuid,
            members=members,
            names=names,
        )

    async def resolve_authorization(self) -> dict[str, set[str]]:
        """Return ``uuid -> server ids`` the account may appear on."""
        return (await self.calculate_state()).servers_for_uuid

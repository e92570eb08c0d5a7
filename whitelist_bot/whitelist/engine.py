"""Bring every server's ``whitelist.json`` in line with the resolved state."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field

from pydantic import TypeAdapter, ValidationError

from ..adapters import Server
from ..core.models import WhitelistEntry
from .resolver import AuthorizationState, MembershipResolver

log = logging.getLogger("whitelist.engine")

WHITELIST_FILE = "whitelist.json"

_ENTRIES = TypeAdapter(list[WhitelistEntry])


@dataclass
class ServerUpdate:
    """What one pass did to one server."""

    additions: list[str] = field(default_factory=list)
    removals: list[str] = field(default_factory=list)
    commands: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def changed(self) -> bool:
        return bool(self.additions or self.removals)


@dataclass
class WhitelistDiff:
    entries: list[WhitelistEntry]
    additions: list[WhitelistEntry]
    removals: list[WhitelistEntry]


def parse_whitelist(data: bytes) -> list[WhitelistEntry]:
    """Decode a server whitelist file; malformed content raises ``ValueError``."""
    try:
        return _ENTRIES.validate_json(data)
    except ValidationError as exc:
        raise ValueError(f"Malformed whitelist: {exc}") from exc


def dump_whitelist(entries: list[WhitelistEntry]) -> bytes:
    payload = [entry.model_dump(exclude_none=True) for entry in entries]
    return json.dumps(payload, indent=2).encode("utf-8")


def diff_whitelist(
    server_id: str,
    current: list[WhitelistEntry],
    servers_for_uuid: dict[str, set[str]],
    names: dict[str, str],
) -> WhitelistDiff:
    """Split ``current`` into kept entries and removals, then add the missing.

    Entries for UUIDs absent from ``servers_for_uuid`` are not ours and are
    always kept.
    """
    entries: list[WhitelistEntry] = []
    removals: list[WhitelistEntry] = []
    present: set[str] = set()
    for entry in current:
        allowed = servers_for_uuid.get(entry.uuid)
        if allowed is None or server_id in allowed:
            entries.append(entry)
            present.add(entry.uuid)
        else:
            removals.append(entry)

    additions: list[WhitelistEntry] = []
    for uuid, allowed in servers_for_uuid.items():
        if uuid in present or server_id not in allowed:
            continue
        name = names.get(uuid)
        if not name:
            log.warning("No name known for %s, not adding it to %s yet", uuid, server_id)
            continue
        additions.append(WhitelistEntry(uuid=uuid, name=name))
    entries.extend(additions)
    return WhitelistDiff(entries=entries, additions=additions, removals=removals)


def build_commands(
    diff: WhitelistDiff, names: dict[str, str], op_everyone: bool
) -> list[str]:
    commands: list[str] = []
    for entry in diff.removals:
        name = names.get(entry.uuid) or entry.name or entry.uuid
        commands.append(f"deop {name}")
        commands.append(f"kick {name}")
    if op_everyone:
        for entry in diff.additions:
            commands.append(f"op {entry.name}")
    commands.append("whitelist reload")
    return commands


class Reconciler:
    """Run reconciliation passes over all configured servers."""

    def __init__(self, resolver: MembershipResolver, servers: dict[str, Server]) -> None:
        self.resolver = resolver
        self.servers = servers

    async def reconcile_server(
        self, server: Server, state: AuthorizationState
    ) -> ServerUpdate:
        """Update a single server. Errors are logged and reported, not raised."""
        update = ServerUpdate()
        log.info("Updating %s...", server.server_id)
        try:
            current = parse_whitelist(await server.files.read_file(WHITELIST_FILE))
            diff = diff_whitelist(
                server.server_id, current, state.servers_for_uuid, state.names
            )
            update.additions = [e.uuid for e in diff.additions]
            update.removals = [e.uuid for e in diff.removals]
            if not update.changed:
                return update
            await server.files.write_file(WHITELIST_FILE, dump_whitelist(diff.entries))
            update.commands = build_commands(diff, state.names, server.op_everyone)
            await server.commands.run_commands(*update.commands)
        except Exception as exc:
            log.exception("Could not update %s", server.server_id)
            update.error = str(exc) or type(exc).__name__
        return update

    async def reconcile(self) -> dict[str, ServerUpdate]:
        """Run one pass; returns the per-server outcome."""
        log.info("Updating whitelist...")
        start = time.monotonic()
        state = await self.resolver.calculate_state()
        server_ids = list(self.servers)
        results = await asyncio.gather(
            *(self.reconcile_server(self.servers[s], state) for s in server_ids)
        )
        report = dict(zip(server_ids, results))
        changed = {s: u for s, u in report.items() if u.changed}
        if changed:
            log.info(
                "Changes: %s",
                {s: {"additions": u.additions, "removals": u.removals} for s, u in changed.items()},
            )
        log.info("Done in %dms", (time.monotonic() - start) * 1000)
        return report

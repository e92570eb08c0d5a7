"""Cached Minecraft username/UUID lookups against Mojang's HTTP API.

Entries are keyed by lower-cased username and expire after a day. The cache
is persisted to a JSON file so restarts do not hammer the profile service.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from pathlib import Path
from typing import Any

import httpx

from .core.models import Profile, format_uuid
from .errors import IdentityResolutionError

log = logging.getLogger("whitelist.usercache")

CACHE_TIMEOUT = 86400.0
# The bulk profile endpoint accepts at most ten names per request.
BATCH_SIZE = 10


class UserCache:
    """Resolve Minecraft usernames and UUIDs with a TTL cache."""

    profiles_url = "https://api.mojang.com/profiles/minecraft"
    session_url = "https://sessionserver.mojang.com/session/minecraft/profile"

    def __init__(
        self,
        path: Path | str | None = "usercache.json",
        client: httpx.AsyncClient | None = None,
        ttl: float = CACHE_TIMEOUT,
    ) -> None:
        self.path = Path(path) if path else None
        self.client = client or httpx.AsyncClient(timeout=10.0)
        self.ttl = ttl
        self._cache: dict[str, dict[str, Any]] = {}
        if self.path and self.path.exists():
            self._cache = json.loads(self.path.read_text(encoding="utf-8"))

    # ------------------------------------------------------------------
    # Internal helpers
    def _save(self) -> None:
        if not self.path:
            return
        self.path.write_text(json.dumps(self._cache, indent=2), encoding="utf-8")

    def _remember(self, name: str, uuid: str) -> None:
        self._cache[name.lower()] = {
            "name": name,
            "uuid": uuid,
            "expires": time.time() + self.ttl,
        }

    def _cached_uuid(self, name: str) -> str | None:
        entry = self._cache.get(name.lower())
        if entry and entry["expires"] > time.time():
            return entry["uuid"]
        return None

    async def _lookup_uuids(self, names: list[str]) -> dict[str, str]:
        log.info("Fetching %s", ", ".join(names))
        try:
            response = await self.client.post(self.profiles_url, json=names)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise IdentityResolutionError(
                f"Cannot lookup uuid for username {', '.join(names)}"
            ) from exc
        results: dict[str, str] = {}
        for data in response.json():
            uuid = format_uuid(data["id"])
            self._remember(data["name"], uuid)
            results[data["name"].lower()] = uuid
        return results

    async def _lookup_name(self, uuid: str) -> str | None:
        log.info("Fetching %s", uuid)
        try:
            response = await self.client.get(
                f"{self.session_url}/{uuid.replace('-', '')}"
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            log.warning("Cannot lookup username for uuid %s: %s", uuid, exc)
            return None
        if response.status_code == 204 or not response.content:
            log.warning("Empty result for uuid %s", uuid)
            return None
        name = response.json()["name"]
        self._remember(name, uuid)
        return name

    # ------------------------------------------------------------------
    # Public API
    async def resolve_uuid(self, name: str) -> str | None:
        """Return the UUID for ``name`` or ``None`` for unknown players."""
        cached = self._cached_uuid(name)
        if cached:
            return cached
        results = await self._lookup_uuids([name])
        self._save()
        return results.get(name.lower())

    async def resolve_uuids(self, names: list[str]) -> dict[str, str]:
        """Resolve many names at once; keys are the lower-cased names."""
        results: dict[str, str] = {}
        missing: list[str] = []
        for name in names:
            cached = self._cached_uuid(name)
            if cached:
                results[name.lower()] = cached
            else:
                missing.append(name)
        if not missing:
            return results
        batches = [
            missing[i : i + BATCH_SIZE] for i in range(0, len(missing), BATCH_SIZE)
        ]
        for found in await asyncio.gather(*(self._lookup_uuids(b) for b in batches)):
            results.update(found)
        self._save()
        return results

    async def resolve_name(self, uuid: str) -> str | None:
        profiles = await self.resolve_names([uuid])
        return profiles[0].name if profiles else None

    async def resolve_names(self, uuids: list[str]) -> list[Profile]:
        """Return profiles for ``uuids``; unknown UUIDs are left out."""
        wanted = set(uuids)
        known: dict[str, str] = {}
        for entry in self._cache.values():
            if entry["uuid"] in wanted:
                known[entry["uuid"]] = entry["name"]
        missing = [u for u in uuids if u not in known]
        if missing:
            names = await asyncio.gather(*(self._lookup_name(u) for u in missing))
            for uuid, name in zip(missing, names):
                if name:
                    known[uuid] = name
            self._save()
        return [Profile(uuid=u, name=known[u]) for u in uuids if u in known]

    async def close(self) -> None:
        """Close the underlying :class:`httpx.AsyncClient`."""
        await self.client.aclose()

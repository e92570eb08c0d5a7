"""JSON-backed identity store linking Discord users to Minecraft accounts."""

from __future__ import annotations

import json
import logging
import os
import threading
from collections.abc import Iterable
from pathlib import Path
from typing import TYPE_CHECKING

from ..errors import IdentityResolutionError, IntegrityError
from .models import IdentityRecord

if TYPE_CHECKING:  # pragma: no cover - import only used for annotations
    from ..usercache import UserCache

log = logging.getLogger("whitelist.store")


class IdentityStore:
    """Persist :class:`IdentityRecord` objects and the removed-UUID set.

    The whole document is rewritten on every mutation. Writes go to a
    temporary file first and are moved into place with :func:`os.replace`,
    so the file on disk always matches a complete snapshot.
    """

    def __init__(self, path: Path | str) -> None:
        """Initialise storage using JSON file at ``path``."""
        self.path = Path(path)
        self._users: dict[str, IdentityRecord] = {}
        self._removed: set[str] = set()
        self._lock = threading.RLock()
        self.reload()

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------
    def _load(self) -> None:
        self._users = {}
        self._removed = set()
        if not self.path.exists():
            return
        data = json.loads(self.path.read_text(encoding="utf-8"))
        self._users = {
            str(uid): IdentityRecord(**(rec or {}))
            for uid, rec in (data.get("users") or {}).items()
        }
        self._removed = set(data.get("removed") or [])

    def _save(self) -> None:
        tmp = self.path.with_name(self.path.name + ".tmp")
        tmp.write_text(
            json.dumps(self.dump(), indent=2, ensure_ascii=False), encoding="utf-8"
        )
        os.replace(tmp, self.path)

    def dump(self) -> dict:
        """Serialise the current state to a JSON-serialisable dict."""
        with self._lock:
            return {
                "users": {uid: rec.to_json() for uid, rec in self._users.items()},
                "removed": sorted(self._removed),
            }

    def reload(self) -> None:
        """Discard in-memory state and re-read the file from disk."""
        with self._lock:
            self._load()
            self._save()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get_user(self, user_id: str) -> IdentityRecord:
        """Return a copy of the record for ``user_id`` (empty if unknown)."""
        with self._lock:
            rec = self._users.get(str(user_id))
            return rec.model_copy(deep=True) if rec else IdentityRecord()

    def has_user(self, user_id: str) -> bool:
        with self._lock:
            return str(user_id) in self._users

    def get_linked_user(self, uuid: str) -> tuple[str, IdentityRecord] | None:
        """Find the identity ``uuid`` is linked to, if any."""
        with self._lock:
            for uid, rec in self._users.items():
                if uuid in rec.uuids:
                    return uid, rec.model_copy(deep=True)
        return None

    def get_all_by_uuid(self) -> dict[str, str]:
        """Return the inverse index ``uuid -> identity id``."""
        by_uuid: dict[str, str] = {}
        with self._lock:
            for uid, rec in self._users.items():
                for uuid in rec.uuids:
                    other = by_uuid.get(uuid)
                    if other is not None and other != uid:
                        raise IntegrityError(
                            f"{uuid} is linked to both {other} and {uid}"
                        )
                    by_uuid[uuid] = uid
        return by_uuid

    def is_banned(self, user_id: str) -> bool:
        with self._lock:
            rec = self._users.get(str(user_id))
            return bool(rec and rec.banned)

    def get_banned_uuids(self) -> set[str]:
        with self._lock:
            return {
                uuid for rec in self._users.values() if rec.banned for uuid in rec.uuids
            }

    @property
    def removed(self) -> set[str]:
        with self._lock:
            return set(self._removed)

    def user_ids(self) -> Iterable[str]:
        with self._lock:
            return list(self._users)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def link_user(self, user_id: str, uuid: str) -> IdentityRecord:
        """Add ``uuid`` to ``user_id``'s accounts and persist."""
        user_id = str(user_id)
        with self._lock:
            linked = self.get_linked_user(uuid)
            if linked is not None and linked[0] != user_id:
                raise IntegrityError(f"{uuid} is already linked to {linked[0]}")
            rec = self._users.get(user_id) or IdentityRecord()
            if uuid not in rec.uuids:
                rec.uuids.append(uuid)
            self._users[user_id] = rec
            self._removed.discard(uuid)
            self._save()
            return rec.model_copy(deep=True)

    def unlink_user(self, user_id: str, uuid: str) -> IdentityRecord:
        """Remove ``uuid`` from ``user_id`` and mark it for removal."""
        user_id = str(user_id)
        with self._lock:
            rec = self._users.get(user_id) or IdentityRecord()
            rec.uuids = [u for u in rec.uuids if u != uuid]
            if rec.uuids:
                self._users[user_id] = rec
            else:
                self._users.pop(user_id, None)
            self._removed.add(uuid)
            self._save()
            return rec.model_copy(deep=True)

    def remove_user(self, user_id: str) -> IdentityRecord:
        """Delete ``user_id`` entirely.

        Raises :class:`KeyError` for unknown identities; callers are expected
        to check :meth:`has_user` first.
        """
        user_id = str(user_id)
        with self._lock:
            rec = self._users.pop(user_id)
            self._removed.update(rec.uuids)
            self._save()
            return rec

    def set_banned(self, user_id: str, banned: bool) -> IdentityRecord:
        """Flag or unflag ``user_id`` as banned. Unknown ids raise ``KeyError``."""
        user_id = str(user_id)
        with self._lock:
            rec = self._users[user_id]
            rec.banned = banned
            self._save()
            return rec.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Migration
    # ------------------------------------------------------------------
    async def convert_names_to_uuids(self, cache: UserCache) -> bool:
        """Replace legacy ``names`` lists by the UUIDs they resolve to.

        Returns ``False`` when there was nothing to convert, or when the
        lookup failed; the names are then kept for the next attempt.
        """
        with self._lock:
            names = {
                name for rec in self._users.values() for name in rec.names or []
            }
        if not names:
            return False

        try:
            uuids = await cache.resolve_uuids(sorted(names))
        except IdentityResolutionError as exc:
            log.warning("Cannot convert legacy usernames yet, keeping them: %s", exc)
            return False

        with self._lock:
            for rec in self._users.values():
                for name in rec.names or []:
                    uuid = uuids.get(name.lower())
                    if not uuid:
                        log.warning("Invalid username %s, skipping", name)
                    elif uuid not in rec.uuids:
                        rec.uuids.append(uuid)
                rec.names = None
            self._removed.difference_update(uuids.values())
            self._save()
        log.info("Converted %d legacy usernames to UUIDs", len(uuids))
        return True

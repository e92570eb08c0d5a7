"""Data models for the whitelist identity store and server files.

The models are implemented using :mod:`pydantic` so that they provide
runtime validation and convenient serialisation to and from dictionaries.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


def format_uuid(value: str) -> str:
    """Return ``value`` in canonical dashed, lower-case form.

    Mojang hands out undashed identifiers while server files use the dashed
    form; both spellings are accepted.
    """
    raw = value.replace("-", "").strip().lower()
    if len(raw) != 32:
        raise ValueError(f"Not a Minecraft UUID: {value!r}")
    return f"{raw[:8]}-{raw[8:12]}-{raw[12:16]}-{raw[16:20]}-{raw[20:]}"


class IdentityRecord(BaseModel):
    """Minecraft accounts owned by one Discord identity.

    Attributes
    ----------
    uuids:
        Linked Minecraft UUIDs, unique, in canonical dashed form.
    banned:
        Set by moderators. A banned identity never appears on any server.
    names:
        Legacy display names from before accounts were tracked by UUID. Only
        present until :meth:`IdentityStore.convert_names_to_uuids` ran.

    """

    uuids: list[str] = Field(default_factory=list)
    banned: bool = False
    names: list[str] | None = None

    def to_json(self) -> dict:
        data: dict = {"uuids": list(self.uuids)}
        if self.banned:
            data["banned"] = True
        if self.names is not None:
            data["names"] = list(self.names)
        return data


class WhitelistEntry(BaseModel):
    """One entry of a server's ``whitelist.json``.

    Unknown keys written by the server are kept so that rewriting the file
    does not lose them.
    """

    model_config = ConfigDict(extra="allow")

    uuid: str
    name: str | None = None


class Profile(BaseModel):
    """A ``uuid``/``name`` pair as returned by the profile lookup."""

    uuid: str
    name: str

"""Core package for the whitelist bot.

This module exposes the identity store and its models so that consumers of
the package can simply import them from ``whitelist_bot``.
"""

from .core.models import IdentityRecord, Profile, WhitelistEntry, format_uuid
from .core.storage import IdentityStore

__all__ = [
    "IdentityRecord",
    "IdentityStore",
    "Profile",
    "WhitelistEntry",
    "format_uuid",
]

"""Exception hierarchy shared by the whitelist components."""

from __future__ import annotations


class WhitelistError(Exception):
    """Base class for errors raised by :mod:`whitelist_bot`."""


class ConfigError(WhitelistError):
    """A server or role block in the static configuration is unusable."""


class TransportError(WhitelistError):
    """Reading, writing or commanding a remote server failed."""


class CommandTimeout(TransportError):
    """A command batch did not complete within its time budget."""


class IdentityResolutionError(WhitelistError):
    """The Minecraft profile service could not be queried."""


class IntegrityError(WhitelistError):
    """The identity store violates one of its invariants."""

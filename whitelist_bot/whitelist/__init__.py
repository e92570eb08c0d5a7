"""The whitelist synchronisation engine."""

from .engine import Reconciler, ServerUpdate
from .resolver import AuthorizationState, MembershipResolver
from .scheduler import SchedulerState, UpdateScheduler
from .service import WhitelistService

__all__ = [
    "AuthorizationState",
    "MembershipResolver",
    "Reconciler",
    "SchedulerState",
    "ServerUpdate",
    "UpdateScheduler",
    "WhitelistService",
]

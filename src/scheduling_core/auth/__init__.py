"""Request authentication and caller identity."""

from scheduling_core.auth.caller import Caller, CallerDep, get_caller
from scheduling_core.auth.internal_service import InternalAuthDep, require_internal_api_key

__all__ = [
    "Caller",
    "CallerDep",
    "get_caller",
    "InternalAuthDep",
    "require_internal_api_key",
]

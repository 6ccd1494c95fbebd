"""Caller identity set by the gateway in front of the engine.

The engine does not authenticate users. The gateway resolves the session and
forwards the active organization (required) and the acting user (optional).
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header

from scheduling_core.exceptions import AuthenticationError


@dataclass(frozen=True)
class Caller:
    """Organization and user a request acts for."""

    organization_id: str
    user_id: Optional[str] = None


async def get_caller(
    x_organization_id: Optional[str] = Header(default=None, alias="X-Organization-Id"),
    x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
) -> Caller:
    """Read the caller identity headers."""
    organization_id = (x_organization_id or "").strip()
    if not organization_id:
        raise AuthenticationError(
            "Missing X-Organization-Id header",
            details={"header": "X-Organization-Id"},
        )
    user_id = (x_user_id or "").strip() or None
    return Caller(organization_id=organization_id, user_id=user_id)


CallerDep = Depends(get_caller)

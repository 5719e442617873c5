# backend/app/api/dependencies/auth.py
"""
Authentication and authorization dependencies.

Credentials are verified upstream by the auth gateway, which forwards the
caller's identity as ``X-User-Id`` / ``X-User-Role`` headers. This layer only
turns them into an ActorContext and enforces coarse role checks.
"""

import logging
from typing import Callable, Optional

from fastapi import Depends, Header, HTTPException, status

from ...core.enums import RoleName
from ...core.exceptions import UnauthorizedException
from ...principal import ActorContext

logger = logging.getLogger(__name__)


def get_current_actor(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
    x_user_role: Optional[str] = Header(default=None, alias="X-User-Role"),
) -> ActorContext:
    """
    Build the caller's ActorContext from gateway headers.

    Raises:
        HTTPException: 401 when either header is missing or the role is unknown
    """
    if not x_user_id or not x_user_role:
        raise UnauthorizedException(
            "Missing authentication context", code="MISSING_AUTH_CONTEXT"
        ).to_http_exception()

    try:
        role = RoleName(x_user_role.strip().lower())
    except ValueError:
        logger.warning("Rejected request with unknown role %r", x_user_role)
        raise UnauthorizedException(
            f"Unknown role: {x_user_role}", code="INVALID_ROLE"
        ).to_http_exception()

    return ActorContext(user_id=x_user_id.strip(), role=role)


def require_roles(*roles: RoleName) -> Callable[..., ActorContext]:
    """Dependency factory: only callers holding one of ``roles`` get through."""
    allowed = frozenset(roles)

    def _dependency(actor: ActorContext = Depends(get_current_actor)) -> ActorContext:
        if actor.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "message": "Insufficient role for this operation",
                    "code": "FORBIDDEN",
                    "details": {"required": sorted(r.value for r in allowed)},
                },
            )
        return actor

    return _dependency


require_staff = require_roles(RoleName.TRAINER, RoleName.ADMIN)
require_admin = require_roles(RoleName.ADMIN)

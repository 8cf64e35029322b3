# backend/spa_engine/api/dependencies/auth.py
"""
Identity dependencies.

Session issuance is handled upstream; the gateway forwards the authenticated
user as ``X-User-Id`` and their role as ``X-User-Role``.
"""

from dataclasses import dataclass
import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from ...core.enums import RoleName
from ...core.ulid_helper import is_valid_ulid

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    """Authenticated caller as asserted by the session layer."""

    id: str
    role: str = RoleName.USER.value

    @property
    def is_admin(self) -> bool:
        return self.role == RoleName.ADMIN.value


async def get_current_principal(
    x_user_id: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
) -> Principal:
    """Resolve the caller from identity headers."""
    if not x_user_id or not is_valid_ulid(x_user_id):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "Authentication required", "code": "UNAUTHENTICATED"},
        )
    role = (x_user_role or RoleName.USER.value).strip().upper()
    if role not in {r.value for r in RoleName}:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "Unknown role", "code": "UNAUTHENTICATED"},
        )
    return Principal(id=x_user_id, role=role)


async def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    """Operator-only routes."""
    if not principal.is_admin:
        logger.warning(f"Non-admin {principal.id} attempted an operator action")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"message": "Operator access required", "code": "FORBIDDEN"},
        )
    return principal

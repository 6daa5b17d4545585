"""
Security guards for role-based access control.

Every protected endpoint goes through ``require_role``; ``require_staff``
is the shared "admin or superUser" policy used by the management API.
"""

from typing import List
from fastapi import Depends, HTTPException, status
from backend.app.models.enums import UserRole, ROLE_RANK
from backend.app.core.dependencies import get_current_user


def role_of(current_user: dict) -> UserRole:
    """Parse the role claim; raises 403 when missing or unknown."""
    user_role_str = current_user.get("role")

    if not user_role_str:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Role information missing from token"
        )

    try:
        return UserRole(user_role_str)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid role in token"
        )


def has_role_at_least(role: UserRole, required: UserRole) -> bool:
    """Hierarchy check: admin > superUser > regular."""
    return ROLE_RANK[role] >= ROLE_RANK[required]


def is_staff(current_user: dict) -> bool:
    return role_of(current_user) in STAFF_ROLES


def require_role(allowed_roles: List[UserRole]):
    """
    Dependency factory for role-based access control.

    Usage:
        @router.post("/billing/run")
        async def run_billing(current_user: dict = Depends(require_role([UserRole.ADMIN]))):
            ...

    Raises:
        HTTPException 403 if user role is not in allowed_roles
    """
    async def role_checker(current_user: dict = Depends(get_current_user)) -> dict:
        user_role = role_of(current_user)

        if user_role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required role: {', '.join([r.value for r in allowed_roles])}"
            )

        return current_user

    return role_checker


STAFF_ROLES = [UserRole.ADMIN, UserRole.SUPER_USER]

require_staff = require_role(STAFF_ROLES)
require_admin = require_role([UserRole.ADMIN])

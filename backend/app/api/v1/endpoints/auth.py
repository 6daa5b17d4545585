"""
Authentication API endpoints.

Directory login, logout (token revocation) and session info.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from backend.app.db.session import get_db
from backend.app.models.user import User
from backend.app.schemas.auth import UserLogin, TokenResponse, UserResponse, LogoutResponse
from backend.app.core.jwt import create_access_token
from backend.app.core.dependencies import get_current_user
from backend.app.core.token_revocation import revoke_token
from backend.app.core.exceptions import AuthenticationError, InsufficientPermissionsError
from backend.app.services.audit import log_auth_event, AuditAction
from backend.app.services.directory import (
    DirectoryClient, DirectoryError, get_directory_client, is_user_allowed, derive_role
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])

LOGIN_ERROR_MESSAGES = {
    DirectoryError.MISSING_CREDENTIALS: "Username and password are required",
    DirectoryError.USER_NOT_FOUND: "User not found",
    DirectoryError.ACCOUNT_DISABLED: "Account is disabled",
    DirectoryError.INVALID_CREDENTIALS: "Invalid username or password",
    DirectoryError.CONNECTION_ERROR: "Unable to reach the directory server",
}


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else None


@router.post("/login", response_model=TokenResponse)
async def login(
    credentials: UserLogin,
    request: Request,
    db: AsyncSession = Depends(get_db),
    directory: DirectoryClient = Depends(get_directory_client)
):
    """
    Login with directory credentials and return a session token.

    Flow:
    1. Verify credentials against the directory
    2. Refuse users outside the dormitory access group (403)
    3. Derive the role from group membership
    4. Upsert the local user record (refuse locally locked users)
    5. Issue the session token
    """
    ip_address = _client_ip(request)

    try:
        profile = await directory.authenticate(credentials.username, credentials.password)
    except DirectoryError as exc:
        await log_auth_event(
            db=db,
            action=AuditAction.LOGIN_FAILED,
            user_id=None,
            username=credentials.username,
            ip_address=ip_address,
            metadata={"code": exc.code}
        )
        raise AuthenticationError(
            LOGIN_ERROR_MESSAGES.get(exc.code, "Login failed"),
            details={"code": exc.code}
        )

    if not is_user_allowed(profile.groups):
        logger.warning("Login denied for %s: not in the access group", profile.username)
        await log_auth_event(
            db=db,
            action=AuditAction.LOGIN_DENIED,
            user_id=None,
            username=profile.username,
            ip_address=ip_address
        )
        raise InsufficientPermissionsError("You do not have access to this system")

    role = derive_role(profile.groups)

    result = await db.execute(select(User).where(User.username == profile.username))
    user = result.scalar_one_or_none()

    if user is None:
        user = User(username=profile.username, is_active=True)
        db.add(user)
    elif not user.is_active:
        await log_auth_event(
            db=db,
            action=AuditAction.LOGIN_FAILED,
            user_id=user.id,
            username=user.username,
            ip_address=ip_address,
            metadata={"code": "LOCAL_ACCOUNT_INACTIVE"}
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Inactive user account"
        )

    user.display_name = profile.display_name
    user.email = profile.email
    user.department = profile.department
    user.title = profile.title
    user.role = role
    user.last_login_at = datetime.now(timezone.utc)

    await db.commit()
    await db.refresh(user)

    access_token = create_access_token(data={
        "sub": user.username,
        "user_id": user.id,
        "name": user.display_name,
        "role": user.role.value,
    })

    await log_auth_event(
        db=db,
        action=AuditAction.LOGIN_SUCCESS,
        user_id=user.id,
        username=user.username,
        ip_address=ip_address,
        metadata={"role": role.value}
    )

    return TokenResponse(
        access_token=access_token,
        token_type="bearer",
        user=UserResponse.model_validate(user)
    )


@router.post("/logout", response_model=LogoutResponse)
async def logout(
    request: Request,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Revoke the presented session token."""
    await revoke_token(current_user["token"], current_user.get("sub"))

    await log_auth_event(
        db=db,
        action=AuditAction.LOGOUT,
        user_id=current_user.get("user_id"),
        username=current_user.get("sub"),
        ip_address=_client_ip(request)
    )
    return LogoutResponse()


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Get current authenticated user information.

    Raises:
        404: If user not found in database
    """
    result = await db.execute(select(User).where(User.id == current_user.get("user_id")))
    user = result.scalar_one_or_none()

    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )

    return UserResponse.model_validate(user)

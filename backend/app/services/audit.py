"""
Audit logging service for tracking logins and staff actions.

Provides centralized logging for billing, residency and security events.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from backend.app.models.audit_log import AuditLog


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    LOGIN_FAILED = "LOGIN_FAILED"
    LOGIN_DENIED = "LOGIN_DENIED"
    LOGOUT = "LOGOUT"

    # Billing
    BILLING_RUN = "BILLING_RUN"
    BILL_UPDATED = "BILL_UPDATED"
    BILL_DELETED = "BILL_DELETED"
    BILLS_EXPORTED = "BILLS_EXPORTED"
    READING_RECORDED = "READING_RECORDED"
    RATE_CREATED = "RATE_CREATED"

    # Meter photos
    METER_PHOTO_UPLOADED = "METER_PHOTO_UPLOADED"
    METER_PHOTO_UPDATED = "METER_PHOTO_UPDATED"
    METER_PHOTO_DELETED = "METER_PHOTO_DELETED"

    # Residency
    ROOM_CREATED = "ROOM_CREATED"
    ROOM_UPDATED = "ROOM_UPDATED"
    TENANT_CREATED = "TENANT_CREATED"
    TENANT_UPDATED = "TENANT_UPDATED"
    TENANT_DELETED = "TENANT_DELETED"
    CONTRACT_CREATED = "CONTRACT_CREATED"
    CONTRACT_UPDATED = "CONTRACT_UPDATED"
    CONTRACT_ENDED = "CONTRACT_ENDED"

    # Announcements
    ANNOUNCEMENT_CREATED = "ANNOUNCEMENT_CREATED"
    ANNOUNCEMENT_UPDATED = "ANNOUNCEMENT_UPDATED"
    ANNOUNCEMENT_DELETED = "ANNOUNCEMENT_DELETED"
    ANNOUNCEMENT_FILE_UPLOADED = "ANNOUNCEMENT_FILE_UPLOADED"
    ANNOUNCEMENT_FILE_DELETED = "ANNOUNCEMENT_FILE_DELETED"


async def log_event(
    db: AsyncSession,
    action: str,
    actor_id: Optional[int] = None,
    actor_username: Optional[str] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None
) -> AuditLog:
    """
    Log a security or staff event to the audit log.

    Commits on its own, so call it after the business change is committed.

    Args:
        db: Database session
        action: Action being performed (use AuditAction constants)
        actor_id: ID of user performing the action
        actor_username: Username of actor
        entity_type: Kind of record acted upon ("bill", "tenant", ...)
        entity_id: ID of that record
        metadata: Additional context as JSON
        ip_address: IP address of the request

    Returns:
        Created AuditLog instance
    """
    audit_log = AuditLog(
        actor_id=actor_id,
        actor_username=actor_username,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        meta_data=metadata,
        ip_address=ip_address
    )

    db.add(audit_log)
    await db.commit()
    await db.refresh(audit_log)

    return audit_log


async def log_staff_action(
    db: AsyncSession,
    current_user: dict,
    action: str,
    entity_type: str,
    entity_id: Optional[int],
    metadata: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """Shortcut for endpoints: actor taken from the session payload."""
    return await log_event(
        db=db,
        action=action,
        actor_id=current_user.get("user_id"),
        actor_username=current_user.get("sub"),
        entity_type=entity_type,
        entity_id=entity_id,
        metadata=metadata
    )


async def log_auth_event(
    db: AsyncSession,
    action: str,
    user_id: Optional[int],
    username: Optional[str],
    ip_address: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """
    Log an authentication event (login success/failure/denied, logout).

    Args:
        db: Database session
        action: One of the LOGIN_* / LOGOUT constants
        user_id: Local user ID, if known
        username: Username attempting login
        ip_address: IP address of login attempt
        metadata: Additional context (e.g., failure code)

    Returns:
        Created AuditLog instance
    """
    return await log_event(
        db=db,
        action=action,
        actor_id=user_id,
        actor_username=username,
        entity_type="user",
        entity_id=user_id,
        ip_address=ip_address,
        metadata=metadata
    )

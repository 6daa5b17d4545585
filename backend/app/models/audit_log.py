"""
Audit Log Database Model.

Tracks logins and staff actions on tenants, contracts, readings and bills.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from backend.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model.

    Events logged:
    - LOGIN_SUCCESS / LOGIN_FAILED / LOGIN_DENIED / LOGOUT
    - BILLING_RUN, BILL_UPDATED, BILL_DELETED
    - METER_PHOTO_UPLOADED / UPDATED / DELETED, READING_RECORDED
    - TENANT_*, CONTRACT_*, RATE_CREATED, ANNOUNCEMENT_*
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who performed the action (None for system actions)
    actor_id = Column(Integer, index=True, nullable=True)
    actor_username = Column(String(100), nullable=True)

    action = Column(String(100), nullable=False, index=True)

    # What the action was performed on
    entity_type = Column(String(50), nullable=True, index=True)
    entity_id = Column(Integer, nullable=True)

    meta_data = Column(JSON, nullable=True)
    ip_address = Column(String(50), nullable=True)

    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', actor={self.actor_username}, entity={self.entity_type}:{self.entity_id})>"

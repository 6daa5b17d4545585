"""
Tenant database model.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.enums import enum_values
from backend.app.models.residency_enums import TenantStatus


class Tenant(Base):
    """
    Tenant model.

    ``ad_username`` links a tenant to a directory account so the tenant
    portal can show their own bills.
    """
    __tablename__ = "tenants"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    first_name_th = Column(String(100), nullable=False)
    last_name_th = Column(String(100), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    ad_username = Column(String(100), unique=True, index=True, nullable=True)

    status = Column(Enum(TenantStatus, values_callable=enum_values, name="tenant_status"), default=TenantStatus.ACTIVE, nullable=False)
    is_deleted = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    @property
    def full_name(self) -> str:
        return f"{self.first_name_th} {self.last_name_th}"

    def __repr__(self):
        return f"<Tenant(id={self.id}, name='{self.full_name}', status='{self.status.value}')>"

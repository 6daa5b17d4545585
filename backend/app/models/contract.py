"""
Contract database model.

A contract records one tenant's occupancy of one room.
"""

from sqlalchemy import Column, Integer, Date, ForeignKey, DateTime, Enum, Index, text
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.enums import enum_values
from backend.app.models.residency_enums import ContractStatus


class Contract(Base):
    """
    Contract model.

    A tenant holds at most one active contract. The service layer checks
    this before writing; the partial unique index backs it under races.
    """
    __tablename__ = "contracts"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    status = Column(Enum(ContractStatus, values_callable=enum_values, name="contract_status"), default=ContractStatus.ACTIVE, nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        Index(
            "ix_contracts_one_active_per_tenant", "tenant_id", unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )

    def __repr__(self):
        return f"<Contract(id={self.id}, tenant={self.tenant_id}, room={self.room_id}, status='{self.status.value}')>"

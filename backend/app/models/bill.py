"""
Bill database model.
"""

from sqlalchemy import Column, Integer, Float, ForeignKey, DateTime, Enum, UniqueConstraint
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.enums import enum_values
from backend.app.models.billing_enums import BillStatus


class Bill(Base):
    """
    One tenant's charges for one billing cycle.

    Exactly one bill exists per (tenant, cycle); billing runs never
    regenerate an existing one. Amount columns are a snapshot taken at
    generation time; the bill detail view recomputes them from readings.
    """
    __tablename__ = "bills"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=False, index=True)
    contract_id = Column(Integer, ForeignKey("contracts.id"), nullable=True)
    cycle_id = Column(Integer, ForeignKey("billing_cycles.id"), nullable=False, index=True)

    maintenance_fee = Column(Float, nullable=False, default=0)
    electric_amount = Column(Float, nullable=False, default=0)
    water_amount = Column(Float, nullable=False, default=0)
    subtotal_amount = Column(Float, nullable=False, default=0)
    total_amount = Column(Float, nullable=False, default=0)

    status = Column(Enum(BillStatus, values_callable=enum_values, name="bill_status"), default=BillStatus.DRAFT, nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("tenant_id", "cycle_id", name="uq_bills_tenant_cycle"),
    )

    def __repr__(self):
        return f"<Bill(id={self.id}, tenant={self.tenant_id}, cycle={self.cycle_id}, total={self.total_amount}, status='{self.status.value}')>"

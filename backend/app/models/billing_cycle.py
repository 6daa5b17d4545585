"""
Billing cycle database model.
"""

from sqlalchemy import Column, Integer, Date, DateTime, Enum, UniqueConstraint
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.enums import enum_values
from backend.app.models.billing_enums import CycleStatus


class BillingCycle(Base):
    """
    One (year, month) accounting period.

    ``billing_year`` is in the Buddhist calendar (Gregorian + 543).
    Rows are created lazily on first reference and never duplicated:
    the unique constraint is the arbiter when two requests race.
    """
    __tablename__ = "billing_cycles"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    billing_year = Column(Integer, nullable=False)
    billing_month = Column(Integer, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False)
    status = Column(Enum(CycleStatus, values_callable=enum_values, name="cycle_status"), default=CycleStatus.OPEN, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("billing_year", "billing_month", name="uq_billing_cycles_year_month"),
    )

    def __repr__(self):
        return f"<BillingCycle(id={self.id}, period={self.billing_year}-{self.billing_month:02d}, status='{self.status.value}')>"

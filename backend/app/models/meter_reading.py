"""
Meter reading database model.
"""

from sqlalchemy import Column, Integer, Float, ForeignKey, DateTime, UniqueConstraint
from sqlalchemy.sql import func
from backend.app.db.session import Base


class MeterReading(Base):
    """
    Start/end meter values for one room, utility and billing cycle.

    Usage and amounts are derived when read; only the raw counter values
    are stored.
    """
    __tablename__ = "bill_utility_readings"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=False, index=True)
    cycle_id = Column(Integer, ForeignKey("billing_cycles.id"), nullable=False, index=True)
    utility_type_id = Column(Integer, ForeignKey("utility_types.id"), nullable=False)
    meter_start = Column(Float, nullable=False)
    meter_end = Column(Float, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("room_id", "cycle_id", "utility_type_id", name="uq_readings_room_cycle_utility"),
    )

    def __repr__(self):
        return f"<MeterReading(id={self.id}, room={self.room_id}, cycle={self.cycle_id}, {self.meter_start}->{self.meter_end})>"

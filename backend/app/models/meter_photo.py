"""
Meter photo database model.
"""

from sqlalchemy import Column, Integer, String, Float, Date, ForeignKey, DateTime, Enum, Index
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.enums import enum_values
from backend.app.models.billing_enums import UtilityCode


class MeterPhoto(Base):
    """
    Uploaded photo of a meter with the value read from it.

    Once ``bill_id`` is set the photo (and the reading derived from it)
    is frozen: updates and deletes are refused.
    """
    __tablename__ = "meter_photos"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=False, index=True)
    bill_id = Column(Integer, ForeignKey("bills.id"), nullable=True, index=True)

    utility_type = Column(Enum(UtilityCode, values_callable=enum_values, name="utility_code"), nullable=False)
    meter_value = Column(Float, nullable=False)
    photo_path = Column(String(500), nullable=False)
    reading_date = Column(Date, nullable=False)
    billing_year = Column(Integer, nullable=False)
    billing_month = Column(Integer, nullable=False)

    created_by = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_meter_photos_room_period", "room_id", "billing_year", "billing_month"),
    )

    @property
    def is_locked(self) -> bool:
        return self.bill_id is not None

    def __repr__(self):
        return f"<MeterPhoto(id={self.id}, room={self.room_id}, {self.utility_type.value}={self.meter_value}, bill={self.bill_id})>"

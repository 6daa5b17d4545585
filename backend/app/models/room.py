"""
Room database model.
"""

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Enum, UniqueConstraint
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.enums import enum_values
from backend.app.models.residency_enums import RoomStatus


class Room(Base):
    """
    Room model.

    Occupancy is not stored here; it is the count of active contracts
    referencing the room.
    """
    __tablename__ = "rooms"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    building_id = Column(Integer, ForeignKey("buildings.id"), nullable=False, index=True)
    room_type_id = Column(Integer, ForeignKey("room_types.id"), nullable=True)
    room_number = Column(String(20), nullable=False, index=True)
    floor_no = Column(Integer, nullable=True)
    status = Column(Enum(RoomStatus, values_callable=enum_values, name="room_status"), default=RoomStatus.AVAILABLE, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("building_id", "room_number", name="uq_rooms_building_number"),
    )

    def __repr__(self):
        return f"<Room(id={self.id}, number='{self.room_number}', building={self.building_id})>"

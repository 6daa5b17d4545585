"""
Building and room type reference models.
"""

from sqlalchemy import Column, Integer, String, Text, DateTime
from sqlalchemy.sql import func
from backend.app.db.session import Base


class Building(Base):
    __tablename__ = "buildings"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name_th = Column(String(200), nullable=False)
    name_en = Column(String(200), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Building(id={self.id}, name='{self.name_th}')>"


class RoomType(Base):
    """Room type; ``max_occupants`` caps active contracts per room."""
    __tablename__ = "room_types"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    max_occupants = Column(Integer, nullable=False, default=2)

    def __repr__(self):
        return f"<RoomType(id={self.id}, name='{self.name}', max={self.max_occupants})>"

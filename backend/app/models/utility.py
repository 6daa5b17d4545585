"""
Utility type and rate models.
"""

from sqlalchemy import Column, Integer, String, Float, Date, ForeignKey, DateTime
from sqlalchemy.sql import func
from backend.app.db.session import Base


class UtilityType(Base):
    """Static reference data: one row per metered utility ('electric', 'water')."""
    __tablename__ = "utility_types"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    code = Column(String(20), unique=True, nullable=False, index=True)
    name_th = Column(String(100), nullable=False)

    def __repr__(self):
        return f"<UtilityType(id={self.id}, code='{self.code}')>"


class UtilityRate(Base):
    """
    Price per unit for a utility from ``effective_date`` onwards.

    Append-only: a price change is a new row with a later effective date.
    """
    __tablename__ = "utility_rates"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    utility_type_id = Column(Integer, ForeignKey("utility_types.id"), nullable=False, index=True)
    rate_per_unit = Column(Float, nullable=False)
    effective_date = Column(Date, nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<UtilityRate(id={self.id}, type={self.utility_type_id}, rate={self.rate_per_unit}, from={self.effective_date})>"

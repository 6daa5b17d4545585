"""
Utility type, rate and reading Pydantic schemas.
"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import Optional

from backend.app.models.billing_enums import UtilityCode


class UtilityTypeResponse(BaseModel):
    id: int
    code: str
    name_th: str
    current_rate: Optional[float] = None

    class Config:
        from_attributes = True


class UtilityRateCreate(BaseModel):
    """New rate row; existing rates are never edited."""
    utility_type: UtilityCode
    rate_per_unit: float = Field(..., ge=0)
    effective_date: date


class UtilityRateResponse(BaseModel):
    id: int
    utility_type_id: int
    rate_per_unit: float
    effective_date: date
    created_at: datetime

    class Config:
        from_attributes = True


class ReadingUpsert(BaseModel):
    """Manual correction of one reading (Buddhist year)."""
    room_id: int
    year: int = Field(..., ge=2400, le=2800)
    month: int = Field(..., ge=1, le=12)
    utility_type: UtilityCode
    meter_start: float = Field(..., ge=0)
    meter_end: float = Field(..., ge=0)


class ReadingListItem(BaseModel):
    reading_id: int
    room_id: int
    room_number: str
    building_name: str
    cycle_id: int
    utility_type: UtilityCode
    meter_start: float
    meter_end: Optional[float]
    usage: float
    is_rollover: bool
    rate_per_unit: float
    amount: float
    is_billed: bool


class LatestReading(BaseModel):
    """Most recent meter_end of a room's meter and where it came from."""
    utility_type: UtilityCode
    meter_end: Optional[float]
    billing_year: Optional[int]
    billing_month: Optional[int]
    preview_value: Optional[float] = None
    preview_usage: Optional[float] = None
    preview_is_rollover: Optional[bool] = None

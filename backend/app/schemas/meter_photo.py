"""
Meter photo Pydantic schemas.
"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import Optional

from backend.app.models.billing_enums import UtilityCode
from backend.app.schemas.billing import ReadingResult


class MeterPhotoResponse(BaseModel):
    id: int
    room_id: int
    bill_id: Optional[int]
    utility_type: UtilityCode
    meter_value: float
    photo_path: str
    reading_date: date
    billing_year: int
    billing_month: int
    created_by: Optional[str]
    created_at: datetime
    is_locked: bool

    class Config:
        from_attributes = True


class MeterPhotoUploadResponse(BaseModel):
    photo: MeterPhotoResponse
    reading: ReadingResult


class MeterPhotoUpdate(BaseModel):
    meter_value: float = Field(..., ge=0)

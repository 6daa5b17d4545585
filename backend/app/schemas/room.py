"""
Building, room type and room Pydantic schemas.
"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import Optional, List

from backend.app.models.residency_enums import RoomStatus, OccupancyStatus


class BuildingCreate(BaseModel):
    name_th: str = Field(..., min_length=1, max_length=200)
    name_en: Optional[str] = Field(None, max_length=200)


class BuildingResponse(BaseModel):
    id: int
    name_th: str
    name_en: Optional[str]

    class Config:
        from_attributes = True


class RoomTypeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    max_occupants: int = Field(2, ge=1, le=20, description="Maximum active contracts in the room")


class RoomTypeResponse(BaseModel):
    id: int
    name: str
    description: Optional[str]
    max_occupants: int

    class Config:
        from_attributes = True


class RoomCreate(BaseModel):
    """Schema for creating a room."""
    building_id: int
    room_number: str = Field(..., min_length=1, max_length=20)
    floor_no: Optional[int] = Field(None, ge=0)
    room_type_id: Optional[int] = None
    status: RoomStatus = RoomStatus.AVAILABLE


class RoomUpdate(BaseModel):
    """Schema for updating a room. Only provided fields change."""
    room_number: Optional[str] = Field(None, min_length=1, max_length=20)
    floor_no: Optional[int] = Field(None, ge=0)
    room_type_id: Optional[int] = None
    status: Optional[RoomStatus] = None


class RoomResponse(BaseModel):
    id: int
    building_id: int
    room_type_id: Optional[int]
    room_number: str
    floor_no: Optional[int]
    status: RoomStatus
    created_at: datetime

    class Config:
        from_attributes = True


class RoomOccupancy(BaseModel):
    """Active-contract count against capacity for one room."""
    room_id: int
    room_number: str
    building_id: int
    building_name: str
    floor_no: Optional[int]
    room_type_id: Optional[int]
    room_type_name: Optional[str]
    status: RoomStatus
    max_occupants: int
    current_occupants: int
    occupancy_status: OccupancyStatus


class RoomTenant(BaseModel):
    tenant_id: int
    contract_id: int
    full_name: str
    email: Optional[str]
    phone: Optional[str]
    start_date: date


class RoomDetail(RoomOccupancy):
    tenants: List[RoomTenant] = []

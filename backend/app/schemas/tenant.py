"""
Tenant and contract Pydantic schemas.
"""

from pydantic import BaseModel, EmailStr, Field, model_validator
from datetime import date, datetime
from typing import Optional

from backend.app.models.residency_enums import TenantStatus, ContractStatus


class TenantCreate(BaseModel):
    """
    Schema for registering a tenant.

    When ``room_id`` is given an active contract is opened in the same
    transaction (capacity permitting).
    """
    first_name_th: str = Field(..., min_length=1, max_length=100)
    last_name_th: str = Field(..., min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    ad_username: Optional[str] = Field(None, max_length=100, description="Directory username for the tenant portal")
    room_id: Optional[int] = None
    move_in_date: Optional[date] = None


class TenantUpdate(BaseModel):
    first_name_th: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name_th: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    ad_username: Optional[str] = Field(None, max_length=100)
    status: Optional[TenantStatus] = None


class TenantResponse(BaseModel):
    id: int
    first_name_th: str
    last_name_th: str
    full_name: str
    email: Optional[str]
    phone: Optional[str]
    ad_username: Optional[str]
    status: TenantStatus
    created_at: datetime

    class Config:
        from_attributes = True


class TenantWithRoom(TenantResponse):
    """Tenant with their current (active) contract, if any."""
    contract_id: Optional[int] = None
    room_id: Optional[int] = None
    room_number: Optional[str] = None
    building_name: Optional[str] = None
    move_in_date: Optional[date] = None


class ContractCreate(BaseModel):
    tenant_id: int
    room_id: int
    start_date: date
    end_date: Optional[date] = None
    status: ContractStatus = ContractStatus.ACTIVE

    @model_validator(mode="after")
    def check_dates(self):
        if self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class ContractUpdate(BaseModel):
    room_id: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: Optional[ContractStatus] = None


class ContractResponse(BaseModel):
    id: int
    tenant_id: int
    room_id: int
    start_date: date
    end_date: Optional[date]
    status: ContractStatus
    created_at: datetime

    class Config:
        from_attributes = True

"""
Billing Pydantic schemas.

Request bodies for cycle resolution and billing runs, and the typed
results returned by the billing domain services.
"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import Optional, List

from backend.app.models.billing_enums import BillStatus, CycleStatus, UtilityCode


class CycleResolveRequest(BaseModel):
    """Schema for resolving/creating a billing cycle (Buddhist year)."""
    year: int = Field(..., ge=2400, le=2800, description="Buddhist calendar year, e.g. 2568")
    month: int = Field(..., ge=1, le=12)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    due_date: Optional[date] = None


class BillingCycleResponse(BaseModel):
    id: int
    billing_year: int
    billing_month: int
    start_date: date
    end_date: date
    due_date: date
    status: CycleStatus

    class Config:
        from_attributes = True


class BillingRunRequest(BaseModel):
    """Schema for running the monthly billing batch."""
    year: int = Field(..., ge=2400, le=2800, description="Buddhist calendar year")
    month: int = Field(..., ge=1, le=12)
    maintenance_fee: Optional[float] = Field(None, ge=0, description="Flat per-tenant fee, defaults to 1000")


class BillingRunResult(BaseModel):
    """Outcome of one billing run."""
    message: str = "Billing completed successfully"
    cycle_id: int
    year: int
    month: int
    bills_created: int
    bill_ids: List[int] = []
    photos_linked: int = 0


class ReadingResult(BaseModel):
    """Outcome of recording a meter value for a room/cycle/utility."""
    reading_id: int
    room_id: int
    cycle_id: int
    utility_type: UtilityCode
    meter_start: float
    meter_end: Optional[float]
    usage: float
    is_rollover: bool
    rate_per_unit: float
    amount: float
    created: bool = Field(..., description="True when a new reading row was inserted")


class UtilityBreakdown(BaseModel):
    """Per-utility line of a bill, recomputed from the stored readings."""
    utility_type: UtilityCode
    meter_start: float
    meter_end: Optional[float]
    usage: float
    is_rollover: bool
    rate_per_unit: float
    room_amount: float = Field(..., description="usage x rate for the whole room")
    amount: float = Field(..., description="room_amount divided by tenant_count")


class RoomCharges(BaseModel):
    """Whole-room utility charges for one cycle and how they split."""
    room_id: int
    tenant_count: int
    electric: Optional[UtilityBreakdown] = None
    water: Optional[UtilityBreakdown] = None

    @property
    def electric_share(self) -> float:
        return self.electric.amount if self.electric else 0.0

    @property
    def water_share(self) -> float:
        return self.water.amount if self.water else 0.0


class BillResponse(BaseModel):
    id: int
    tenant_id: int
    room_id: int
    contract_id: Optional[int]
    cycle_id: int
    maintenance_fee: float
    electric_amount: float
    water_amount: float
    subtotal_amount: float
    total_amount: float
    status: BillStatus
    created_at: datetime

    class Config:
        from_attributes = True


class BillListItem(BillResponse):
    bill_number: str
    billing_year: int
    billing_month: int
    due_date: date
    room_number: str
    building_name: str
    tenant_name: str


class BillUpdate(BaseModel):
    """
    Schema for correcting a bill.

    Amount edits recompute subtotal and total; status only moves forward
    (draft -> sent -> paid).
    """
    maintenance_fee: Optional[float] = Field(None, ge=0)
    electric_amount: Optional[float] = Field(None, ge=0)
    water_amount: Optional[float] = Field(None, ge=0)
    status: Optional[BillStatus] = None


class BillPhoto(BaseModel):
    id: int
    utility_type: UtilityCode
    meter_value: float
    photo_path: str
    reading_date: date
    bill_id: Optional[int]

    class Config:
        from_attributes = True


class BillDetail(BaseModel):
    """Full breakdown of one bill for display and printing."""
    bill_id: int
    bill_number: str
    status: BillStatus
    billing_year: int
    billing_month: int
    start_date: date
    end_date: date
    due_date: date

    tenant_id: int
    tenant_name: str
    room_id: int
    room_number: str
    floor_no: Optional[int]
    building_name: str
    contract_id: Optional[int]
    contract_status: Optional[str]
    tenant_count: int

    maintenance_fee: float
    electric: Optional[UtilityBreakdown]
    water: Optional[UtilityBreakdown]
    utility_total: float
    total_amount: float

    stored_electric_amount: float
    stored_water_amount: float
    stored_total_amount: float

    photos: List[BillPhoto] = []

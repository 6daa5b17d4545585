"""
Bill API Endpoints.

Listing, breakdown, Excel export, correction and deletion of generated bills.
"""

from fastapi import APIRouter, Depends, Path, Query
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from typing import List, Optional

from backend.app.db.session import get_db
from backend.app.core.exceptions import ResourceNotFoundError, StateConflictError
from backend.app.core.guards import require_staff
from backend.app.models.bill import Bill
from backend.app.models.billing_cycle import BillingCycle
from backend.app.models.billing_enums import BillStatus, BILL_STATUS_ORDER
from backend.app.models.building import Building
from backend.app.models.meter_photo import MeterPhoto
from backend.app.models.room import Room
from backend.app.models.tenant import Tenant
from backend.app.schemas.billing import BillListItem, BillDetail, BillUpdate, BillResponse
from backend.app.domain.billing.bill_engine import BillComputationEngine
from backend.app.domain.billing.usage import bill_number
from backend.app.services.audit import log_staff_action, AuditAction
from backend.app.services.bill_export import build_bills_workbook, XLSX_MEDIA_TYPE

router = APIRouter(prefix="/bills", tags=["Bills"])


def bill_list_query():
    return (
        select(Bill, BillingCycle, Tenant, Room, Building)
        .join(BillingCycle, Bill.cycle_id == BillingCycle.id)
        .join(Tenant, Bill.tenant_id == Tenant.id)
        .join(Room, Bill.room_id == Room.id)
        .join(Building, Room.building_id == Building.id)
    )


def to_list_item(bill: Bill, cycle: BillingCycle, tenant: Tenant, room: Room, building: Building) -> BillListItem:
    return BillListItem(
        **BillResponse.model_validate(bill).model_dump(),
        bill_number=bill_number(cycle.billing_year, cycle.billing_month, bill.id),
        billing_year=cycle.billing_year,
        billing_month=cycle.billing_month,
        due_date=cycle.due_date,
        room_number=room.room_number,
        building_name=building.name_th,
        tenant_name=tenant.full_name
    )


async def _get_bill(db: AsyncSession, bill_id: int) -> Bill:
    bill = await db.get(Bill, bill_id)
    if bill is None:
        raise ResourceNotFoundError("Bill", bill_id)
    return bill


@router.get("", response_model=List[BillListItem])
async def list_bills(
    year: int = Query(..., ge=2400, le=2800, description="Buddhist calendar year"),
    month: int = Query(..., ge=1, le=12),
    room_id: Optional[int] = Query(None),
    bill_status: Optional[BillStatus] = Query(None, alias="status"),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    """List bills of one billing period, optionally for one room or status."""
    query = bill_list_query().where(
        BillingCycle.billing_year == year,
        BillingCycle.billing_month == month
    )
    if room_id is not None:
        query = query.where(Bill.room_id == room_id)
    if bill_status is not None:
        query = query.where(Bill.status == bill_status)

    result = await db.execute(query.order_by(Building.id, Room.room_number, Bill.id))
    return [to_list_item(*row) for row in result.all()]


@router.get("/export/excel")
async def export_bills_excel(
    year: int = Query(..., ge=2400, le=2800, description="Buddhist calendar year"),
    month: int = Query(..., ge=1, le=12),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    """Workbook of the period's bills, ordered by room then tenant."""
    result = await db.execute(
        select(Bill.id)
        .join(BillingCycle, Bill.cycle_id == BillingCycle.id)
        .join(Room, Bill.room_id == Room.id)
        .where(BillingCycle.billing_year == year, BillingCycle.billing_month == month)
        .order_by(Room.room_number, Bill.tenant_id)
    )
    bill_ids = result.scalars().all()
    if not bill_ids:
        raise ResourceNotFoundError("Bills for period", f"{year}-{month:02d}")

    details = [await BillComputationEngine.compute_bill_detail(db, bill_id) for bill_id in bill_ids]
    content = build_bills_workbook(details, year, month)

    await log_staff_action(
        db, current_user, AuditAction.BILLS_EXPORTED,
        entity_type="billing_period", entity_id=None,
        metadata={"period": f"{year}-{month:02d}", "bills": len(details)}
    )

    filename = f"bills_{year}_{month:02d}.xlsx"
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )


@router.get("/{bill_id}", response_model=BillDetail)
async def get_bill_detail(
    bill_id: int = Path(..., description="Bill ID"),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    """Full breakdown recomputed from the meter readings."""
    return await BillComputationEngine.compute_bill_detail(db, bill_id)


@router.patch("/{bill_id}", response_model=BillResponse)
async def update_bill(
    payload: BillUpdate,
    bill_id: int = Path(..., description="Bill ID"),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    """
    Correct amounts or advance the status.

    Status only moves forward (draft -> sent -> paid). Amounts of a paid
    bill are frozen.
    """
    bill = await _get_bill(db, bill_id)
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)

    new_status = changes.pop("status", None)
    if new_status is not None and BILL_STATUS_ORDER.index(new_status) < BILL_STATUS_ORDER.index(bill.status):
        raise StateConflictError(
            f"Bill status cannot move from {bill.status.value} back to {new_status.value}",
            details={"bill_id": bill.id, "status": bill.status.value}
        )

    if changes:
        if bill.status == BillStatus.PAID:
            raise StateConflictError("Paid bills cannot be modified", details={"bill_id": bill.id})
        for field, value in changes.items():
            setattr(bill, field, value)
        total = round(bill.maintenance_fee + bill.electric_amount + bill.water_amount, 2)
        bill.subtotal_amount = total
        bill.total_amount = total

    previous_status = bill.status
    if new_status is not None:
        bill.status = new_status

    await db.commit()
    await db.refresh(bill)

    await log_staff_action(
        db,
        current_user,
        AuditAction.BILL_UPDATED,
        entity_type="bill",
        entity_id=bill.id,
        metadata={
            "amounts": changes,
            "status": [previous_status.value, bill.status.value]
        }
    )

    return bill


@router.delete("/{bill_id}")
async def delete_bill(
    bill_id: int = Path(..., description="Bill ID"),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    """
    Delete a draft bill.

    Its photos move to a remaining bill of the same room and cycle. When
    it was the room's last bill for the cycle they are unlinked, and the
    room's readings for the cycle can be changed again.
    """
    bill = await _get_bill(db, bill_id)
    if bill.status != BillStatus.DRAFT:
        raise StateConflictError(
            "Only draft bills can be deleted",
            details={"bill_id": bill.id, "status": bill.status.value}
        )

    sibling_id = (await db.execute(
        select(Bill.id)
        .where(Bill.room_id == bill.room_id, Bill.cycle_id == bill.cycle_id, Bill.id != bill.id)
        .order_by(Bill.id)
        .limit(1)
    )).scalar()

    unlinked = await db.execute(
        update(MeterPhoto)
        .where(MeterPhoto.bill_id == bill.id)
        .values(bill_id=sibling_id)
        .execution_options(synchronize_session=False)
    )
    await db.delete(bill)
    await db.commit()

    await log_staff_action(
        db,
        current_user,
        AuditAction.BILL_DELETED,
        entity_type="bill",
        entity_id=bill_id,
        metadata={"photos_unlinked": unlinked.rowcount or 0}
    )

    return {"message": "Bill deleted", "bill_id": bill_id}

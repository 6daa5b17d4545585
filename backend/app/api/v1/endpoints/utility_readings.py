"""
Utility reading endpoints.

Readings for a billing period, manual correction and the latest meter
values of a room.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import List, Optional

from backend.app.db.session import get_db
from backend.app.core.exceptions import ResourceNotFoundError
from backend.app.core.guards import require_staff
from backend.app.models.bill import Bill
from backend.app.models.billing_cycle import BillingCycle
from backend.app.models.billing_enums import UtilityCode
from backend.app.models.building import Building
from backend.app.models.meter_reading import MeterReading
from backend.app.models.room import Room
from backend.app.models.utility import UtilityType
from backend.app.schemas.billing import ReadingResult
from backend.app.schemas.utility import ReadingUpsert, ReadingListItem, LatestReading
from backend.app.domain.billing.cycle_manager import BillingCycleManager
from backend.app.domain.billing.meter_reconciler import MeterReadingReconciler
from backend.app.domain.billing.usage import compute_usage
from backend.app.services.audit import log_staff_action, AuditAction

router = APIRouter(prefix="/utility-readings", tags=["Utility Readings"])


@router.get("", response_model=List[ReadingListItem])
async def list_readings(
    year: int = Query(..., ge=2400, le=2800, description="Buddhist calendar year"),
    month: int = Query(..., ge=1, le=12),
    room_id: Optional[int] = Query(None),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    """Readings of one period with usage and amount computed now."""
    cycle = await BillingCycleManager.get_by_period(db, year, month)
    if cycle is None:
        return []

    query = (
        select(MeterReading, UtilityType, Room, Building)
        .join(UtilityType, MeterReading.utility_type_id == UtilityType.id)
        .join(Room, MeterReading.room_id == Room.id)
        .join(Building, Room.building_id == Building.id)
        .where(MeterReading.cycle_id == cycle.id)
    )
    if room_id is not None:
        query = query.where(MeterReading.room_id == room_id)
    result = await db.execute(query.order_by(Building.id, Room.room_number, UtilityType.code))
    rows = result.all()

    billed = await db.execute(select(Bill.room_id).where(Bill.cycle_id == cycle.id).distinct())
    billed_rooms = set(billed.scalars().all())

    items = []
    for reading, utility, room, building in rows:
        breakdown = await MeterReadingReconciler.evaluate(db, reading, UtilityCode(utility.code), cycle)
        items.append(ReadingListItem(
            reading_id=reading.id,
            room_id=room.id,
            room_number=room.room_number,
            building_name=building.name_th,
            cycle_id=cycle.id,
            utility_type=breakdown.utility_type,
            meter_start=reading.meter_start,
            meter_end=reading.meter_end,
            usage=breakdown.usage,
            is_rollover=breakdown.is_rollover,
            rate_per_unit=breakdown.rate_per_unit,
            amount=breakdown.room_amount,
            is_billed=room.id in billed_rooms
        ))
    return items


@router.post("", response_model=ReadingResult)
async def upsert_reading(
    payload: ReadingUpsert,
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    """
    Set explicit start/end values for a room's meter in a period.

    Refused with 409 once the room is billed for the period.
    """
    try:
        cycle = await BillingCycleManager.resolve_or_create(db, payload.year, payload.month)
        reading = await MeterReadingReconciler.set_manual_reading(
            db,
            payload.room_id,
            cycle,
            payload.utility_type.value,
            payload.meter_start,
            payload.meter_end
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await log_staff_action(
        db,
        current_user,
        AuditAction.READING_RECORDED,
        entity_type="reading",
        entity_id=reading.reading_id,
        metadata={
            "room_id": payload.room_id,
            "period": f"{payload.year}-{payload.month:02d}",
            "utility_type": payload.utility_type.value,
            "meter_start": payload.meter_start,
            "meter_end": payload.meter_end
        }
    )
    return reading


@router.get("/latest", response_model=List[LatestReading])
async def latest_readings(
    room_id: int = Query(...),
    utility_type: Optional[UtilityCode] = Query(None),
    meter_value: Optional[float] = Query(None, ge=0, description="Preview usage against this value"),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    """
    Latest recorded meter_end per utility for a room.

    With ``meter_value`` (and ``utility_type``) the usage that value would
    produce is previewed.
    """
    if await db.get(Room, room_id) is None:
        raise ResourceNotFoundError("Room", room_id)

    codes = [utility_type] if utility_type else list(UtilityCode)
    latest = []
    for code in codes:
        result = await db.execute(
            select(MeterReading.meter_end, BillingCycle.billing_year, BillingCycle.billing_month)
            .join(BillingCycle, MeterReading.cycle_id == BillingCycle.id)
            .join(UtilityType, MeterReading.utility_type_id == UtilityType.id)
            .where(
                MeterReading.room_id == room_id,
                UtilityType.code == code.value,
                MeterReading.meter_end.is_not(None)
            )
            .order_by(BillingCycle.billing_year.desc(), BillingCycle.billing_month.desc())
            .limit(1)
        )
        row = result.first()
        item = LatestReading(
            utility_type=code,
            meter_end=row.meter_end if row else None,
            billing_year=row.billing_year if row else None,
            billing_month=row.billing_month if row else None
        )
        if meter_value is not None and utility_type is not None:
            start = item.meter_end if item.meter_end is not None else meter_value
            usage = compute_usage(code.value, start, meter_value)
            item.preview_value = meter_value
            item.preview_usage = usage.units
            item.preview_is_rollover = usage.is_rollover
        latest.append(item)
    return latest

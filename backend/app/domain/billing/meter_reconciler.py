"""
Meter Reading Reconciler.

Turns a meter value captured for (room, cycle, utility) into a reading row
with the correct start value, and evaluates usage and amount for a stored
reading.
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from backend.app.core.config import settings
from backend.app.core.exceptions import ValidationError, StateConflictError, ResourceNotFoundError
from backend.app.models.bill import Bill
from backend.app.models.billing_cycle import BillingCycle
from backend.app.models.billing_enums import UtilityCode
from backend.app.models.meter_reading import MeterReading
from backend.app.models.room import Room
from backend.app.domain.billing.rate_resolver import RateResolver
from backend.app.domain.billing.usage import compute_usage, split_evenly
from backend.app.schemas.billing import ReadingResult, UtilityBreakdown

logger = logging.getLogger(__name__)


class MeterReadingReconciler:

    @staticmethod
    async def get_reading(
        db: AsyncSession,
        room_id: int,
        cycle_id: int,
        utility_type_id: int
    ) -> Optional[MeterReading]:
        result = await db.execute(
            select(MeterReading).where(
                MeterReading.room_id == room_id,
                MeterReading.cycle_id == cycle_id,
                MeterReading.utility_type_id == utility_type_id
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def previous_meter_end(
        db: AsyncSession,
        room_id: int,
        utility_type_id: int,
        cycle: BillingCycle
    ) -> Optional[float]:
        """
        meter_end of the most recent strictly-earlier cycle for the room+utility.

        Cycles are ordered by (billing_year desc, billing_month desc); rows
        without a meter_end are skipped.
        """
        query = (
            select(MeterReading.meter_end)
            .join(BillingCycle, MeterReading.cycle_id == BillingCycle.id)
            .where(
                MeterReading.room_id == room_id,
                MeterReading.utility_type_id == utility_type_id,
                MeterReading.meter_end.is_not(None),
                (BillingCycle.billing_year < cycle.billing_year)
                | (
                    (BillingCycle.billing_year == cycle.billing_year)
                    & (BillingCycle.billing_month < cycle.billing_month)
                )
            )
            .order_by(BillingCycle.billing_year.desc(), BillingCycle.billing_month.desc())
            .limit(1)
        )
        result = await db.execute(query)
        return result.scalar_one_or_none()

    @staticmethod
    async def ensure_not_billed(db: AsyncSession, room_id: int, cycle_id: int) -> None:
        """
        Readings are frozen once any bill exists for the room in the cycle.

        Raises:
            StateConflictError: if a bill already references (room, cycle)
        """
        result = await db.execute(
            select(func.count(Bill.id)).where(Bill.room_id == room_id, Bill.cycle_id == cycle_id)
        )
        if result.scalar():
            raise StateConflictError(
                "Meter reading is locked: a bill has already been issued for this room and cycle",
                details={"room_id": room_id, "cycle_id": cycle_id}
            )

    @staticmethod
    def validate_meter_value(utility_code: UtilityCode, meter_value: float) -> None:
        if meter_value < 0:
            raise ValidationError("meter_value must not be negative", details={"meter_value": meter_value})
        if utility_code == UtilityCode.ELECTRIC and meter_value >= settings.electric_meter_modulus:
            raise ValidationError(
                f"electric meter_value must be below {settings.electric_meter_modulus}",
                details={"meter_value": meter_value}
            )

    @staticmethod
    async def record_reading(
        db: AsyncSession,
        room_id: int,
        cycle: BillingCycle,
        utility_type: str,
        meter_value: float
    ) -> ReadingResult:
        """
        Record a meter value as the cycle's end reading.

        Flow:
        1. Validate room, utility type and value
        2. Refuse if the room is already billed for the cycle
        3. Existing reading -> update meter_end only
        4. New reading -> meter_start from the previous cycle's meter_end,
           or meter_value itself for a first-ever reading (zero usage)
        5. Evaluate usage and amount (water end < start is rejected
           before anything is written)

        Args:
            db: Database session (caller commits)
            room_id: Room the meter belongs to
            cycle: Resolved billing cycle
            utility_type: 'electric' or 'water'
            meter_value: Value read from the meter

        Returns:
            ReadingResult with usage, amount and rollover flag
        """
        try:
            code = UtilityCode(utility_type)
        except ValueError:
            raise ValidationError("utility_type must be electric or water", details={"utility_type": utility_type})

        MeterReadingReconciler.validate_meter_value(code, meter_value)

        if await db.get(Room, room_id) is None:
            raise ResourceNotFoundError("Room", room_id)

        utility = await RateResolver.get_utility_type(db, code.value)
        if utility is None:
            raise ValidationError(f"Utility type '{code.value}' is not configured", details={"utility_type": code.value})

        await MeterReadingReconciler.ensure_not_billed(db, room_id, cycle.id)

        reading = await MeterReadingReconciler.get_reading(db, room_id, cycle.id, utility.id)
        created = reading is None

        if created:
            previous_end = await MeterReadingReconciler.previous_meter_end(db, room_id, utility.id, cycle)
            meter_start = previous_end if previous_end is not None else meter_value
        else:
            meter_start = reading.meter_start

        # Raises for water end < start before anything is written
        compute_usage(code.value, meter_start, meter_value)

        if created:
            reading = MeterReading(
                room_id=room_id,
                cycle_id=cycle.id,
                utility_type_id=utility.id,
                meter_start=meter_start,
                meter_end=meter_value
            )
            db.add(reading)
        else:
            reading.meter_end = meter_value
        await db.flush()

        breakdown = await MeterReadingReconciler.evaluate(db, reading, code, cycle)
        logger.info(
            "Recorded %s reading room=%s cycle=%s-%02d start=%s end=%s usage=%s%s",
            code.value, room_id, cycle.billing_year, cycle.billing_month,
            reading.meter_start, reading.meter_end, breakdown.usage,
            " (rollover)" if breakdown.is_rollover else ""
        )

        return ReadingResult(
            reading_id=reading.id,
            room_id=room_id,
            cycle_id=cycle.id,
            utility_type=code,
            meter_start=reading.meter_start,
            meter_end=reading.meter_end,
            usage=breakdown.usage,
            is_rollover=breakdown.is_rollover,
            rate_per_unit=breakdown.rate_per_unit,
            amount=breakdown.room_amount,
            created=created
        )

    @staticmethod
    async def set_manual_reading(
        db: AsyncSession,
        room_id: int,
        cycle: BillingCycle,
        utility_type: str,
        meter_start: float,
        meter_end: float
    ) -> ReadingResult:
        """
        Upsert explicit start/end values (manual correction screen).

        Same locking and validation rules as :meth:`record_reading`.
        """
        try:
            code = UtilityCode(utility_type)
        except ValueError:
            raise ValidationError("utility_type must be electric or water", details={"utility_type": utility_type})

        MeterReadingReconciler.validate_meter_value(code, meter_start)
        MeterReadingReconciler.validate_meter_value(code, meter_end)
        compute_usage(code.value, meter_start, meter_end)

        if await db.get(Room, room_id) is None:
            raise ResourceNotFoundError("Room", room_id)

        utility = await RateResolver.get_utility_type(db, code.value)
        if utility is None:
            raise ValidationError(f"Utility type '{code.value}' is not configured", details={"utility_type": code.value})

        await MeterReadingReconciler.ensure_not_billed(db, room_id, cycle.id)

        reading = await MeterReadingReconciler.get_reading(db, room_id, cycle.id, utility.id)
        created = reading is None
        if created:
            reading = MeterReading(room_id=room_id, cycle_id=cycle.id, utility_type_id=utility.id)
            db.add(reading)
        reading.meter_start = meter_start
        reading.meter_end = meter_end
        await db.flush()

        breakdown = await MeterReadingReconciler.evaluate(db, reading, code, cycle)
        return ReadingResult(
            reading_id=reading.id,
            room_id=room_id,
            cycle_id=cycle.id,
            utility_type=code,
            meter_start=reading.meter_start,
            meter_end=reading.meter_end,
            usage=breakdown.usage,
            is_rollover=breakdown.is_rollover,
            rate_per_unit=breakdown.rate_per_unit,
            amount=breakdown.room_amount,
            created=created
        )

    @staticmethod
    async def evaluate(
        db: AsyncSession,
        reading: MeterReading,
        utility_code: UtilityCode,
        cycle: BillingCycle,
        tenant_count: int = 1
    ) -> UtilityBreakdown:
        """
        Usage and amount for a stored reading.

        The rate is the one in force on the cycle's end date (today if the
        cycle has none); ``amount`` is the room amount split across
        ``tenant_count`` occupants.
        """
        usage = compute_usage(utility_code.value, reading.meter_start, reading.meter_end)
        rate = await RateResolver.effective_rate(db, reading.utility_type_id, cycle.end_date)
        room_amount = round(usage.units * rate, 2)
        return UtilityBreakdown(
            utility_type=utility_code,
            meter_start=reading.meter_start,
            meter_end=reading.meter_end,
            usage=usage.units,
            is_rollover=usage.is_rollover,
            rate_per_unit=rate,
            room_amount=room_amount,
            amount=split_evenly(room_amount, tenant_count)
        )

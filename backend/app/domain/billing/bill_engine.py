"""
Bill Computation Engine.

Generates one draft bill per active contract for a billing cycle and
produces the per-bill breakdown used by the detail and print views.
"""

import logging
from collections import defaultdict
from typing import Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func

from backend.app.core.config import settings
from backend.app.core.exceptions import ResourceNotFoundError
from backend.app.models.bill import Bill
from backend.app.models.billing_cycle import BillingCycle
from backend.app.models.billing_enums import UtilityCode
from backend.app.models.building import Building
from backend.app.models.contract import Contract
from backend.app.models.meter_photo import MeterPhoto
from backend.app.models.meter_reading import MeterReading
from backend.app.models.residency_enums import ContractStatus
from backend.app.models.room import Room
from backend.app.models.tenant import Tenant
from backend.app.models.utility import UtilityType
from backend.app.domain.billing.cycle_manager import BillingCycleManager
from backend.app.domain.billing.meter_reconciler import MeterReadingReconciler
from backend.app.domain.billing.rate_resolver import RateResolver
from backend.app.domain.billing.usage import bill_number
from backend.app.schemas.billing import BillingRunResult, RoomCharges, BillDetail, BillPhoto

logger = logging.getLogger(__name__)


class BillComputationEngine:

    @staticmethod
    async def active_tenant_count(db: AsyncSession, room_id: int) -> int:
        """Active contracts in the room, floored at 1."""
        result = await db.execute(
            select(func.count(Contract.id)).where(
                Contract.room_id == room_id,
                Contract.status == ContractStatus.ACTIVE
            )
        )
        return max(1, result.scalar() or 0)

    @staticmethod
    async def billed_tenant_count(db: AsyncSession, room_id: int, cycle_id: int) -> int:
        """Bills issued for the room in the cycle, floored at 1.

        Unaffected by contracts ending after the run.
        """
        result = await db.execute(
            select(func.count(Bill.id)).where(
                Bill.room_id == room_id,
                Bill.cycle_id == cycle_id
            )
        )
        return max(1, result.scalar() or 0)

    @staticmethod
    async def compute_room_charges(
        db: AsyncSession,
        room_id: int,
        cycle: BillingCycle,
        utility_types: Dict[UtilityCode, UtilityType],
        tenant_count: int
    ) -> RoomCharges:
        """
        Electric and water charges for the whole room and each tenant's share.

        A utility without a reading contributes nothing.
        """
        charges = RoomCharges(room_id=room_id, tenant_count=tenant_count)
        for code, utility in utility_types.items():
            reading = await MeterReadingReconciler.get_reading(db, room_id, cycle.id, utility.id)
            if reading is None:
                continue
            breakdown = await MeterReadingReconciler.evaluate(db, reading, code, cycle, tenant_count)
            if code == UtilityCode.ELECTRIC:
                charges.electric = breakdown
            else:
                charges.water = breakdown
        return charges

    @staticmethod
    async def link_photos(db: AsyncSession, bill: Bill, cycle: BillingCycle) -> int:
        """Attach the room's unlinked photos for the cycle period to ``bill``."""
        result = await db.execute(
            update(MeterPhoto)
            .where(
                MeterPhoto.room_id == bill.room_id,
                MeterPhoto.billing_year == cycle.billing_year,
                MeterPhoto.billing_month == cycle.billing_month,
                MeterPhoto.bill_id.is_(None)
            )
            .values(bill_id=bill.id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    @staticmethod
    async def run_billing_for_cycle(
        db: AsyncSession,
        year: int,
        month: int,
        maintenance_fee: Optional[float] = None
    ) -> BillingRunResult:
        """
        Bill every active contract that has no bill for the cycle yet.

        Flow:
        1. Load electric/water reference rows (fatal if missing, nothing written)
        2. Resolve or create the cycle
        3. Collect active contracts whose tenant has no bill for the cycle
        4. Per room: tenant_count and utility charges (split evenly)
        5. Insert draft bills; fee is charged per tenant, not divided
        6. Link the room's unlinked meter photos for the period

        All writes happen on ``db``; the caller commits once so a failure at
        any step leaves nothing behind. Running again is a no-op for tenants
        already billed.

        Args:
            db: Database session
            year: Buddhist calendar year
            month: 1-12
            maintenance_fee: Flat per-tenant fee (defaults to settings)

        Returns:
            BillingRunResult with the created bill ids
        """
        fee = settings.default_maintenance_fee if maintenance_fee is None else maintenance_fee

        utility_types = await RateResolver.require_utility_types(db)
        cycle = await BillingCycleManager.resolve_or_create(db, year, month)

        already_billed = select(Bill.tenant_id).where(Bill.cycle_id == cycle.id)
        result = await db.execute(
            select(Contract)
            .where(
                Contract.status == ContractStatus.ACTIVE,
                Contract.tenant_id.not_in(already_billed)
            )
            .order_by(Contract.room_id, Contract.id)
        )
        contracts = result.scalars().all()

        by_room: Dict[int, List[Contract]] = defaultdict(list)
        for contract in contracts:
            by_room[contract.room_id].append(contract)

        bill_ids: List[int] = []
        photos_linked = 0

        for room_id, room_contracts in by_room.items():
            tenant_count = await BillComputationEngine.active_tenant_count(db, room_id)
            charges = await BillComputationEngine.compute_room_charges(
                db, room_id, cycle, utility_types, tenant_count
            )

            for contract in room_contracts:
                electric = charges.electric_share
                water = charges.water_share
                total = round(fee + electric + water, 2)
                bill = Bill(
                    tenant_id=contract.tenant_id,
                    room_id=room_id,
                    contract_id=contract.id,
                    cycle_id=cycle.id,
                    maintenance_fee=fee,
                    electric_amount=electric,
                    water_amount=water,
                    subtotal_amount=total,
                    total_amount=total
                )
                db.add(bill)
                await db.flush()
                bill_ids.append(bill.id)

                photos_linked += await BillComputationEngine.link_photos(db, bill, cycle)

        logger.info(
            "Billing run %s-%02d: %d bills created, %d photos linked (cycle=%s)",
            year, month, len(bill_ids), photos_linked, cycle.id
        )

        return BillingRunResult(
            cycle_id=cycle.id,
            year=year,
            month=month,
            bills_created=len(bill_ids),
            bill_ids=bill_ids,
            photos_linked=photos_linked
        )

    @staticmethod
    async def compute_bill_detail(db: AsyncSession, bill_id: int) -> BillDetail:
        """
        Breakdown of a bill recomputed from the meter readings.

        The stored amount columns are returned as ``stored_*`` next to the
        recomputed ones.

        Raises:
            ResourceNotFoundError: unknown bill id
        """
        result = await db.execute(
            select(Bill, BillingCycle, Tenant, Room, Building)
            .join(BillingCycle, Bill.cycle_id == BillingCycle.id)
            .join(Tenant, Bill.tenant_id == Tenant.id)
            .join(Room, Bill.room_id == Room.id)
            .join(Building, Room.building_id == Building.id)
            .where(Bill.id == bill_id)
        )
        row = result.first()
        if row is None:
            raise ResourceNotFoundError("Bill", bill_id)
        bill, cycle, tenant, room, building = row

        contract = await db.get(Contract, bill.contract_id) if bill.contract_id else None

        # Utility types may have been removed since the bill was issued
        types_result = await db.execute(select(UtilityType))
        utility_types = {}
        for utility in types_result.scalars().all():
            try:
                utility_types[UtilityCode(utility.code)] = utility
            except ValueError:
                continue

        tenant_count = await BillComputationEngine.billed_tenant_count(db, room.id, cycle.id)
        charges = await BillComputationEngine.compute_room_charges(
            db, room.id, cycle, utility_types, tenant_count
        )

        # Roommates share the photos whichever sibling bill holds the link
        photos_result = await db.execute(
            select(MeterPhoto)
            .where(
                MeterPhoto.room_id == room.id,
                MeterPhoto.billing_year == cycle.billing_year,
                MeterPhoto.billing_month == cycle.billing_month
            )
            .order_by(MeterPhoto.reading_date.desc(), MeterPhoto.id.desc())
        )
        photos = [BillPhoto.model_validate(photo) for photo in photos_result.scalars().all()]

        utility_total = round(charges.electric_share + charges.water_share, 2)

        return BillDetail(
            bill_id=bill.id,
            bill_number=bill_number(cycle.billing_year, cycle.billing_month, bill.id),
            status=bill.status,
            billing_year=cycle.billing_year,
            billing_month=cycle.billing_month,
            start_date=cycle.start_date,
            end_date=cycle.end_date,
            due_date=cycle.due_date,
            tenant_id=tenant.id,
            tenant_name=tenant.full_name,
            room_id=room.id,
            room_number=room.room_number,
            floor_no=room.floor_no,
            building_name=building.name_th,
            contract_id=bill.contract_id,
            contract_status=contract.status.value if contract else None,
            tenant_count=tenant_count,
            maintenance_fee=bill.maintenance_fee,
            electric=charges.electric,
            water=charges.water,
            utility_total=utility_total,
            total_amount=round(bill.maintenance_fee + utility_total, 2),
            stored_electric_amount=bill.electric_amount,
            stored_water_amount=bill.water_amount,
            stored_total_amount=bill.total_amount,
            photos=photos
        )

"""
Room occupancy and contract rules.

Occupancy is the number of active contracts in a room; capacity comes
from the room type (default ``settings.default_room_capacity``). A tenant
holds at most one active contract.
"""

import logging
from datetime import date
from typing import List, NamedTuple, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from backend.app.core.config import settings
from backend.app.core.exceptions import StateConflictError, ResourceNotFoundError
from backend.app.models.building import Building, RoomType
from backend.app.models.contract import Contract
from backend.app.models.residency_enums import ContractStatus, OccupancyStatus, TenantStatus
from backend.app.models.room import Room
from backend.app.models.tenant import Tenant
from backend.app.schemas.room import RoomOccupancy

logger = logging.getLogger(__name__)


class RoomAvailability(NamedTuple):
    can_add: bool
    current_occupants: int
    max_occupants: int
    room_number: str


def occupancy_status(current: int, maximum: int) -> OccupancyStatus:
    if current <= 0:
        return OccupancyStatus.EMPTY
    if current >= maximum:
        return OccupancyStatus.FULL
    return OccupancyStatus.AVAILABLE


async def count_active_contracts(
    db: AsyncSession,
    room_id: int,
    exclude_contract_id: Optional[int] = None
) -> int:
    query = select(func.count(Contract.id)).where(
        Contract.room_id == room_id,
        Contract.status == ContractStatus.ACTIVE
    )
    if exclude_contract_id is not None:
        query = query.where(Contract.id != exclude_contract_id)
    result = await db.execute(query)
    return result.scalar() or 0


async def check_room_availability(
    db: AsyncSession,
    room_id: int,
    exclude_contract_id: Optional[int] = None
) -> RoomAvailability:
    """
    Whether one more active contract fits in the room.

    Args:
        db: Database session
        room_id: Room to check
        exclude_contract_id: Contract not counted (when editing it)

    Raises:
        ResourceNotFoundError: unknown room
    """
    result = await db.execute(
        select(Room.room_number, RoomType.max_occupants)
        .outerjoin(RoomType, Room.room_type_id == RoomType.id)
        .where(Room.id == room_id)
    )
    row = result.first()
    if row is None:
        raise ResourceNotFoundError("Room", room_id)

    room_number, max_occupants = row
    max_occupants = max_occupants or settings.default_room_capacity
    current = await count_active_contracts(db, room_id, exclude_contract_id)

    return RoomAvailability(current < max_occupants, current, max_occupants, room_number)


async def ensure_room_has_space(
    db: AsyncSession,
    room_id: int,
    exclude_contract_id: Optional[int] = None
) -> None:
    availability = await check_room_availability(db, room_id, exclude_contract_id)
    if not availability.can_add:
        raise StateConflictError(
            f"Room {availability.room_number} is full "
            f"({availability.current_occupants}/{availability.max_occupants})",
            details={
                "room_id": room_id,
                "current_occupants": availability.current_occupants,
                "max_occupants": availability.max_occupants
            }
        )


async def get_active_contract(db: AsyncSession, tenant_id: int) -> Optional[Contract]:
    result = await db.execute(
        select(Contract).where(
            Contract.tenant_id == tenant_id,
            Contract.status == ContractStatus.ACTIVE
        )
    )
    return result.scalars().first()


async def ensure_single_active_contract(
    db: AsyncSession,
    tenant_id: int,
    exclude_contract_id: Optional[int] = None
) -> None:
    existing = await get_active_contract(db, tenant_id)
    if existing and existing.id != exclude_contract_id:
        raise StateConflictError(
            "Tenant already has an active contract",
            details={"tenant_id": tenant_id, "contract_id": existing.id}
        )


async def open_contract(
    db: AsyncSession,
    tenant: Tenant,
    room_id: int,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    status: ContractStatus = ContractStatus.ACTIVE
) -> Contract:
    """
    Create a contract for ``tenant`` in ``room_id``.

    Active contracts go through the capacity and single-active checks and
    mark the tenant active. Caller commits; a concurrent duplicate surfaces
    as IntegrityError on flush.
    """
    if status == ContractStatus.ACTIVE:
        await ensure_single_active_contract(db, tenant.id)
        await ensure_room_has_space(db, room_id)
        tenant.status = TenantStatus.ACTIVE
    elif await db.get(Room, room_id) is None:
        raise ResourceNotFoundError("Room", room_id)

    contract = Contract(
        tenant_id=tenant.id,
        room_id=room_id,
        start_date=start_date or date.today(),
        end_date=end_date,
        status=status
    )
    db.add(contract)
    await db.flush()
    return contract


async def end_contract(db: AsyncSession, contract: Contract, end_date: Optional[date] = None) -> Contract:
    """
    Move a contract to ``ended``.

    When it was the tenant's last active contract the tenant becomes
    inactive.
    """
    contract.status = ContractStatus.ENDED
    contract.end_date = end_date or date.today()
    await db.flush()
    await sync_tenant_status(db, contract.tenant_id)
    logger.info("Ended contract %s (tenant=%s, room=%s)", contract.id, contract.tenant_id, contract.room_id)
    return contract


async def sync_tenant_status(db: AsyncSession, tenant_id: int) -> None:
    """Tenant is active exactly when they hold an active contract."""
    tenant = await db.get(Tenant, tenant_id)
    if tenant is None:
        return
    active = await get_active_contract(db, tenant_id)
    tenant.status = TenantStatus.ACTIVE if active else TenantStatus.INACTIVE
    await db.flush()


async def list_room_occupancy(db: AsyncSession, room_id: Optional[int] = None) -> List[RoomOccupancy]:
    active_counts = (
        select(Contract.room_id, func.count(Contract.id).label("occupants"))
        .where(Contract.status == ContractStatus.ACTIVE)
        .group_by(Contract.room_id)
        .subquery()
    )
    query = (
        select(Room, Building, RoomType, active_counts.c.occupants)
        .join(Building, Room.building_id == Building.id)
        .outerjoin(RoomType, Room.room_type_id == RoomType.id)
        .outerjoin(active_counts, active_counts.c.room_id == Room.id)
        .order_by(Building.id, Room.floor_no, Room.room_number)
    )
    if room_id is not None:
        query = query.where(Room.id == room_id)

    result = await db.execute(query)
    rooms = []
    for room, building, room_type, occupants in result.all():
        maximum = room_type.max_occupants if room_type else settings.default_room_capacity
        current = occupants or 0
        rooms.append(RoomOccupancy(
            room_id=room.id,
            room_number=room.room_number,
            building_id=building.id,
            building_name=building.name_th,
            floor_no=room.floor_no,
            room_type_id=room.room_type_id,
            room_type_name=room_type.name if room_type else None,
            status=room.status,
            max_occupants=maximum,
            current_occupants=current,
            occupancy_status=occupancy_status(current, maximum)
        ))
    return rooms

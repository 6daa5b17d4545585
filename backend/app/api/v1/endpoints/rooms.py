"""
Buildings, room types and rooms.

Reference data management plus occupancy reporting.
"""

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from typing import List, Optional

from backend.app.db.session import get_db
from backend.app.core.exceptions import ResourceNotFoundError, ValidationError
from backend.app.core.guards import require_staff, require_admin
from backend.app.models.building import Building, RoomType
from backend.app.models.contract import Contract
from backend.app.models.residency_enums import ContractStatus
from backend.app.models.room import Room
from backend.app.models.tenant import Tenant
from backend.app.schemas.room import (
    BuildingCreate, BuildingResponse, RoomTypeCreate, RoomTypeResponse,
    RoomCreate, RoomUpdate, RoomResponse, RoomOccupancy, RoomDetail, RoomTenant
)
from backend.app.services.occupancy import list_room_occupancy
from backend.app.services.audit import log_staff_action, AuditAction

router = APIRouter(tags=["Rooms"])


@router.get("/buildings", response_model=List[BuildingResponse])
async def list_buildings(
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    result = await db.execute(select(Building).order_by(Building.id))
    return result.scalars().all()


@router.post("/buildings", response_model=BuildingResponse, status_code=status.HTTP_201_CREATED)
async def create_building(
    payload: BuildingCreate,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    building = Building(name_th=payload.name_th, name_en=payload.name_en)
    db.add(building)
    await db.commit()
    await db.refresh(building)
    return building


@router.get("/room-types", response_model=List[RoomTypeResponse])
async def list_room_types(
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    result = await db.execute(select(RoomType).order_by(RoomType.id))
    return result.scalars().all()


@router.post("/room-types", response_model=RoomTypeResponse, status_code=status.HTTP_201_CREATED)
async def create_room_type(
    payload: RoomTypeCreate,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    room_type = RoomType(
        name=payload.name,
        description=payload.description,
        max_occupants=payload.max_occupants
    )
    db.add(room_type)
    await db.commit()
    await db.refresh(room_type)
    return room_type


async def _check_references(db: AsyncSession, building_id: Optional[int], room_type_id: Optional[int]) -> None:
    if building_id is not None and await db.get(Building, building_id) is None:
        raise ValidationError("Unknown building", details={"building_id": building_id})
    if room_type_id is not None and await db.get(RoomType, room_type_id) is None:
        raise ValidationError("Unknown room type", details={"room_type_id": room_type_id})


@router.get("/rooms", response_model=List[RoomResponse])
async def list_rooms(
    building_id: Optional[int] = Query(None),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    query = select(Room)
    if building_id is not None:
        query = query.where(Room.building_id == building_id)
    result = await db.execute(query.order_by(Room.building_id, Room.floor_no, Room.room_number))
    return result.scalars().all()


@router.post("/rooms", response_model=RoomResponse, status_code=status.HTTP_201_CREATED)
async def create_room(
    payload: RoomCreate,
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    """Create a room; room numbers are unique within a building."""
    await _check_references(db, payload.building_id, payload.room_type_id)

    room = Room(**payload.model_dump())
    db.add(room)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Room {payload.room_number} already exists in this building"
        )
    await db.refresh(room)

    await log_staff_action(
        db, current_user, AuditAction.ROOM_CREATED,
        entity_type="room", entity_id=room.id,
        metadata={"building_id": room.building_id, "room_number": room.room_number}
    )
    return room


@router.get("/rooms/occupancy", response_model=List[RoomOccupancy])
async def room_occupancy(
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    """Active contracts against capacity for every room."""
    return await list_room_occupancy(db)


@router.get("/rooms/{room_id}", response_model=RoomDetail)
async def get_room_detail(
    room_id: int = Path(..., description="Room ID"),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    """Room with occupancy and its current tenants."""
    occupancy = await list_room_occupancy(db, room_id)
    if not occupancy:
        raise ResourceNotFoundError("Room", room_id)

    result = await db.execute(
        select(Contract, Tenant)
        .join(Tenant, Contract.tenant_id == Tenant.id)
        .where(
            Contract.room_id == room_id,
            Contract.status == ContractStatus.ACTIVE
        )
        .order_by(Contract.start_date)
    )
    tenants = [
        RoomTenant(
            tenant_id=tenant.id,
            contract_id=contract.id,
            full_name=tenant.full_name,
            email=tenant.email,
            phone=tenant.phone,
            start_date=contract.start_date
        )
        for contract, tenant in result.all()
    ]
    return RoomDetail(**occupancy[0].model_dump(), tenants=tenants)


@router.patch("/rooms/{room_id}", response_model=RoomResponse)
async def update_room(
    payload: RoomUpdate,
    room_id: int = Path(..., description="Room ID"),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    room = await db.get(Room, room_id)
    if room is None:
        raise ResourceNotFoundError("Room", room_id)

    changes = payload.model_dump(exclude_unset=True)
    await _check_references(db, None, changes.get("room_type_id"))
    for field, value in changes.items():
        setattr(room, field, value)

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Another room in this building already uses that number"
        )
    await db.refresh(room)

    await log_staff_action(
        db, current_user, AuditAction.ROOM_UPDATED,
        entity_type="room", entity_id=room.id,
        metadata={key: (value.value if hasattr(value, "value") else value) for key, value in changes.items()}
    )
    return room

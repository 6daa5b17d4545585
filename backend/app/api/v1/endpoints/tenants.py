"""
Tenant API Endpoints.

Tenant registration (optionally moving straight into a room), profile
updates and soft deletion.
"""

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_
from sqlalchemy.exc import IntegrityError
from typing import List, Optional

from backend.app.db.session import get_db
from backend.app.core.exceptions import ResourceNotFoundError
from backend.app.core.guards import require_staff
from backend.app.models.building import Building
from backend.app.models.contract import Contract
from backend.app.models.residency_enums import ContractStatus, TenantStatus
from backend.app.models.room import Room
from backend.app.models.tenant import Tenant
from backend.app.schemas.tenant import TenantCreate, TenantUpdate, TenantResponse, TenantWithRoom
from backend.app.services.occupancy import open_contract, end_contract
from backend.app.services.audit import log_staff_action, AuditAction

router = APIRouter(prefix="/tenants", tags=["Tenants"])


def _tenant_query():
    return (
        select(Tenant, Contract, Room, Building)
        .outerjoin(Contract, and_(Contract.tenant_id == Tenant.id, Contract.status == ContractStatus.ACTIVE))
        .outerjoin(Room, Contract.room_id == Room.id)
        .outerjoin(Building, Room.building_id == Building.id)
        .where(Tenant.is_deleted.is_(False))
    )


def _to_tenant_with_room(tenant: Tenant, contract: Optional[Contract], room: Optional[Room], building: Optional[Building]) -> TenantWithRoom:
    return TenantWithRoom(
        **TenantResponse.model_validate(tenant).model_dump(),
        contract_id=contract.id if contract else None,
        room_id=room.id if room else None,
        room_number=room.room_number if room else None,
        building_name=building.name_th if building else None,
        move_in_date=contract.start_date if contract else None
    )


async def _load_tenant(db: AsyncSession, tenant_id: int) -> TenantWithRoom:
    result = await db.execute(_tenant_query().where(Tenant.id == tenant_id))
    row = result.first()
    if row is None:
        raise ResourceNotFoundError("Tenant", tenant_id)
    return _to_tenant_with_room(*row)


async def _get_tenant(db: AsyncSession, tenant_id: int) -> Tenant:
    tenant = await db.get(Tenant, tenant_id)
    if tenant is None or tenant.is_deleted:
        raise ResourceNotFoundError("Tenant", tenant_id)
    return tenant


@router.get("", response_model=List[TenantWithRoom])
async def list_tenants(
    room_id: Optional[int] = Query(None),
    tenant_status: Optional[TenantStatus] = Query(None, alias="status"),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    """List tenants with their current room."""
    query = _tenant_query()
    if room_id is not None:
        query = query.where(Contract.room_id == room_id)
    if tenant_status is not None:
        query = query.where(Tenant.status == tenant_status)

    result = await db.execute(query.order_by(Building.id, Room.room_number, Tenant.id.desc()))
    return [_to_tenant_with_room(*row) for row in result.all()]


@router.post("", response_model=TenantWithRoom, status_code=status.HTTP_201_CREATED)
async def create_tenant(
    payload: TenantCreate,
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    """
    Register a tenant.

    With ``room_id`` an active contract is opened in the same transaction;
    a full room rejects the whole registration (409).
    """
    tenant = Tenant(
        first_name_th=payload.first_name_th,
        last_name_th=payload.last_name_th,
        email=payload.email,
        phone=payload.phone,
        ad_username=payload.ad_username,
        status=TenantStatus.ACTIVE if payload.room_id else TenantStatus.INACTIVE
    )
    try:
        db.add(tenant)
        await db.flush()
        if payload.room_id is not None:
            await open_contract(db, tenant, payload.room_id, start_date=payload.move_in_date)
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Tenant conflicts with an existing tenant or active contract"
        )
    except Exception:
        await db.rollback()
        raise

    await log_staff_action(
        db, current_user, AuditAction.TENANT_CREATED,
        entity_type="tenant", entity_id=tenant.id,
        metadata={"room_id": payload.room_id}
    )
    return await _load_tenant(db, tenant.id)


@router.get("/{tenant_id}", response_model=TenantWithRoom)
async def get_tenant(
    tenant_id: int = Path(..., description="Tenant ID"),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    return await _load_tenant(db, tenant_id)


@router.patch("/{tenant_id}", response_model=TenantWithRoom)
async def update_tenant(
    payload: TenantUpdate,
    tenant_id: int = Path(..., description="Tenant ID"),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    tenant = await _get_tenant(db, tenant_id)
    changes = payload.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(tenant, field, value)

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A tenant with this directory username already exists"
        )

    await log_staff_action(
        db, current_user, AuditAction.TENANT_UPDATED,
        entity_type="tenant", entity_id=tenant.id,
        metadata={"fields": sorted(changes)}
    )
    return await _load_tenant(db, tenant_id)


@router.delete("/{tenant_id}")
async def delete_tenant(
    tenant_id: int = Path(..., description="Tenant ID"),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    """Soft delete: active contracts are ended and the tenant deactivated."""
    tenant = await _get_tenant(db, tenant_id)

    result = await db.execute(
        select(Contract).where(
            Contract.tenant_id == tenant.id,
            Contract.status == ContractStatus.ACTIVE
        )
    )
    ended = []
    for contract in result.scalars().all():
        await end_contract(db, contract)
        ended.append(contract.id)

    tenant.is_deleted = True
    tenant.status = TenantStatus.INACTIVE
    await db.commit()

    await log_staff_action(
        db, current_user, AuditAction.TENANT_DELETED,
        entity_type="tenant", entity_id=tenant_id,
        metadata={"contracts_ended": ended}
    )
    return {"message": "Tenant deleted", "tenant_id": tenant_id}

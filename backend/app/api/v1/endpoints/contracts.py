"""
Contract API Endpoints.

A contract places one tenant in one room. Capacity and the one-active-
contract-per-tenant rule are checked on every change that produces an
active contract.
"""

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from typing import List, Optional

from backend.app.db.session import get_db
from backend.app.core.exceptions import ResourceNotFoundError, ValidationError
from backend.app.core.guards import require_staff
from backend.app.models.contract import Contract
from backend.app.models.residency_enums import ContractStatus
from backend.app.models.room import Room
from backend.app.models.tenant import Tenant
from backend.app.schemas.tenant import ContractCreate, ContractUpdate, ContractResponse
from backend.app.services.occupancy import (
    open_contract, end_contract, ensure_room_has_space, ensure_single_active_contract, sync_tenant_status
)
from backend.app.services.audit import log_staff_action, AuditAction

router = APIRouter(prefix="/contracts", tags=["Contracts"])


async def _get_contract(db: AsyncSession, contract_id: int) -> Contract:
    contract = await db.get(Contract, contract_id)
    if contract is None:
        raise ResourceNotFoundError("Contract", contract_id)
    return contract


def _conflict() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail="Tenant already has an active contract"
    )


@router.get("", response_model=List[ContractResponse])
async def list_contracts(
    contract_status: Optional[ContractStatus] = Query(None, alias="status"),
    room_id: Optional[int] = Query(None),
    tenant_id: Optional[int] = Query(None),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    query = select(Contract)
    if contract_status is not None:
        query = query.where(Contract.status == contract_status)
    if room_id is not None:
        query = query.where(Contract.room_id == room_id)
    if tenant_id is not None:
        query = query.where(Contract.tenant_id == tenant_id)

    result = await db.execute(query.order_by(Contract.start_date.desc(), Contract.id.desc()))
    return result.scalars().all()


@router.post("", response_model=ContractResponse, status_code=status.HTTP_201_CREATED)
async def create_contract(
    payload: ContractCreate,
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    tenant = await db.get(Tenant, payload.tenant_id)
    if tenant is None or tenant.is_deleted:
        raise ResourceNotFoundError("Tenant", payload.tenant_id)

    try:
        contract = await open_contract(
            db, tenant, payload.room_id,
            start_date=payload.start_date,
            end_date=payload.end_date,
            status=payload.status
        )
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise _conflict()
    except Exception:
        await db.rollback()
        raise
    await db.refresh(contract)

    await log_staff_action(
        db, current_user, AuditAction.CONTRACT_CREATED,
        entity_type="contract", entity_id=contract.id,
        metadata={"tenant_id": contract.tenant_id, "room_id": contract.room_id, "status": contract.status.value}
    )
    return contract


@router.patch("/{contract_id}", response_model=ContractResponse)
async def update_contract(
    payload: ContractUpdate,
    contract_id: int = Path(..., description="Contract ID"),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    """
    Change room, dates or status.

    Becoming (or staying) active in a different room re-checks capacity,
    excluding this contract from the count.
    """
    contract = await _get_contract(db, contract_id)
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)

    new_status = changes.get("status", contract.status)
    new_room_id = changes.get("room_id", contract.room_id)
    start = changes.get("start_date", contract.start_date)
    end = changes.get("end_date", contract.end_date)
    if end and start and end < start:
        raise ValidationError("end_date must not be before start_date")

    if "room_id" in changes and await db.get(Room, new_room_id) is None:
        raise ResourceNotFoundError("Room", new_room_id)

    try:
        if new_status == ContractStatus.ACTIVE:
            becoming_active = contract.status != ContractStatus.ACTIVE
            if becoming_active:
                await ensure_single_active_contract(db, contract.tenant_id, exclude_contract_id=contract.id)
            if becoming_active or new_room_id != contract.room_id:
                await ensure_room_has_space(db, new_room_id, exclude_contract_id=contract.id)

        if new_status == ContractStatus.ENDED and contract.status != ContractStatus.ENDED:
            contract.room_id = new_room_id
            contract.start_date = start
            await end_contract(db, contract, changes.get("end_date"))
        else:
            for field, value in changes.items():
                setattr(contract, field, value)
            await db.flush()
            await sync_tenant_status(db, contract.tenant_id)
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise _conflict()
    except Exception:
        await db.rollback()
        raise
    await db.refresh(contract)

    await log_staff_action(
        db, current_user, AuditAction.CONTRACT_UPDATED,
        entity_type="contract", entity_id=contract.id,
        metadata={key: (value.value if hasattr(value, "value") else str(value)) for key, value in changes.items()}
    )
    return contract


@router.delete("/{contract_id}", response_model=ContractResponse)
async def end_contract_endpoint(
    contract_id: int = Path(..., description="Contract ID"),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    """End a contract today. Ending the last active one deactivates the tenant."""
    contract = await _get_contract(db, contract_id)
    if contract.status == ContractStatus.ENDED:
        return contract

    await end_contract(db, contract, date.today())
    await db.commit()
    await db.refresh(contract)

    await log_staff_action(
        db, current_user, AuditAction.CONTRACT_ENDED,
        entity_type="contract", entity_id=contract.id,
        metadata={"tenant_id": contract.tenant_id, "room_id": contract.room_id}
    )
    return contract

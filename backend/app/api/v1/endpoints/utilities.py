"""
Utility type and rate endpoints.

Rates are append-only: a price change is a new row with a later
effective date.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from typing import List, Optional

from backend.app.db.session import get_db
from backend.app.core.exceptions import ValidationError
from backend.app.core.guards import require_staff, require_admin
from backend.app.models.billing_enums import UtilityCode
from backend.app.models.utility import UtilityType, UtilityRate
from backend.app.schemas.utility import UtilityTypeResponse, UtilityRateCreate, UtilityRateResponse
from backend.app.domain.billing.rate_resolver import RateResolver
from backend.app.services.audit import log_staff_action, AuditAction

router = APIRouter(tags=["Utilities"])


@router.get("/utility-types", response_model=List[UtilityTypeResponse])
async def list_utility_types(
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    """List utility types with the rate in force today."""
    result = await db.execute(select(UtilityType).order_by(UtilityType.id))
    types = []
    for utility in result.scalars().all():
        item = UtilityTypeResponse.model_validate(utility)
        item.current_rate = await RateResolver.effective_rate(db, utility.id)
        types.append(item)
    return types


@router.get("/utility-rates", response_model=List[UtilityRateResponse])
async def list_utility_rates(
    utility_type: Optional[UtilityCode] = Query(None),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    """Rate history, newest effective date first."""
    query = select(UtilityRate)
    if utility_type is not None:
        query = query.join(UtilityType, UtilityRate.utility_type_id == UtilityType.id).where(
            UtilityType.code == utility_type.value
        )
    result = await db.execute(query.order_by(desc(UtilityRate.effective_date), desc(UtilityRate.id)))
    return result.scalars().all()


@router.post("/utility-rates", response_model=UtilityRateResponse, status_code=status.HTTP_201_CREATED)
async def create_utility_rate(
    payload: UtilityRateCreate,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Append a new rate for a utility."""
    utility = await RateResolver.get_utility_type(db, payload.utility_type.value)
    if utility is None:
        raise ValidationError(
            f"Utility type '{payload.utility_type.value}' is not configured",
            details={"utility_type": payload.utility_type.value}
        )

    rate = UtilityRate(
        utility_type_id=utility.id,
        rate_per_unit=payload.rate_per_unit,
        effective_date=payload.effective_date
    )
    db.add(rate)
    await db.commit()
    await db.refresh(rate)

    await log_staff_action(
        db,
        current_user,
        AuditAction.RATE_CREATED,
        entity_type="utility_rate",
        entity_id=rate.id,
        metadata={
            "utility_type": payload.utility_type.value,
            "rate_per_unit": rate.rate_per_unit,
            "effective_date": rate.effective_date.isoformat()
        }
    )

    return rate

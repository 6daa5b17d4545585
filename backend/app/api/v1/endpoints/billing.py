"""
Billing API Endpoints.

Billing cycle resolution and the monthly billing run.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError

from backend.app.db.session import get_db
from backend.app.schemas.billing import (
    CycleResolveRequest, BillingCycleResponse, BillingRunRequest, BillingRunResult
)
from backend.app.core.guards import require_staff
from backend.app.domain.billing.cycle_manager import BillingCycleManager
from backend.app.domain.billing.bill_engine import BillComputationEngine
from backend.app.services.audit import log_staff_action, AuditAction

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing", tags=["Billing"])


@router.get("/cycle", response_model=BillingCycleResponse)
async def get_billing_cycle(
    year: int = Query(..., ge=2400, le=2800, description="Buddhist calendar year"),
    month: int = Query(..., ge=1, le=12),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    """
    Get the billing cycle for a period, creating it with default dates on
    first reference.
    """
    cycle = await BillingCycleManager.resolve_or_create(db, year, month)
    await db.commit()
    return cycle


@router.post("/cycle", response_model=BillingCycleResponse, status_code=status.HTTP_201_CREATED)
async def resolve_billing_cycle(
    payload: CycleResolveRequest,
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    """
    Resolve or create a billing cycle with optional explicit dates.

    An existing cycle is returned unchanged.
    """
    cycle = await BillingCycleManager.resolve_or_create(
        db,
        payload.year,
        payload.month,
        start_date=payload.start_date,
        end_date=payload.end_date,
        due_date=payload.due_date
    )
    await db.commit()
    return cycle


@router.post("/run", response_model=BillingRunResult)
async def run_billing(
    payload: BillingRunRequest,
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    """
    Generate draft bills for every active contract not yet billed in the cycle.

    The whole run is one transaction. If a concurrent run inserted a bill
    first (unique tenant+cycle violation) the run is rolled back and
    repeated once; the repeat skips tenants the other run billed.
    """
    result = None
    for attempt in range(2):
        try:
            result = await BillComputationEngine.run_billing_for_cycle(
                db, payload.year, payload.month, payload.maintenance_fee
            )
            await db.commit()
            break
        except IntegrityError:
            await db.rollback()
            if attempt:
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail="Another billing run is in progress for this cycle"
                )
            logger.warning("Billing run %s-%02d collided with a concurrent run, retrying",
                           payload.year, payload.month)
        except Exception:
            await db.rollback()
            raise

    await log_staff_action(
        db,
        current_user,
        AuditAction.BILLING_RUN,
        entity_type="billing_cycle",
        entity_id=result.cycle_id,
        metadata={
            "year": payload.year,
            "month": payload.month,
            "bills_created": result.bills_created,
            "photos_linked": result.photos_linked
        }
    )

    return result

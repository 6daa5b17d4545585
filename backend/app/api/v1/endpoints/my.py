"""
Tenant portal endpoints.

Resolves the signed-in directory user to their tenant record.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import List, Optional

from backend.app.db.session import get_db
from backend.app.core.dependencies import get_current_user
from backend.app.core.exceptions import ResourceNotFoundError
from backend.app.models.bill import Bill
from backend.app.models.billing_cycle import BillingCycle
from backend.app.models.tenant import Tenant
from backend.app.schemas.billing import BillListItem
from backend.app.api.v1.endpoints.bills import bill_list_query, to_list_item

router = APIRouter(prefix="/my", tags=["Tenant Portal"])


@router.get("/bills", response_model=List[BillListItem])
async def list_my_bills(
    year: Optional[int] = Query(None, ge=2400, le=2800),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Bills of the tenant linked to the signed-in directory account, newest first."""
    result = await db.execute(
        select(Tenant).where(
            Tenant.ad_username == current_user.get("sub"),
            Tenant.is_deleted.is_(False)
        )
    )
    tenant = result.scalar_one_or_none()
    if tenant is None:
        raise ResourceNotFoundError("Tenant record for this account")

    query = bill_list_query().where(Bill.tenant_id == tenant.id)
    if year is not None:
        query = query.where(BillingCycle.billing_year == year)

    rows = await db.execute(
        query.order_by(BillingCycle.billing_year.desc(), BillingCycle.billing_month.desc())
    )
    return [to_list_item(*row) for row in rows.all()]

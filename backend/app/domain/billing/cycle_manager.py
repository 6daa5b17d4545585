"""
Billing Cycle Manager.

Resolves the unique (year, month) accounting period, creating it on first
reference. Safe under concurrent callers: the unique constraint decides the
winner and the loser re-reads the winning row.
"""

import logging
from datetime import date, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from backend.app.core.config import settings
from backend.app.core.exceptions import ValidationError
from backend.app.models.billing_cycle import BillingCycle
from backend.app.models.billing_enums import CycleStatus
from backend.app.domain.billing.usage import validate_period, default_cycle_dates

logger = logging.getLogger(__name__)


class BillingCycleManager:

    @staticmethod
    async def get_by_period(db: AsyncSession, year: int, month: int) -> Optional[BillingCycle]:
        result = await db.execute(
            select(BillingCycle).where(
                BillingCycle.billing_year == year,
                BillingCycle.billing_month == month
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def resolve_or_create(
        db: AsyncSession,
        year: int,
        month: int,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        due_date: Optional[date] = None
    ) -> BillingCycle:
        """
        Return the cycle for (year, month), creating it if absent.

        Flow:
        1. Validate period (Buddhist year, month 1-12)
        2. Existing row -> return it unchanged (overrides are ignored)
        3. Compute default dates, apply overrides
        4. Insert inside a SAVEPOINT; on unique violation re-read

        Args:
            db: Database session (caller owns the transaction)
            year: Buddhist calendar year
            month: 1-12
            start_date, end_date, due_date: optional explicit boundaries

        Returns:
            The persisted BillingCycle
        """
        validate_period(year, month)

        existing = await BillingCycleManager.get_by_period(db, year, month)
        if existing:
            return existing

        default_start, default_end, _ = default_cycle_dates(year, month)
        start = start_date or default_start
        end = end_date or default_end
        # due date follows the (possibly overridden) end date
        due = due_date or end + timedelta(days=settings.due_date_offset_days)
        if start > end or due < end:
            raise ValidationError(
                "cycle dates must satisfy start <= end <= due",
                details={"start_date": str(start), "end_date": str(end), "due_date": str(due)}
            )

        cycle = BillingCycle(
            billing_year=year,
            billing_month=month,
            start_date=start,
            end_date=end,
            due_date=due,
            status=CycleStatus.OPEN
        )

        try:
            async with db.begin_nested():
                db.add(cycle)
                await db.flush()
        except IntegrityError:
            # Lost the race: another request created the same period
            logger.info("Billing cycle %s-%02d created concurrently, re-reading", year, month)
            winner = await BillingCycleManager.get_by_period(db, year, month)
            if winner is None:
                raise
            return winner

        logger.info("Created billing cycle %s-%02d (id=%s)", year, month, cycle.id)
        return cycle


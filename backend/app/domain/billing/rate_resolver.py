"""
Utility Rate Resolver.

Looks up utility type reference rows and the rate in force on a date.
A rate applies from its effective_date until a later row supersedes it.
"""

from datetime import date
from typing import Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from backend.app.core.exceptions import ReferenceDataMissingError
from backend.app.models.billing_enums import UtilityCode
from backend.app.models.utility import UtilityType, UtilityRate


class RateResolver:

    @staticmethod
    async def get_utility_type(db: AsyncSession, code: str) -> Optional[UtilityType]:
        result = await db.execute(select(UtilityType).where(UtilityType.code == code))
        return result.scalar_one_or_none()

    @staticmethod
    async def require_utility_types(db: AsyncSession) -> Dict[UtilityCode, UtilityType]:
        """
        Load the electric and water reference rows.

        Raises:
            ReferenceDataMissingError: if either row is absent
        """
        codes = [code.value for code in UtilityCode]
        result = await db.execute(select(UtilityType).where(UtilityType.code.in_(codes)))
        found = {UtilityCode(row.code): row for row in result.scalars().all()}

        missing = [code.value for code in UtilityCode if code not in found]
        if missing:
            raise ReferenceDataMissingError(
                "Utility types not found. Please ensure electric and water types exist.",
                details={"missing": missing}
            )
        return found

    @staticmethod
    async def effective_rate(
        db: AsyncSession,
        utility_type_id: int,
        as_of: Optional[date] = None
    ) -> float:
        """
        Rate per unit in force on ``as_of`` (today when None).

        Returns 0 when no rate has taken effect yet.
        """
        as_of = as_of or date.today()
        query = select(UtilityRate.rate_per_unit).where(
            UtilityRate.utility_type_id == utility_type_id,
            UtilityRate.effective_date <= as_of
        ).order_by(UtilityRate.effective_date.desc(), UtilityRate.id.desc()).limit(1)

        result = await db.execute(query)
        rate = result.scalar_one_or_none()
        return float(rate) if rate is not None else 0.0

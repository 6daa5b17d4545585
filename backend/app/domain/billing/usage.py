"""
Meter usage and calendar arithmetic.

Pure functions shared by the cycle manager, the reading reconciler and the
bill engine. Nothing here touches the database.
"""

import calendar
from datetime import date, timedelta
from typing import Optional, NamedTuple, Tuple

from backend.app.core.config import settings
from backend.app.core.exceptions import ValidationError
from backend.app.models.billing_enums import UtilityCode

BUDDHIST_ERA_OFFSET = 543


class Usage(NamedTuple):
    units: float
    is_rollover: bool


def to_gregorian_year(buddhist_year: int) -> int:
    return buddhist_year - BUDDHIST_ERA_OFFSET


def to_buddhist_year(gregorian_year: int) -> int:
    return gregorian_year + BUDDHIST_ERA_OFFSET


def validate_period(year: int, month: int) -> None:
    if not 1 <= month <= 12:
        raise ValidationError("month must be between 1 and 12", details={"month": month})
    if to_gregorian_year(year) < 1:
        raise ValidationError("year must be a Buddhist calendar year", details={"year": year})


def default_cycle_dates(
    year: int,
    month: int,
    due_offset_days: Optional[int] = None
) -> Tuple[date, date, date]:
    """
    Period boundaries for a Buddhist (year, month).

    Returns (start, end, due): first and last day of the Gregorian month,
    and ``end + due_offset_days`` (15 by default).
    """
    offset = settings.due_date_offset_days if due_offset_days is None else due_offset_days
    gregorian_year = to_gregorian_year(year)
    last_day = calendar.monthrange(gregorian_year, month)[1]
    start = date(gregorian_year, month, 1)
    end = date(gregorian_year, month, last_day)
    return start, end, end + timedelta(days=offset)


def compute_usage(
    utility_code: str,
    meter_start: float,
    meter_end: Optional[float],
    modulus: Optional[int] = None
) -> Usage:
    """
    Units consumed between two meter values.

    Electric meters are 4-digit rolling counters: when the end value is
    below the start value the counter wrapped, so usage is
    ``(modulus - start) + end``. Water meters never wrap; an end value
    below the start value is rejected.

    Examples:
        >>> compute_usage("electric", 9823, 173)
        Usage(units=350, is_rollover=True)
        >>> compute_usage("electric", 100, 500)
        Usage(units=400, is_rollover=False)

    Raises:
        ValidationError: water end reading below start reading
    """
    if meter_end is None:
        return Usage(0, False)

    if meter_end >= meter_start:
        return Usage(meter_end - meter_start, False)

    if UtilityCode(utility_code) == UtilityCode.ELECTRIC:
        mod = settings.electric_meter_modulus if modulus is None else modulus
        return Usage((mod - meter_start) + meter_end, True)

    raise ValidationError(
        "end reading below start reading",
        details={"utility_type": utility_code, "meter_start": meter_start, "meter_end": meter_end}
    )


def split_evenly(room_amount: float, tenant_count: int) -> float:
    """Per-tenant share of a whole-room amount; the count floors at 1."""
    return round(room_amount / max(1, tenant_count), 2)


def bill_number(billing_year: int, billing_month: int, bill_id: int) -> str:
    """Printable bill number, e.g. ``B-2025-10-00042`` (Gregorian year)."""
    return f"B-{to_gregorian_year(billing_year)}-{billing_month:02d}-{bill_id:05d}"

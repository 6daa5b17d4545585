"""
Unit tests for meter usage and calendar arithmetic.

No database: these cover the pure functions the billing engine is
built on.
"""

import pytest
from datetime import date

from backend.app.core.exceptions import ValidationError
from backend.app.domain.billing.usage import (
    compute_usage, default_cycle_dates, split_evenly, bill_number,
    to_buddhist_year, to_gregorian_year, validate_period
)


def test_electric_rollover():
    """A 4-digit counter passing 9999 wraps back to 0."""
    usage = compute_usage("electric", 9823, 173)
    assert usage.units == 350
    assert usage.is_rollover is True


def test_electric_normal_usage():
    usage = compute_usage("electric", 100, 500)
    assert usage.units == 400
    assert usage.is_rollover is False


def test_water_end_below_start_rejected():
    with pytest.raises(ValidationError) as exc_info:
        compute_usage("water", 500, 400)
    assert exc_info.value.status_code == 400
    assert exc_info.value.details["meter_start"] == 500


def test_water_unchanged_is_zero():
    usage = compute_usage("water", 400, 400)
    assert usage.units == 0
    assert usage.is_rollover is False


def test_missing_end_reading_is_zero_usage():
    assert compute_usage("electric", 1500, None).units == 0


def test_custom_modulus():
    assert compute_usage("electric", 99990, 10, modulus=100000).units == 20


def test_buddhist_year_conversion():
    assert to_buddhist_year(2025) == 2568
    assert to_gregorian_year(2568) == 2025


def test_default_cycle_dates_february():
    start, end, due = default_cycle_dates(2568, 2)
    assert start == date(2025, 2, 1)
    assert end == date(2025, 2, 28)
    assert due == date(2025, 3, 15)


def test_default_cycle_dates_leap_year():
    _, end, _ = default_cycle_dates(2567, 2)
    assert end == date(2024, 2, 29)


def test_default_cycle_dates_december_due_crosses_year():
    _, end, due = default_cycle_dates(2568, 12, due_offset_days=15)
    assert end == date(2025, 12, 31)
    assert due == date(2026, 1, 15)


@pytest.mark.parametrize("month", [0, 13])
def test_invalid_month_rejected(month):
    with pytest.raises(ValidationError):
        validate_period(2568, month)


def test_split_evenly():
    assert split_evenly(800, 2) == 400
    assert split_evenly(100, 3) == 33.33
    # Empty room still charges the full amount once
    assert split_evenly(250, 0) == 250


def test_bill_number_uses_gregorian_year():
    assert bill_number(2568, 10, 42) == "B-2025-10-00042"

"""
Billing enumerations.
"""

import enum


class CycleStatus(str, enum.Enum):
    """Billing cycle status enumeration."""
    OPEN = "open"  # Readings and bills may still be recorded
    CLOSED = "closed"


class BillStatus(str, enum.Enum):
    """Bill status enumeration. Transitions only move forward."""
    DRAFT = "draft"  # Generated by a billing run
    SENT = "sent"  # Delivered to the tenant
    PAID = "paid"


class UtilityCode(str, enum.Enum):
    """Utility type codes used as reference data."""
    ELECTRIC = "electric"  # 4-digit rolling counter
    WATER = "water"  # Never rolls over


BILL_STATUS_ORDER = [BillStatus.DRAFT, BillStatus.SENT, BillStatus.PAID]

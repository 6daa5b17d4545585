"""
Room, tenant and contract enumerations.
"""

import enum


class RoomStatus(str, enum.Enum):
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    MAINTENANCE = "maintenance"


class TenantStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class ContractStatus(str, enum.Enum):
    """Contract status enumeration."""
    ACTIVE = "active"  # Counts toward room occupancy and is billed
    PENDING = "pending"  # Signed, not yet moved in
    ENDED = "ended"  # Moved out
    INACTIVE = "inactive"


class OccupancyStatus(str, enum.Enum):
    EMPTY = "empty"
    AVAILABLE = "available"
    FULL = "full"

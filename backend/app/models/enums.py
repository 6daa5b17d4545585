"""
User roles enumeration.

Defines the role types derived from directory group membership.
"""

import enum


def enum_values(enum_cls):
    """Persist enum *values* (e.g. 'active') rather than member names."""
    return [member.value for member in enum_cls]


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles (highest first):
        ADMIN: Directory admin / IT group members, full access
        SUPER_USER: Dormitory staff group members, manage billing and tenants
        REGULAR: Everyone else that passes the access gate (tenant portal)
    """
    ADMIN = "admin"
    SUPER_USER = "superUser"
    REGULAR = "regular"


ROLE_RANK = {
    UserRole.ADMIN: 3,
    UserRole.SUPER_USER: 2,
    UserRole.REGULAR: 1,
}

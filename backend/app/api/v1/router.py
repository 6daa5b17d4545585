"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from backend.app.api.v1.endpoints import (
    auth, billing, bills, my,
    utilities, utility_readings, meter_photos,
    rooms, tenants, contracts, announcements
)

router = APIRouter()

# Authentication
router.include_router(auth.router)

# Billing engine
router.include_router(billing.router)
router.include_router(bills.router)
router.include_router(utilities.router)
router.include_router(utility_readings.router)
router.include_router(meter_photos.router)

# Residency
router.include_router(rooms.router)
router.include_router(tenants.router)
router.include_router(contracts.router)

# Portal
router.include_router(my.router)
router.include_router(announcements.router)

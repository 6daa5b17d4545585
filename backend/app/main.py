"""
FastAPI Application Entry Point.

This is the main application file for the Dormitory Management Backend.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from backend.app.core.config import settings
from backend.app.core.observability import configure_logging, ObservabilityMiddleware
from backend.app.core.redis_client import ping_redis
from backend.app.api.v1.router import router as api_v1_router
from backend.app.db.session import engine, Base
from backend.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from backend.app.models.user import User
from backend.app.models.audit_log import AuditLog
from backend.app.models.building import Building, RoomType
from backend.app.models.room import Room
from backend.app.models.tenant import Tenant
from backend.app.models.contract import Contract
from backend.app.models.billing_cycle import BillingCycle
from backend.app.models.utility import UtilityType, UtilityRate
from backend.app.models.meter_reading import MeterReading
from backend.app.models.bill import Bill
from backend.app.models.meter_photo import MeterPhoto
from backend.app.models.announcement import Announcement, AnnouncementRead, AnnouncementFile

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Configures logging.
    2. Creates database tables on startup.
    3. Disposes the connection pool on shutdown.
    """
    configure_logging()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    if not await ping_redis():
        logger.warning("Redis unreachable at startup; logout revocation is degraded")
    logger.info("%s %s started", settings.app_name, settings.api_version)
    yield
    await engine.dispose()


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Dormitory management API: rooms, tenants, meter readings and monthly billing",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Status and application information
    """
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint.

    Returns:
        dict: Welcome message and API documentation links
    """
    return {
        "message": "Welcome to Dormitory Management Backend API",
        "docs": "/docs",
        "health": "/health",
    }

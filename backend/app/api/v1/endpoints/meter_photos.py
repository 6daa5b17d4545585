"""
Meter Photo API Endpoints.

Upload of meter photos together with the value read from them. Every
upload or correction re-reconciles the room's reading for the period.
"""

import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Path, Query, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from backend.app.db.session import get_db
from backend.app.core.exceptions import ResourceNotFoundError, StateConflictError, ValidationError
from backend.app.core.guards import require_staff
from backend.app.models.billing_enums import UtilityCode
from backend.app.models.meter_photo import MeterPhoto
from backend.app.models.room import Room
from backend.app.schemas.meter_photo import MeterPhotoResponse, MeterPhotoUploadResponse, MeterPhotoUpdate
from backend.app.domain.billing.cycle_manager import BillingCycleManager
from backend.app.domain.billing.meter_reconciler import MeterReadingReconciler
from backend.app.domain.billing.usage import to_buddhist_year
from backend.app.services.storage import FileStorage, get_storage, validate_image_upload
from backend.app.services.audit import log_staff_action, AuditAction

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/meter-photos", tags=["Meter Photos"])


async def _get_photo(db: AsyncSession, photo_id: int) -> MeterPhoto:
    photo = await db.get(MeterPhoto, photo_id)
    if photo is None:
        raise ResourceNotFoundError("Meter photo", photo_id)
    return photo


def _ensure_unlocked(photo: MeterPhoto) -> None:
    if photo.is_locked:
        raise StateConflictError(
            "Meter photo is linked to an issued bill and cannot be changed",
            details={"photo_id": photo.id, "bill_id": photo.bill_id}
        )


@router.post("", response_model=MeterPhotoUploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_meter_photo(
    room_id: int = Form(...),
    utility_type: str = Form(...),
    meter_value: float = Form(...),
    reading_date: Optional[date] = Form(None),
    year: Optional[int] = Form(None, description="Buddhist calendar year, defaults from reading_date"),
    month: Optional[int] = Form(None),
    file: UploadFile = File(...),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
    storage: FileStorage = Depends(get_storage)
):
    """
    Upload a meter photo and record its value as the period's end reading.

    Flow:
    1. Validate utility type, image type and size (10 MB)
    2. Resolve the billing cycle for the period
    3. Store the file
    4. Reconcile the reading and insert the photo row, one transaction
    5. On any failure after storing, delete the file again
    """
    try:
        code = UtilityCode(utility_type)
    except ValueError:
        raise ValidationError("utility_type must be electric or water", details={"utility_type": utility_type})

    content = await file.read()
    validate_image_upload(file.content_type, len(content))

    room = await db.get(Room, room_id)
    if room is None:
        raise ResourceNotFoundError("Room", room_id)

    reading_date = reading_date or date.today()
    billing_year = year or to_buddhist_year(reading_date.year)
    billing_month = month or reading_date.month

    photo_path = storage.meter_photo_path(
        room.room_number, code.value, billing_year, billing_month, file.content_type
    )

    stored = False
    try:
        cycle = await BillingCycleManager.resolve_or_create(db, billing_year, billing_month)
        # Refuse before touching the disk when the period is already billed
        await MeterReadingReconciler.ensure_not_billed(db, room.id, cycle.id)

        storage.save(photo_path, content)
        stored = True

        reading = await MeterReadingReconciler.record_reading(db, room.id, cycle, code.value, meter_value)

        photo = MeterPhoto(
            room_id=room.id,
            utility_type=code,
            meter_value=meter_value,
            photo_path=photo_path,
            reading_date=reading_date,
            billing_year=billing_year,
            billing_month=billing_month,
            created_by=current_user.get("sub")
        )
        db.add(photo)
        await db.commit()
        await db.refresh(photo)
    except Exception:
        await db.rollback()
        if stored:
            storage.delete(photo_path)
            logger.warning("Removed %s after failed upload", photo_path)
        raise

    await log_staff_action(
        db,
        current_user,
        AuditAction.METER_PHOTO_UPLOADED,
        entity_type="meter_photo",
        entity_id=photo.id,
        metadata={
            "room_id": room.id,
            "utility_type": code.value,
            "meter_value": meter_value,
            "period": f"{billing_year}-{billing_month:02d}"
        }
    )

    return MeterPhotoUploadResponse(photo=MeterPhotoResponse.model_validate(photo), reading=reading)


@router.get("", response_model=List[MeterPhotoResponse])
async def list_meter_photos(
    room_id: Optional[int] = Query(None),
    year: Optional[int] = Query(None, ge=2400, le=2800),
    month: Optional[int] = Query(None, ge=1, le=12),
    utility_type: Optional[UtilityCode] = Query(None),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    """List meter photos, newest first."""
    query = select(MeterPhoto)
    if room_id is not None:
        query = query.where(MeterPhoto.room_id == room_id)
    if year is not None:
        query = query.where(MeterPhoto.billing_year == year)
    if month is not None:
        query = query.where(MeterPhoto.billing_month == month)
    if utility_type is not None:
        query = query.where(MeterPhoto.utility_type == utility_type)

    result = await db.execute(query.order_by(MeterPhoto.reading_date.desc(), MeterPhoto.id.desc()))
    return result.scalars().all()


@router.patch("/{photo_id}", response_model=MeterPhotoUploadResponse)
async def update_meter_photo(
    payload: MeterPhotoUpdate,
    photo_id: int = Path(..., description="Meter photo ID"),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    """Correct the value read from a photo; the reading is reconciled again."""
    photo = await _get_photo(db, photo_id)
    _ensure_unlocked(photo)
    previous_value = photo.meter_value

    try:
        cycle = await BillingCycleManager.resolve_or_create(db, photo.billing_year, photo.billing_month)
        reading = await MeterReadingReconciler.record_reading(
            db, photo.room_id, cycle, photo.utility_type.value, payload.meter_value
        )
        photo.meter_value = payload.meter_value
        await db.commit()
        await db.refresh(photo)
    except Exception:
        await db.rollback()
        raise

    await log_staff_action(
        db,
        current_user,
        AuditAction.METER_PHOTO_UPDATED,
        entity_type="meter_photo",
        entity_id=photo.id,
        metadata={"meter_value": [previous_value, payload.meter_value]}
    )

    return MeterPhotoUploadResponse(photo=MeterPhotoResponse.model_validate(photo), reading=reading)


@router.delete("/{photo_id}")
async def delete_meter_photo(
    photo_id: int = Path(..., description="Meter photo ID"),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
    storage: FileStorage = Depends(get_storage)
):
    """Delete an unlinked photo and its file. The reading itself is kept."""
    photo = await _get_photo(db, photo_id)
    _ensure_unlocked(photo)
    cycle = await BillingCycleManager.get_by_period(db, photo.billing_year, photo.billing_month)
    if cycle is not None:
        await MeterReadingReconciler.ensure_not_billed(db, photo.room_id, cycle.id)

    photo_path = photo.photo_path
    await db.delete(photo)
    await db.commit()
    storage.delete(photo_path)

    await log_staff_action(
        db,
        current_user,
        AuditAction.METER_PHOTO_DELETED,
        entity_type="meter_photo",
        entity_id=photo_id,
        metadata={"photo_path": photo_path}
    )

    return {"message": "Meter photo deleted", "photo_id": photo_id}


@router.get("/{photo_id}/download")
async def download_meter_photo(
    photo_id: int = Path(..., description="Meter photo ID"),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
    storage: FileStorage = Depends(get_storage)
):
    photo = await _get_photo(db, photo_id)
    if not storage.exists(photo.photo_path):
        raise ResourceNotFoundError("Meter photo file", photo_id)

    path = storage.resolve(photo.photo_path)
    return FileResponse(path, filename=path.name)

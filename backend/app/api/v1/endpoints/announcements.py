"""
Announcement Endpoints.

Staff manage announcements and their attached files; every signed-in
user reads the ones aimed at their audience and marks them read.
"""

import logging

from fastapi import APIRouter, Depends, File, Path, Query, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import List

from backend.app.db.session import get_db
from backend.app.core.dependencies import get_current_user
from backend.app.core.exceptions import ResourceNotFoundError, ValidationError
from backend.app.core.guards import require_staff, role_of, is_staff
from backend.app.models.announcement import Announcement, AnnouncementFile
from backend.app.schemas.announcement import (
    AnnouncementCreate, AnnouncementUpdate, AnnouncementResponse, UnreadCountResponse,
    AnnouncementFileResponse, AnnouncementFileList
)
from backend.app.services.announcement_service import AnnouncementService, to_naive_utc
from backend.app.services.audit import log_staff_action, AuditAction
from backend.app.services.storage import FileStorage, get_storage, is_allowed_attachment

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/announcements", tags=["Announcements"])


def _response(announcement: Announcement, is_read: bool = False) -> AnnouncementResponse:
    item = AnnouncementResponse.model_validate(announcement)
    item.is_read = is_read
    return item


def _file_response(attachment: AnnouncementFile) -> AnnouncementFileResponse:
    item = AnnouncementFileResponse.model_validate(attachment)
    item.download_url = f"/v1/announcements/files/{attachment.id}/download"
    return item


async def _readable_announcement(db: AsyncSession, announcement_id: int, current_user: dict) -> Announcement:
    """Staff see any announcement; others only visible ones."""
    announcement = await AnnouncementService.get(db, announcement_id)
    if not is_staff(current_user):
        if not await AnnouncementService.is_visible(db, announcement.id, role_of(current_user)):
            raise ResourceNotFoundError("Announcement", announcement_id)
    return announcement


async def _get_file(db: AsyncSession, file_id: int) -> AnnouncementFile:
    attachment = await db.get(AnnouncementFile, file_id)
    if attachment is None:
        raise ResourceNotFoundError("Announcement file", file_id)
    return attachment


@router.get("", response_model=List[AnnouncementResponse])
async def list_announcements(
    manage: bool = Query(False, description="Staff only: include unpublished and out-of-window rows"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Announcements visible to the caller, newest first, with read flags."""
    role = role_of(current_user)
    announcements = await AnnouncementService.list_visible(
        db, role, include_hidden=manage and is_staff(current_user), limit=limit, offset=offset
    )
    read = await AnnouncementService.read_ids(db, current_user["sub"], [a.id for a in announcements])
    return [_response(a, a.id in read) for a in announcements]


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    count = await AnnouncementService.unread_count(db, current_user["sub"], role_of(current_user))
    return UnreadCountResponse(unread_count=count)


@router.post("", response_model=AnnouncementResponse, status_code=status.HTTP_201_CREATED)
async def create_announcement(
    payload: AnnouncementCreate,
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    announcement = Announcement(
        title=payload.title,
        content=payload.content,
        target_role=payload.target_role,
        is_published=payload.is_published,
        publish_start=to_naive_utc(payload.publish_start),
        publish_end=to_naive_utc(payload.publish_end),
        created_by=current_user.get("sub")
    )
    db.add(announcement)
    await db.commit()
    await db.refresh(announcement)

    await log_staff_action(
        db, current_user, AuditAction.ANNOUNCEMENT_CREATED,
        entity_type="announcement", entity_id=announcement.id,
        metadata={"title": announcement.title, "target_role": announcement.target_role.value}
    )
    return _response(announcement)


@router.get("/{announcement_id}", response_model=AnnouncementResponse)
async def get_announcement(
    announcement_id: int = Path(...),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    announcement = await _readable_announcement(db, announcement_id, current_user)
    read = await AnnouncementService.read_ids(db, current_user["sub"], [announcement.id])
    return _response(announcement, announcement.id in read)


@router.patch("/{announcement_id}", response_model=AnnouncementResponse)
async def update_announcement(
    payload: AnnouncementUpdate,
    announcement_id: int = Path(...),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    announcement = await AnnouncementService.get(db, announcement_id)
    changes = payload.model_dump(exclude_unset=True)
    for field in ("publish_start", "publish_end"):
        if field in changes:
            changes[field] = to_naive_utc(changes[field])

    AnnouncementService.validate_window(
        changes.get("publish_start", announcement.publish_start),
        changes.get("publish_end", announcement.publish_end)
    )
    for field, value in changes.items():
        setattr(announcement, field, value)

    await db.commit()
    await db.refresh(announcement)

    await log_staff_action(
        db, current_user, AuditAction.ANNOUNCEMENT_UPDATED,
        entity_type="announcement", entity_id=announcement.id,
        metadata={"fields": sorted(changes)}
    )
    return _response(announcement)


@router.delete("/{announcement_id}")
async def delete_announcement(
    announcement_id: int = Path(...),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db)
):
    announcement = await AnnouncementService.get(db, announcement_id)
    announcement.is_deleted = True
    await db.commit()

    await log_staff_action(
        db, current_user, AuditAction.ANNOUNCEMENT_DELETED,
        entity_type="announcement", entity_id=announcement_id
    )
    return {"message": "Announcement deleted", "announcement_id": announcement_id}


@router.post("/{announcement_id}/read")
async def mark_announcement_read(
    announcement_id: int = Path(...),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    await AnnouncementService.get(db, announcement_id)
    created = await AnnouncementService.mark_read(db, announcement_id, current_user["sub"])
    await db.commit()
    return {"message": "Marked as read", "announcement_id": announcement_id, "already_read": not created}


@router.post("/{announcement_id}/files", response_model=AnnouncementFileList, status_code=status.HTTP_201_CREATED)
async def upload_announcement_files(
    announcement_id: int = Path(...),
    files: List[UploadFile] = File(...),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
    storage: FileStorage = Depends(get_storage)
):
    """
    Attach files to an announcement.

    Files of another type or over 50 MB are skipped and reported back;
    the request fails only when none could be stored. Stored files are
    removed again if the rows cannot be written.
    """
    await AnnouncementService.get(db, announcement_id)

    attachments: List[AnnouncementFile] = []
    skipped: List[str] = []
    stored_paths: List[str] = []
    try:
        for upload in files:
            content = await upload.read()
            file_name = upload.filename or "attachment"
            if not is_allowed_attachment(upload.content_type, len(content)):
                logger.info("Skipped attachment %s (%s, %d bytes)", file_name, upload.content_type, len(content))
                skipped.append(file_name)
                continue

            path = FileStorage.announcement_file_path(file_name, len(attachments) + 1)
            storage.save(path, content)
            stored_paths.append(path)

            attachment = AnnouncementFile(
                announcement_id=announcement_id,
                file_name=file_name,
                file_path=path,
                file_type=upload.content_type,
                file_size=len(content),
                uploaded_by=current_user.get("sub")
            )
            db.add(attachment)
            attachments.append(attachment)

        if not attachments:
            raise ValidationError("No valid files uploaded", details={"skipped": skipped})
        await db.commit()
    except Exception:
        await db.rollback()
        for path in stored_paths:
            storage.delete(path)
        raise

    for attachment in attachments:
        await db.refresh(attachment)

    await log_staff_action(
        db, current_user, AuditAction.ANNOUNCEMENT_FILE_UPLOADED,
        entity_type="announcement", entity_id=announcement_id,
        metadata={"files": [a.file_name for a in attachments], "skipped": skipped}
    )
    return AnnouncementFileList(files=[_file_response(a) for a in attachments], skipped=skipped)


@router.get("/{announcement_id}/files", response_model=List[AnnouncementFileResponse])
async def list_announcement_files(
    announcement_id: int = Path(...),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    await _readable_announcement(db, announcement_id, current_user)
    result = await db.execute(
        select(AnnouncementFile)
        .where(AnnouncementFile.announcement_id == announcement_id)
        .order_by(AnnouncementFile.created_at, AnnouncementFile.id)
    )
    return [_file_response(a) for a in result.scalars().all()]


@router.get("/files/{file_id}/download")
async def download_announcement_file(
    file_id: int = Path(...),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    storage: FileStorage = Depends(get_storage)
):
    """Download an attachment; the caller must be able to read its announcement."""
    attachment = await _get_file(db, file_id)
    await _readable_announcement(db, attachment.announcement_id, current_user)
    if not storage.exists(attachment.file_path):
        raise ResourceNotFoundError("Announcement file", file_id)

    return FileResponse(
        storage.resolve(attachment.file_path),
        media_type=attachment.file_type,
        filename=attachment.file_name
    )


@router.delete("/files/{file_id}")
async def delete_announcement_file(
    file_id: int = Path(...),
    current_user: dict = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
    storage: FileStorage = Depends(get_storage)
):
    attachment = await _get_file(db, file_id)
    announcement_id = attachment.announcement_id
    path = attachment.file_path

    await db.delete(attachment)
    await db.commit()
    storage.delete(path)

    await log_staff_action(
        db, current_user, AuditAction.ANNOUNCEMENT_FILE_DELETED,
        entity_type="announcement", entity_id=announcement_id,
        metadata={"file_id": file_id, "file_path": path}
    )
    return {"message": "File deleted", "file_id": file_id}

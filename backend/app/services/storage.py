"""
Local file storage for meter photos and announcement attachments.

Paths stored in the database are relative to ``settings.upload_dir``.
"""

import os
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from backend.app.core.config import settings
from backend.app.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

CONTENT_TYPE_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
}


class FileStorage:

    def __init__(self, root: Optional[str] = None):
        self.root = Path(root or settings.upload_dir)

    def resolve(self, relative_path: str) -> Path:
        """Absolute path for a stored file; refuses paths escaping the root."""
        root = self.root.resolve()
        path = (root / relative_path).resolve()
        if root != path and root not in path.parents:
            raise ValidationError("Invalid file path", details={"path": relative_path})
        return path

    @staticmethod
    def meter_photo_path(
        room_number: str,
        utility_type: str,
        billing_year: int,
        billing_month: int,
        content_type: str,
        now: Optional[datetime] = None
    ) -> str:
        """``meters/{year}-{MM}/{room}_{utility}_{timestamp}.{ext}``"""
        ext = CONTENT_TYPE_EXTENSIONS.get(content_type, "jpg")
        timestamp = int((now or datetime.utcnow()).timestamp() * 1000)
        safe_room = "".join(ch if ch.isalnum() or ch in "-_" else "_" for ch in room_number)
        return f"meters/{billing_year}-{billing_month:02d}/{safe_room}_{utility_type}_{timestamp}.{ext}"

    @staticmethod
    def announcement_file_path(
        file_name: str,
        sequence: int,
        now: Optional[datetime] = None
    ) -> str:
        """``announcements/{YYYY-MM}/{NNN}_{timestamp}_{safe name}``"""
        now = now or datetime.utcnow()
        timestamp = int(now.timestamp() * 1000)
        safe_name = "".join(ch if ch.isascii() and (ch.isalnum() or ch in "._-") else "_" for ch in file_name)
        return f"announcements/{now:%Y-%m}/{sequence:03d}_{timestamp}_{safe_name}"

    def save(self, relative_path: str, content: bytes) -> Path:
        path = self.resolve(relative_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        logger.info("Stored %s (%d bytes)", relative_path, len(content))
        return path

    def exists(self, relative_path: str) -> bool:
        return self.resolve(relative_path).is_file()

    def delete(self, relative_path: str) -> bool:
        """Remove a stored file; a missing file is not an error."""
        path = self.resolve(relative_path)
        try:
            os.remove(path)
            return True
        except FileNotFoundError:
            logger.warning("File already missing: %s", relative_path)
            return False


def validate_image_upload(content_type: Optional[str], size: int) -> None:
    if content_type not in settings.allowed_image_types:
        raise ValidationError(
            "Only JPEG, PNG and WEBP images are allowed",
            details={"content_type": content_type}
        )
    if size > settings.max_upload_size_bytes:
        raise ValidationError(
            "File too large",
            details={"size": size, "max_size": settings.max_upload_size_bytes}
        )
    if size == 0:
        raise ValidationError("Empty file")


def is_allowed_attachment(content_type: Optional[str], size: int) -> bool:
    """Announcement attachments: PDF, JPEG/PNG, XLSX or DOCX up to 50 MB."""
    return (
        content_type in settings.allowed_attachment_types
        and 0 < size <= settings.max_attachment_size_bytes
    )


def get_storage() -> FileStorage:
    """FastAPI dependency; reads ``upload_dir`` at call time so tests can point it elsewhere."""
    return FileStorage(settings.upload_dir)

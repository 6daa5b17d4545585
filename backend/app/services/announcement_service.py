"""
Announcement Service.

Handles visibility rules and read tracking for announcements.
"""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, exists, or_, and_
from sqlalchemy.exc import IntegrityError
from datetime import datetime, timezone
from typing import Optional, List, Set

from backend.app.core.exceptions import ResourceNotFoundError, ValidationError
from backend.app.models.announcement import Announcement, AnnouncementRead, AnnouncementAudience
from backend.app.models.enums import UserRole


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Publish windows are stored as naive UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def audience_for(role: UserRole) -> AnnouncementAudience:
    """Staff read 'admin' announcements, everyone else 'tenant' ones."""
    if role in (UserRole.ADMIN, UserRole.SUPER_USER):
        return AnnouncementAudience.ADMIN
    return AnnouncementAudience.TENANT


class AnnouncementService:

    @staticmethod
    def visible_clause(role: UserRole, now: Optional[datetime] = None):
        now = now or datetime.utcnow()
        return and_(
            Announcement.target_role.in_([AnnouncementAudience.ALL, audience_for(role)]),
            Announcement.is_published.is_(True),
            Announcement.is_deleted.is_(False),
            or_(Announcement.publish_start.is_(None), Announcement.publish_start <= now),
            or_(Announcement.publish_end.is_(None), Announcement.publish_end >= now)
        )

    @staticmethod
    def validate_window(start: Optional[datetime], end: Optional[datetime]) -> None:
        if start and end and start > end:
            raise ValidationError(
                "publish_start must not be after publish_end",
                details={"publish_start": str(start), "publish_end": str(end)}
            )

    @staticmethod
    async def get(db: AsyncSession, announcement_id: int) -> Announcement:
        result = await db.execute(
            select(Announcement).where(
                Announcement.id == announcement_id,
                Announcement.is_deleted.is_(False)
            )
        )
        announcement = result.scalar_one_or_none()
        if announcement is None:
            raise ResourceNotFoundError("Announcement", announcement_id)
        return announcement

    @staticmethod
    async def is_visible(db: AsyncSession, announcement_id: int, role: UserRole) -> bool:
        result = await db.execute(
            select(Announcement.id).where(
                Announcement.id == announcement_id,
                AnnouncementService.visible_clause(role)
            )
        )
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def list_visible(
        db: AsyncSession,
        role: UserRole,
        include_hidden: bool = False,
        limit: int = 50,
        offset: int = 0
    ) -> List[Announcement]:
        """
        Announcements for a reader, newest first.

        ``include_hidden`` (staff management view) drops the audience and
        publish-window filters but still hides deleted rows.
        """
        query = select(Announcement)
        if include_hidden:
            query = query.where(Announcement.is_deleted.is_(False))
        else:
            query = query.where(AnnouncementService.visible_clause(role))
        query = query.order_by(Announcement.created_at.desc(), Announcement.id.desc()).limit(limit).offset(offset)
        result = await db.execute(query)
        return result.scalars().all()

    @staticmethod
    async def read_ids(db: AsyncSession, username: str, announcement_ids: List[int]) -> Set[int]:
        if not announcement_ids:
            return set()
        result = await db.execute(
            select(AnnouncementRead.announcement_id).where(
                AnnouncementRead.username == username,
                AnnouncementRead.announcement_id.in_(announcement_ids)
            )
        )
        return set(result.scalars().all())

    @staticmethod
    async def mark_read(
        db: AsyncSession,
        announcement_id: int,
        username: str,
        tenant_id: Optional[int] = None
    ) -> bool:
        """Record a read receipt. Returns False if it already existed."""
        result = await db.execute(
            select(AnnouncementRead.id).where(
                AnnouncementRead.announcement_id == announcement_id,
                AnnouncementRead.username == username
            )
        )
        if result.scalar_one_or_none() is not None:
            return False

        try:
            async with db.begin_nested():
                db.add(AnnouncementRead(announcement_id=announcement_id, username=username, tenant_id=tenant_id))
                await db.flush()
        except IntegrityError:
            # Concurrent duplicate click
            return False
        return True

    @staticmethod
    async def unread_count(db: AsyncSession, username: str, role: UserRole) -> int:
        already_read = exists().where(
            AnnouncementRead.announcement_id == Announcement.id,
            AnnouncementRead.username == username
        )
        result = await db.execute(
            select(func.count(Announcement.id)).where(
                AnnouncementService.visible_clause(role),
                ~already_read
            )
        )
        return result.scalar() or 0

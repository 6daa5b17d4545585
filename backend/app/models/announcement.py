"""
Announcement Database Models.
"""

from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, Enum, UniqueConstraint
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.enums import enum_values
import enum


class AnnouncementAudience(str, enum.Enum):
    ALL = "all"
    ADMIN = "admin"  # Staff only (admin and superUser)
    TENANT = "tenant"  # Tenant portal only


class Announcement(Base):
    """
    Announcement shown in the admin or tenant portal.

    Visible when published and ``now`` falls inside the optional
    publish window.
    """
    __tablename__ = "announcements"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    title = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    target_role = Column(Enum(AnnouncementAudience, values_callable=enum_values, name="announcement_audience"), default=AnnouncementAudience.ALL, nullable=False, index=True)

    is_published = Column(Boolean, default=True, nullable=False, index=True)
    # Naive UTC
    publish_start = Column(DateTime, nullable=True)
    publish_end = Column(DateTime, nullable=True)
    is_deleted = Column(Boolean, default=False, nullable=False)

    created_by = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Announcement(id={self.id}, title='{self.title}', target='{self.target_role.value}')>"


class AnnouncementRead(Base):
    """Read receipt, one per (announcement, directory user)."""
    __tablename__ = "announcement_reads"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    announcement_id = Column(Integer, ForeignKey("announcements.id", ondelete="CASCADE"), nullable=False, index=True)
    username = Column(String(100), nullable=False, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=True)
    read_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("announcement_id", "username", name="uq_announcement_reads_user"),
    )


class AnnouncementFile(Base):
    """File attached to an announcement; ``file_path`` is relative to the upload root."""
    __tablename__ = "announcement_files"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    announcement_id = Column(Integer, ForeignKey("announcements.id", ondelete="CASCADE"), nullable=False, index=True)
    file_name = Column(String(255), nullable=False)
    file_path = Column(String(500), nullable=False)
    file_type = Column(String(150), nullable=False)
    file_size = Column(Integer, nullable=False)

    uploaded_by = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<AnnouncementFile(id={self.id}, announcement={self.announcement_id}, name='{self.file_name}')>"

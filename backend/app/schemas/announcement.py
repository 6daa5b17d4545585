"""
Announcement Schemas.
"""

from pydantic import BaseModel, Field, model_validator
from datetime import datetime
from typing import List, Optional
from backend.app.models.announcement import AnnouncementAudience


class AnnouncementCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    content: str = Field(..., min_length=1)
    target_role: AnnouncementAudience = AnnouncementAudience.ALL
    is_published: bool = True
    publish_start: Optional[datetime] = None
    publish_end: Optional[datetime] = None

    @model_validator(mode="after")
    def check_window(self):
        if self.publish_start and self.publish_end and self.publish_start > self.publish_end:
            raise ValueError("publish_start must not be after publish_end")
        return self


class AnnouncementUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    content: Optional[str] = Field(None, min_length=1)
    target_role: Optional[AnnouncementAudience] = None
    is_published: Optional[bool] = None
    publish_start: Optional[datetime] = None
    publish_end: Optional[datetime] = None


class AnnouncementResponse(BaseModel):
    id: int
    title: str
    content: str
    target_role: AnnouncementAudience
    is_published: bool
    publish_start: Optional[datetime]
    publish_end: Optional[datetime]
    created_by: Optional[str]
    created_at: datetime
    is_read: bool = False

    class Config:
        from_attributes = True


class UnreadCountResponse(BaseModel):
    unread_count: int


class AnnouncementFileResponse(BaseModel):
    id: int
    announcement_id: int
    file_name: str
    file_type: str
    file_size: int
    created_at: datetime
    download_url: str = ""

    class Config:
        from_attributes = True


class AnnouncementFileList(BaseModel):
    files: List[AnnouncementFileResponse]
    skipped: List[str] = Field(default_factory=list, description="Names refused for type or size")

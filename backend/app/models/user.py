"""
User database model.

Local record of a directory-authenticated user. Passwords never live here;
the directory is the source of truth for credentials and group membership.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.enums import UserRole, enum_values


class User(Base):
    """
    Directory user seen by this application.

    Upserted on every successful login so the role reflects the latest
    group membership. ``is_active`` lets staff lock a user out locally.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    username = Column(String(100), unique=True, index=True, nullable=False)
    display_name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)
    department = Column(String(255), nullable=True)
    title = Column(String(255), nullable=True)

    role = Column(Enum(UserRole, values_callable=enum_values, name="user_role"), default=UserRole.REGULAR, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    last_login_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<User(id={self.id}, username='{self.username}', role='{self.role.value}')>"

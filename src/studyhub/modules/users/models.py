"""
User Models

Platform accounts. Students, teachers and workers share one identity table;
role-specific data lives in linked tables (e.g. ``workers``).
"""

from enum import Enum

from sqlalchemy import Boolean, String
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from studyhub.core.database import enum_values
from studyhub.modules.shared import BaseModel


class UserRole(str, Enum):
    """User roles in the system."""

    STUDENT = "student"
    TEACHER = "teacher"
    WORKER = "worker"
    ADMIN = "admin"
    GLOBAL_OVERSEER = "global_overseer"


class User(BaseModel):
    """Platform user account."""

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
    )
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")

    role: Mapped[UserRole] = mapped_column(
        SAEnum(UserRole, name="user_role", values_callable=enum_values),
        nullable=False,
        default=UserRole.STUDENT,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role.value})>"

    @property
    def full_name(self) -> str:
        """Return user's full name."""
        return f"{self.first_name} {self.last_name}".strip()

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, String, select
from sqlalchemy.orm import Mapped, Session, mapped_column, validates

from .base import Base, ID_TYPE

STAFF_ROLES = ("admin", "manager", "staff")
MANAGING_ROLES = ("admin", "manager")


class StaffUser(Base):
    """Staff account that configures breakdowns and runs shuffle sessions.

    Authentication lives outside this package; the row only identifies the
    creator of breakdowns/sessions and the actor recorded in the activity log.
    """

    __tablename__ = "staff_users"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, index=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(100), unique=True, index=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    name: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="staff")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    @validates("email")
    def _normalize_email(self, _key: str, value: str) -> str:
        normalized = (value or "").strip().lower()
        if not normalized:
            raise ValueError("Staff email must not be empty")
        return normalized

    @validates("role")
    def _check_role(self, _key: str, value: str) -> str:
        if value not in STAFF_ROLES:
            raise ValueError(f"Unknown staff role '{value}'")
        return value

    @property
    def is_manager(self) -> bool:
        return self.role in MANAGING_ROLES

    @classmethod
    def get_by_email(cls, session: Session, email: str) -> Optional["StaffUser"]:
        """Get a staff member by email address."""
        return session.scalar(select(cls).where(cls.email == email.strip().lower()))

    def __repr__(self) -> str:
        return f"<StaffUser(id={self.id}, email='{self.email}', role='{self.role}')>"

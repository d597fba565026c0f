from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, DateTime, String, Text, select
from sqlalchemy.orm import Mapped, Session, mapped_column, validates

from .base import Base, ID_TYPE


class Gift(Base):
    """A kind of physical prize (e.g. "Travel Mug")."""

    __tablename__ = "gifts"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, index=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __init__(
        self,
        *,
        name: str,
        description: Optional[str] = None,
        is_active: bool = True,
    ) -> None:
        self.name = name
        self.description = description
        self.is_active = is_active

    @validates("name")
    def _normalize_name(self, _key: str, value: str) -> str:
        normalized = (value or "").strip()
        if not normalized:
            raise ValueError("Gift name must not be empty")
        return normalized

    @classmethod
    def get_by_name(cls, session: Session, name: str) -> Optional["Gift"]:
        """Return the first gift called ``name``."""
        stmt = select(cls).where(cls.name == name.strip()).order_by(cls.id)
        return session.scalars(stmt).first()

    def __repr__(self) -> str:
        return f"<Gift(id={self.id}, name='{self.name}', active={self.is_active})>"

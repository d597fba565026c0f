from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, ID_TYPE


class ActivityLog(Base):
    __tablename__ = "activity_logs"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    actor_id: Mapped[Optional[int]] = mapped_column(
        ID_TYPE, ForeignKey("staff_users.id", ondelete="SET NULL"), nullable=True
    )
    actor_role: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    action: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    subject_table: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    subject_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    details_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    @property
    def details(self) -> dict[str, Any]:
        if not self.details_json:
            return {}
        return json.loads(self.details_json)

    @details.setter
    def details(self, value: Optional[dict[str, Any]]) -> None:
        self.details_json = (
            json.dumps(value, sort_keys=True, default=str) if value else None
        )

    def __repr__(self) -> str:
        return (
            f"<ActivityLog(id={self.id}, actor_id={self.actor_id}, "
            f"action='{self.action}')>"
        )

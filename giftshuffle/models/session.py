"""Shuffle sessions: one operational run of the gift shuffle at an event."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship, validates

from .base import Base, ID_TYPE

if TYPE_CHECKING:
    from .boost import GiftBoost
    from .breakdown import GiftBreakdown
    from .round import BreakdownRound
    from .staff import StaffUser
    from .winner import GiftWinner

SESSION_STATUS_ACTIVE = "active"
SESSION_STATUS_COMPLETED = "completed"
DEFAULT_THEME_KEY = "classic"


class ShuffleSession(Base):
    """A timed distribution run tied to an event and a vehicle/location.

    The session references exactly one breakdown. Its rounds are created on
    demand from that breakdown as inventory runs out. ``status`` moves from
    ``"active"`` to ``"completed"`` once and never back.
    """

    __tablename__ = "shuffle_sessions"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, index=True, autoincrement=True)
    """Primary key."""

    event_name: Mapped[str] = mapped_column(String(255), nullable=False)
    """Name of the promotional event."""

    vehicle_number: Mapped[str] = mapped_column(String(50), nullable=False)
    """Vehicle or location tag the session runs at."""

    breakdown_id: Mapped[int] = mapped_column(
        ID_TYPE,
        ForeignKey("gift_breakdowns.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    """Breakdown template every round of this session is copied from."""

    access_code: Mapped[str] = mapped_column(String(16), nullable=False, unique=True)
    """Random code the customer display uses to find the session."""

    theme_key: Mapped[str] = mapped_column(
        String(64), nullable=False, default=DEFAULT_THEME_KEY
    )
    """Identifier of the animation theme shown on the display."""

    collect_customer_info: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    """Whether draws must capture the winner's identity."""

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SESSION_STATUS_ACTIVE
    )
    session_date: Mapped[date] = mapped_column(
        Date, nullable=False, default=lambda: datetime.now(timezone.utc).date()
    )
    start_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    end_time: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_by_id: Mapped[Optional[int]] = mapped_column(
        ID_TYPE, ForeignKey("staff_users.id", ondelete="SET NULL"), nullable=True
    )
    current_round_number: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    """Denormalized number of the latest breakdown round (0 before the first)."""

    breakdown: Mapped["GiftBreakdown"] = relationship(back_populates="sessions")
    created_by: Mapped[Optional["StaffUser"]] = relationship("StaffUser")
    rounds: Mapped[list["BreakdownRound"]] = relationship(
        back_populates="shuffle_session",
        cascade="all, delete-orphan",
        order_by="BreakdownRound.round_number",
    )
    boosts: Mapped[list["GiftBoost"]] = relationship(
        back_populates="shuffle_session",
        cascade="all, delete-orphan",
    )
    winners: Mapped[list["GiftWinner"]] = relationship(
        "GiftWinner", viewonly=True, order_by="GiftWinner.id"
    )
    """Append-only winner history; rows are written through :class:`GiftWinner`."""

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'completed')", name="session_status_enum"
        ),
    )

    def __init__(
        self,
        *,
        event_name: str,
        vehicle_number: str,
        access_code: str,
        breakdown: Optional["GiftBreakdown"] = None,
        breakdown_id: Optional[int] = None,
        theme_key: str = DEFAULT_THEME_KEY,
        collect_customer_info: bool = False,
        created_by_id: Optional[int] = None,
        start_time: Optional[datetime] = None,
    ) -> None:
        self.event_name = event_name
        self.vehicle_number = vehicle_number
        self.access_code = access_code
        if breakdown is not None:
            self.breakdown = breakdown
        if breakdown_id is not None:
            self.breakdown_id = breakdown_id
        self.theme_key = theme_key
        self.collect_customer_info = collect_customer_info
        self.created_by_id = created_by_id
        self.status = SESSION_STATUS_ACTIVE
        self.current_round_number = 0
        if start_time is not None:
            self.start_time = start_time
            self.session_date = start_time.date()

    @validates("event_name", "vehicle_number")
    def _require_text(self, key: str, value: str) -> str:
        normalized = (value or "").strip()
        if not normalized:
            raise ValueError(f"{key} must not be empty")
        return normalized

    @validates("access_code")
    def _normalize_access_code(self, _key: str, value: str) -> str:
        normalized = (value or "").strip().upper()
        if not normalized:
            raise ValueError("access_code must not be empty")
        return normalized

    @property
    def is_active(self) -> bool:
        return self.status == SESSION_STATUS_ACTIVE

    def mark_completed(self, *, timestamp: Optional[datetime] = None) -> None:
        """Move the session to ``"completed"`` and stamp the end time."""
        self.status = SESSION_STATUS_COMPLETED
        self.end_time = timestamp or datetime.now(timezone.utc)

    @classmethod
    def get_by_access_code(
        cls, session: Session, access_code: str, *, active_only: bool = True
    ) -> Optional["ShuffleSession"]:
        """Look up a session by its display access code (case-insensitive)."""
        stmt = select(cls).where(cls.access_code == access_code.strip().upper())
        if active_only:
            stmt = stmt.where(cls.status == SESSION_STATUS_ACTIVE)
        return session.scalar(stmt)

    def __repr__(self) -> str:
        return (
            f"<ShuffleSession(id={self.id}, event='{self.event_name}', "
            f"status='{self.status}', round={self.current_round_number})>"
        )


__all__ = [
    "DEFAULT_THEME_KEY",
    "SESSION_STATUS_ACTIVE",
    "SESSION_STATUS_COMPLETED",
    "ShuffleSession",
]

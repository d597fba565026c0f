"""Breakdown rounds and their per-gift working inventory."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, ID_TYPE

if TYPE_CHECKING:
    from .breakdown import GiftBreakdown
    from .gift import Gift
    from .session import ShuffleSession

ROUND_STATUS_ACTIVE = "active"
ROUND_STATUS_COMPLETED = "completed"


class BreakdownRound(Base):
    """A materialized copy of a breakdown, scoped to one session.

    Rounds are numbered from 1 within a session. At most one round per
    session is ``"active"``; it is replaced by the next round once all of its
    inventory is used.
    """

    __tablename__ = "breakdown_rounds"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, index=True, autoincrement=True)
    """Primary key."""

    session_id: Mapped[int] = mapped_column(
        ID_TYPE,
        ForeignKey("shuffle_sessions.id", ondelete="CASCADE"),
        nullable=False,
    )
    """Owning session."""

    breakdown_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("gift_breakdowns.id", ondelete="RESTRICT"), nullable=False
    )
    """Template the inventory rows were copied from."""

    round_number: Mapped[int] = mapped_column(Integer, nullable=False)
    """Sequential number within the session, starting at 1."""

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ROUND_STATUS_ACTIVE
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    shuffle_session: Mapped["ShuffleSession"] = relationship(back_populates="rounds")
    breakdown: Mapped["GiftBreakdown"] = relationship("GiftBreakdown")
    gifts: Mapped[list["RoundGift"]] = relationship(
        back_populates="round",
        cascade="all, delete-orphan",
        order_by="RoundGift.id",
    )
    """Working inventory rows of this round."""

    __table_args__ = (
        UniqueConstraint(
            "session_id", "round_number", name="uq_breakdown_rounds_session_round"
        ),
        Index("ix_breakdown_rounds_session_status", "session_id", "status"),
        CheckConstraint("round_number > 0", name="round_number_positive"),
        CheckConstraint(
            "status IN ('active', 'completed')", name="round_status_enum"
        ),
    )

    @property
    def is_active(self) -> bool:
        return self.status == ROUND_STATUS_ACTIVE

    @property
    def total_available(self) -> int:
        return sum(row.quantity_available for row in self.gifts)

    @property
    def total_used(self) -> int:
        return sum(row.quantity_used for row in self.gifts)

    @property
    def total_remaining(self) -> int:
        return sum(row.remaining for row in self.gifts)

    def mark_completed(self, *, timestamp: Optional[datetime] = None) -> None:
        self.status = ROUND_STATUS_COMPLETED
        self.completed_at = timestamp or datetime.now(timezone.utc)

    def __repr__(self) -> str:
        return (
            f"<BreakdownRound(id={self.id}, session_id={self.session_id}, "
            f"round_number={self.round_number}, status='{self.status}')>"
        )


class RoundGift(Base):
    """Inventory of one gift within one round.

    ``quantity_available`` is fixed when the round is created.
    ``quantity_used`` only ever grows by one per successful draw and can never
    exceed ``quantity_available``; the database enforces the bound as well.
    """

    __tablename__ = "round_gifts"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    round_id: Mapped[int] = mapped_column(
        ID_TYPE,
        ForeignKey("breakdown_rounds.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    gift_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("gifts.id", ondelete="RESTRICT"), nullable=False
    )
    quantity_available: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    round: Mapped["BreakdownRound"] = relationship(back_populates="gifts")
    gift: Mapped["Gift"] = relationship("Gift", lazy="joined")

    __table_args__ = (
        UniqueConstraint("round_id", "gift_id", name="uq_round_gifts_round_gift"),
        CheckConstraint("quantity_available >= 0", name="available_non_negative"),
        CheckConstraint(
            "quantity_used >= 0 AND quantity_used <= quantity_available",
            name="used_within_available",
        ),
    )

    def __init__(
        self,
        *,
        gift_id: int,
        quantity_available: int,
        quantity_used: int = 0,
        round: Optional["BreakdownRound"] = None,
        round_id: Optional[int] = None,
    ) -> None:
        if quantity_available < 0:
            raise ValueError("quantity_available must not be negative")
        if not 0 <= quantity_used <= quantity_available:
            raise ValueError(
                "quantity_used must be between 0 and quantity_available"
            )
        self.gift_id = gift_id
        self.quantity_available = quantity_available
        self.quantity_used = quantity_used
        if round is not None:
            self.round = round
        if round_id is not None:
            self.round_id = round_id

    @property
    def remaining(self) -> int:
        return max(self.quantity_available - self.quantity_used, 0)

    @property
    def has_stock(self) -> bool:
        return self.quantity_used < self.quantity_available

    def __repr__(self) -> str:
        return (
            f"<RoundGift(round_id={self.round_id}, gift_id={self.gift_id}, "
            f"used={self.quantity_used}/{self.quantity_available})>"
        )


__all__ = [
    "ROUND_STATUS_ACTIVE",
    "ROUND_STATUS_COMPLETED",
    "BreakdownRound",
    "RoundGift",
]

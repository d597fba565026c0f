"""Gift breakdown templates: named pools of prize quantities."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship, validates

from .base import Base, ID_TYPE

if TYPE_CHECKING:
    from .gift import Gift
    from .session import ShuffleSession
    from .staff import StaffUser


class GiftBreakdown(Base):
    """Template describing how many of each gift a round starts with.

    Rounds copy the template's lines when they are created, so the template
    itself is never consumed. Apart from toggling :attr:`is_active`, a
    breakdown is treated as immutable once sessions reference it.
    """

    __tablename__ = "gift_breakdowns"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, index=True, autoincrement=True)
    """Primary key."""

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    """Human readable label, e.g. ``"Summer Promo"``."""

    total_number: Mapped[int] = mapped_column(Integer, nullable=False)
    """Declared number of prizes; equals the sum of the line quantities."""

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    """Only active breakdowns can be selected for new sessions."""

    created_by_id: Mapped[Optional[int]] = mapped_column(
        ID_TYPE, ForeignKey("staff_users.id", ondelete="SET NULL"), nullable=True
    )
    """Staff member who created the template."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    lines: Mapped[list["BreakdownGift"]] = relationship(
        back_populates="breakdown",
        cascade="all, delete-orphan",
        order_by="BreakdownGift.id",
    )
    """Per-gift quantities of this template."""

    sessions: Mapped[list["ShuffleSession"]] = relationship(back_populates="breakdown")
    created_by: Mapped[Optional["StaffUser"]] = relationship("StaffUser")

    __table_args__ = (
        CheckConstraint("total_number >= 0", name="total_number_non_negative"),
    )

    def __init__(
        self,
        *,
        name: str,
        total_number: int,
        is_active: bool = True,
        created_by_id: Optional[int] = None,
        lines: Optional[list["BreakdownGift"]] = None,
    ) -> None:
        self.name = name
        self.total_number = total_number
        self.is_active = is_active
        self.created_by_id = created_by_id
        if lines is not None:
            self.lines = lines

    @validates("name")
    def _normalize_name(self, _key: str, value: str) -> str:
        normalized = (value or "").strip()
        if not normalized:
            raise ValueError("Breakdown name must not be empty")
        return normalized

    @property
    def total_quantity(self) -> int:
        """Sum of the configured line quantities."""
        return sum(line.quantity for line in self.lines)

    def quantities(self) -> dict[int, int]:
        """Return ``{gift_id: quantity}`` for the template lines."""
        return {line.gift_id: line.quantity for line in self.lines}

    @classmethod
    def get_active(cls, session: Session) -> list["GiftBreakdown"]:
        """Return all active breakdowns ordered by name."""
        stmt = select(cls).where(cls.is_active.is_(True)).order_by(cls.name, cls.id)
        return list(session.scalars(stmt))

    def __repr__(self) -> str:
        return (
            f"<GiftBreakdown(id={self.id}, name='{self.name}', "
            f"total_number={self.total_number}, active={self.is_active})>"
        )


class BreakdownGift(Base):
    """One line of a breakdown: ``quantity`` units of ``gift``."""

    __tablename__ = "breakdown_gifts"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    breakdown_id: Mapped[int] = mapped_column(
        ID_TYPE,
        ForeignKey("gift_breakdowns.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    gift_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("gifts.id", ondelete="RESTRICT"), nullable=False
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    breakdown: Mapped["GiftBreakdown"] = relationship(back_populates="lines")
    gift: Mapped["Gift"] = relationship("Gift")

    __table_args__ = (
        UniqueConstraint("breakdown_id", "gift_id", name="uq_breakdown_gifts_breakdown_gift"),
        CheckConstraint("quantity > 0", name="quantity_positive"),
    )

    def __init__(
        self,
        *,
        quantity: int,
        gift: Optional["Gift"] = None,
        gift_id: Optional[int] = None,
        breakdown: Optional["GiftBreakdown"] = None,
        breakdown_id: Optional[int] = None,
    ) -> None:
        self.quantity = quantity
        if gift is not None:
            self.gift = gift
        if gift_id is not None:
            self.gift_id = gift_id
        if breakdown is not None:
            self.breakdown = breakdown
        if breakdown_id is not None:
            self.breakdown_id = breakdown_id

    @validates("quantity")
    def _check_quantity(self, _key: str, value: int) -> int:
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ValueError("Breakdown line quantity must be a positive integer")
        return value

    def __repr__(self) -> str:
        return (
            f"<BreakdownGift(breakdown_id={self.breakdown_id}, "
            f"gift_id={self.gift_id}, quantity={self.quantity})>"
        )


__all__ = ["GiftBreakdown", "BreakdownGift"]

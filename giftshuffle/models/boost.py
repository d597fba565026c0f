from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, ID_TYPE

if TYPE_CHECKING:
    from .gift import Gift
    from .round import BreakdownRound
    from .session import ShuffleSession


class GiftBoost(Base):
    """Staff override that forces a specific gift to be drawn.

    A boost with ``target_play_round`` set applies to exactly that draw of the
    session. A boost without a target is round-scoped: it applies to every
    draw served by ``round_id`` for as long as the boosted gift has stock.
    """

    __tablename__ = "gift_boosts"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    session_id: Mapped[int] = mapped_column(
        ID_TYPE,
        ForeignKey("shuffle_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    round_id: Mapped[int] = mapped_column(
        ID_TYPE,
        ForeignKey("breakdown_rounds.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    gift_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("gifts.id", ondelete="RESTRICT"), nullable=False
    )
    target_play_round: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
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

    shuffle_session: Mapped["ShuffleSession"] = relationship(back_populates="boosts")
    round: Mapped["BreakdownRound"] = relationship("BreakdownRound")
    gift: Mapped["Gift"] = relationship("Gift", lazy="joined")

    __table_args__ = (
        UniqueConstraint(
            "session_id", "target_play_round", name="uq_gift_boosts_session_play_round"
        ),
        CheckConstraint(
            "target_play_round IS NULL OR target_play_round > 0",
            name="target_play_round_positive",
        ),
    )

    @property
    def is_round_scoped(self) -> bool:
        return self.target_play_round is None

    def __repr__(self) -> str:
        return (
            f"<GiftBoost(session_id={self.session_id}, round_id={self.round_id}, "
            f"gift_id={self.gift_id}, target_play_round={self.target_play_round})>"
        )


__all__ = ["GiftBoost"]

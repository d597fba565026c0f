"""Append-only record of every gift handed out."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    event,
    func,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from .base import Base, ID_TYPE

if TYPE_CHECKING:
    from .gift import Gift
    from .round import BreakdownRound
    from .session import ShuffleSession


class GiftWinner(Base):
    """One successful draw.

    ``play_round_number`` counts draws within the session (1, 2, ...), while
    ``round_id`` points at the breakdown round whose inventory was consumed.
    Rows are never changed or removed once flushed.
    """

    __tablename__ = "gift_winners"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    session_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("shuffle_sessions.id", ondelete="RESTRICT"), nullable=False
    )
    round_id: Mapped[int] = mapped_column(
        ID_TYPE,
        ForeignKey("breakdown_rounds.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    gift_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("gifts.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    winner_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    winner_nic: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    winner_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    play_round_number: Mapped[int] = mapped_column(Integer, nullable=False)
    win_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    boosted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    shuffle_session: Mapped["ShuffleSession"] = relationship("ShuffleSession")
    round: Mapped["BreakdownRound"] = relationship("BreakdownRound")
    gift: Mapped["Gift"] = relationship("Gift", lazy="joined")

    __table_args__ = (
        Index("ix_gift_winners_session_play_round", "session_id", "play_round_number"),
    )

    @classmethod
    def max_play_round(cls, session: Session, shuffle_session_id: int) -> int:
        """Return the highest play round recorded for the session, or 0."""
        value = session.scalar(
            select(func.max(cls.play_round_number)).where(
                cls.session_id == shuffle_session_id
            )
        )
        return int(value or 0)

    def __repr__(self) -> str:
        return (
            f"<GiftWinner(id={self.id}, session_id={self.session_id}, "
            f"gift_id={self.gift_id}, play_round={self.play_round_number}, "
            f"boosted={self.boosted})>"
        )


@event.listens_for(GiftWinner, "before_update")
def _refuse_winner_update(_mapper, _connection, target: GiftWinner) -> None:
    raise ValueError(f"Winner records are immutable (id={target.id})")


@event.listens_for(GiftWinner, "before_delete")
def _refuse_winner_delete(_mapper, _connection, target: GiftWinner) -> None:
    raise ValueError(f"Winner records cannot be deleted (id={target.id})")


__all__ = ["GiftWinner"]

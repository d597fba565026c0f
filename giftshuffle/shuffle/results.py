"""Value objects returned by the shuffle engine and service."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Generic, Optional, TypeVar

from ..db.utils import dt_iso

if TYPE_CHECKING:
    from ..models import (
        BreakdownRound,
        GiftBoost,
        GiftWinner,
        RoundGift,
        ShuffleSession,
    )

T = TypeVar("T")


@dataclass(frozen=True)
class CustomerInfo:
    """Identity captured from the customer display when a session collects it."""

    name: Optional[str] = None
    nic: Optional[str] = None
    phone: Optional[str] = None

    def normalized(self) -> "CustomerInfo":
        """Return a copy with surrounding whitespace stripped and blanks as ``None``."""

        def _clean(value: Optional[str]) -> Optional[str]:
            if value is None:
                return None
            value = value.strip()
            return value or None

        return CustomerInfo(
            name=_clean(self.name), nic=_clean(self.nic), phone=_clean(self.phone)
        )

    @property
    def has_name(self) -> bool:
        return bool(self.name and self.name.strip())


@dataclass(frozen=True)
class GiftSelection:
    """Outcome of the draw engine before inventory is consumed.

    Attributes
    ----------
    round_gift : RoundGift
        Inventory row the draw should consume one unit of.
    boosted : bool
        ``True`` when a staff boost decided the outcome.
    """

    round_gift: "RoundGift"
    boosted: bool


@dataclass(frozen=True)
class DrawResult:
    """Result of a successful draw as reported to callers."""

    gift_id: int
    gift_name: str
    description: Optional[str]
    boosted: bool
    play_round_number: int
    breakdown_round_number: int
    winner_id: int

    @classmethod
    def from_winner(cls, winner: "GiftWinner") -> "DrawResult":
        return cls(
            gift_id=winner.gift_id,
            gift_name=winner.gift.name,
            description=winner.gift.description,
            boosted=winner.boosted,
            play_round_number=winner.play_round_number,
            breakdown_round_number=winner.round.round_number,
            winner_id=winner.id,
        )

    def for_display(self) -> dict[str, Any]:
        """Payload for the customer display; the boost flag is staff-only."""
        return {
            "gift_id": self.gift_id,
            "gift_name": self.gift_name,
            "description": self.description,
            "play_round_number": self.play_round_number,
        }


@dataclass(frozen=True)
class SessionDetails:
    """Staff dashboard view of a session and its current round."""

    shuffle_session: "ShuffleSession"
    current_round: Optional["BreakdownRound"]
    round_gifts: list["RoundGift"]
    boosts: list["GiftBoost"]

    @property
    def total_gifts(self) -> int:
        return sum(row.quantity_available for row in self.round_gifts)

    @property
    def remaining_gifts(self) -> int:
        return sum(row.remaining for row in self.round_gifts)


@dataclass(frozen=True)
class RoundStatistics:
    round_number: int
    status: str
    created_at: Optional[datetime]
    completed_at: Optional[datetime]
    winners_count: int


@dataclass(frozen=True)
class GiftStatistics:
    gift_id: int
    gift_name: str
    winners_count: int
    boosted_count: int


@dataclass(frozen=True)
class SessionStatistics:
    """Aggregated numbers for a session report.

    Attributes
    ----------
    session_id : int
        Session the numbers belong to.
    rounds : list[RoundStatistics]
        One entry per breakdown round, ordered by round number.
    gifts : list[GiftStatistics]
        One entry per gift that was won at least once, most won first.
    total_winners : int
        Number of recorded winners.
    total_boosts : int
        Number of boosts currently configured for the session.
    first_win_time, last_win_time : Optional[datetime]
        Earliest and latest win timestamps, ``None`` before the first draw.
    duration : Optional[str]
        ``HH:MM:SS`` between the first and last win.
    """

    session_id: int
    rounds: list[RoundStatistics] = field(default_factory=list)
    gifts: list[GiftStatistics] = field(default_factory=list)
    total_winners: int = 0
    total_boosts: int = 0
    first_win_time: Optional[datetime] = None
    last_win_time: Optional[datetime] = None
    duration: Optional[str] = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "rounds": [
                {
                    "round_number": r.round_number,
                    "status": r.status,
                    "created_at": dt_iso(r.created_at),
                    "completed_at": dt_iso(r.completed_at),
                    "winners_count": r.winners_count,
                }
                for r in self.rounds
            ],
            "gifts": [
                {
                    "gift_id": g.gift_id,
                    "gift_name": g.gift_name,
                    "winners_count": g.winners_count,
                    "boosted_count": g.boosted_count,
                }
                for g in self.gifts
            ],
            "total_winners": self.total_winners,
            "total_boosts": self.total_boosts,
            "first_win_time": dt_iso(self.first_win_time),
            "last_win_time": dt_iso(self.last_win_time),
            "duration": self.duration,
        }


@dataclass(frozen=True)
class ReadOutcome(Generic[T]):
    """Result of a read-only aggregate that degrades instead of failing.

    When the store cannot be read, ``value`` holds an empty default,
    ``degraded`` is ``True`` and ``error`` carries the underlying exception.
    """

    value: T
    degraded: bool = False
    error: Optional[BaseException] = None


__all__ = [
    "CustomerInfo",
    "DrawResult",
    "GiftSelection",
    "GiftStatistics",
    "ReadOutcome",
    "RoundStatistics",
    "SessionDetails",
    "SessionStatistics",
]

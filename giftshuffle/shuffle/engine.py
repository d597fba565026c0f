"""Draw engine selecting the gift a play round yields."""

from __future__ import annotations

import logging
import random
from typing import Callable, Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import BreakdownRound, GiftBoost, RoundGift
from .boosts import get_boost_for_play_round, get_boost_for_round
from .errors import OutOfStock
from .results import GiftSelection
from .rounds import get_round_gifts

logger = logging.getLogger(__name__)


def build_weighted_pool(round_gifts: Iterable[RoundGift]) -> list[RoundGift]:
    """Expand inventory rows into one pool entry per remaining unit.

    A gift with 9 units left appears 9 times, so a uniform pick over the pool
    selects gifts in proportion to their remaining stock.
    """
    pool: list[RoundGift] = []
    for row in round_gifts:
        pool.extend([row] * row.remaining)
    return pool


def selection_probabilities(round_gifts: Iterable[RoundGift]) -> dict[int, float]:
    """Return ``{gift_id: probability}`` of the unboosted pick.

    Gifts without remaining stock get probability ``0.0``. An empty or
    exhausted round yields all zeros.
    """
    rows = list(round_gifts)
    total = sum(row.remaining for row in rows)
    if total == 0:
        return {row.gift_id: 0.0 for row in rows}
    return {row.gift_id: row.remaining / total for row in rows}


class DrawEngine:
    """Engine that resolves boosts and performs the weighted random pick."""

    def __init__(self, session: Session, rng: Optional[random.Random] = None) -> None:
        """Create a draw engine bound to a SQLAlchemy session.

        Parameters
        ----------
        session : Session
            Active SQLAlchemy session used for inventory and boost lookups.
        rng : Optional[random.Random], default: None
            Source of randomness for unboosted draws. Defaults to
            :class:`random.SystemRandom`; tests pass a seeded
            :class:`random.Random` for reproducible outcomes.
        """
        self._session = session
        self._rng = rng or random.SystemRandom()

    def draw(
        self,
        round: BreakdownRound,
        shuffle_session_id: int,
        play_round_number: int,
    ) -> GiftSelection:
        """Select the gift for ``play_round_number`` from ``round``.

        Nothing is written; the caller consumes the selected unit.

        Notes
        -----
        Selection follows a fixed precedence:

        1. A boost targeting ``play_round_number`` whose gift has stock.
        2. The round-scoped boost of ``round`` whose gift has stock.
        3. A uniform pick over one entry per remaining unit.

        Boosts pointing at exhausted gifts are skipped without error. A boost
        lookup that fails in the database is logged and treated as no boost;
        the inventory read is not guarded and still raises.

        Raises
        ------
        OutOfStock
            If the round has no remaining units.
        """
        round_gifts = get_round_gifts(self._session, round.id)
        by_gift = {row.gift_id: row for row in round_gifts}

        play_round_boost = self._lookup_boost(
            f"play round {play_round_number} of session {shuffle_session_id}",
            get_boost_for_play_round,
            shuffle_session_id,
            play_round_number,
        )
        selected = self._resolve_boost(play_round_boost, by_gift)
        if selected is not None:
            logger.debug(
                f"Play round {play_round_number} of session {shuffle_session_id} "
                f"resolved by play-round boost {play_round_boost.id}"
            )
            return GiftSelection(round_gift=selected, boosted=True)

        round_boost = self._lookup_boost(
            f"round {round.round_number} of session {shuffle_session_id}",
            get_boost_for_round,
            round.id,
        )
        selected = self._resolve_boost(round_boost, by_gift)
        if selected is not None:
            logger.debug(
                f"Play round {play_round_number} of session {shuffle_session_id} "
                f"resolved by round boost {round_boost.id}"
            )
            return GiftSelection(round_gift=selected, boosted=True)

        pool = build_weighted_pool(round_gifts)
        if not pool:
            raise OutOfStock(
                f"Round {round.round_number} of session {shuffle_session_id} "
                "has no remaining gifts"
            )
        return GiftSelection(round_gift=self._rng.choice(pool), boosted=False)

    def _lookup_boost(
        self,
        scope: str,
        lookup: Callable[..., Optional[GiftBoost]],
        *args: int,
    ) -> Optional[GiftBoost]:
        # Savepoint keeps the draw's transaction usable after a failed read.
        try:
            with self._session.begin_nested():
                return lookup(self._session, *args)
        except SQLAlchemyError as exc:
            logger.warning(f"Boost lookup for {scope} failed, drawing without it: {exc}")
            return None

    @staticmethod
    def _resolve_boost(
        boost: Optional[GiftBoost], by_gift: dict[int, RoundGift]
    ) -> Optional[RoundGift]:
        if boost is None:
            return None
        row = by_gift.get(boost.gift_id)
        if row is None or not row.has_stock:
            logger.debug(f"Skipping boost {boost.id}: gift {boost.gift_id} out of stock")
            return None
        return row


__all__ = [
    "DrawEngine",
    "build_weighted_pool",
    "selection_probabilities",
]

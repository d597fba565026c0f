"""Boost registry: staff-chosen outcomes for upcoming draws."""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import BreakdownRound, Gift, GiftBoost, RoundGift, ShuffleSession
from .errors import InvalidArgument, NotFound, SessionClosed

logger = logging.getLogger(__name__)


def set_boost(
    session: Session,
    shuffle_session: ShuffleSession,
    round: BreakdownRound,
    gift: Gift,
    target_play_round: Optional[int] = None,
) -> GiftBoost:
    """Create or replace a boost.

    With ``target_play_round`` the boost decides exactly that draw of the
    session and replaces any earlier boost for the same draw. Without it the
    boost is round-scoped and replaces the round's previous round-scoped boost.

    Parameters
    ----------
    session : Session
        Active SQLAlchemy session.
    shuffle_session : ShuffleSession
        Session the boost belongs to.
    round : BreakdownRound
        Round whose inventory backs the boost; must belong to ``shuffle_session``.
    gift : Gift
        Gift to force. It must still have stock in ``round``.
    target_play_round : Optional[int], default: None
        Play round the boost applies to, or ``None`` for a round-scoped boost.

    Returns
    -------
    GiftBoost
        The inserted or updated boost.

    Raises
    ------
    InvalidArgument
        If the target is not positive, the round belongs to another session,
        or the gift has no remaining stock in the round.
    SessionClosed
        If the session is already completed.
    """
    if target_play_round is not None and (
        isinstance(target_play_round, bool)
        or not isinstance(target_play_round, int)
        or target_play_round <= 0
    ):
        raise InvalidArgument("target_play_round must be a positive integer")
    if not shuffle_session.is_active:
        raise SessionClosed(f"Session {shuffle_session.id} is already completed")
    if round.session_id != shuffle_session.id:
        raise InvalidArgument(
            f"Round {round.id} does not belong to session {shuffle_session.id}"
        )

    inventory = session.scalar(
        select(RoundGift).where(
            RoundGift.round_id == round.id, RoundGift.gift_id == gift.id
        )
    )
    if inventory is None or not inventory.has_stock:
        raise InvalidArgument(
            f"Gift '{gift.name}' has no remaining stock in round {round.round_number}"
        )

    stmt = select(GiftBoost).where(GiftBoost.session_id == shuffle_session.id)
    if target_play_round is not None:
        stmt = stmt.where(GiftBoost.target_play_round == target_play_round)
    else:
        stmt = stmt.where(
            GiftBoost.round_id == round.id, GiftBoost.target_play_round.is_(None)
        )
    boost = session.scalar(stmt.order_by(GiftBoost.id))

    if boost is None:
        boost = GiftBoost(
            session_id=shuffle_session.id,
            round=round,
            gift=gift,
            target_play_round=target_play_round,
        )
        session.add(boost)
    else:
        boost.round = round
        boost.gift = gift
    session.flush()

    logger.debug(
        f"Boost for session {shuffle_session.id}: gift {gift.id} "
        f"target_play_round={target_play_round} round={round.round_number}"
    )
    return boost


def get_boost_for_play_round(
    session: Session, shuffle_session_id: int, play_round_number: int
) -> Optional[GiftBoost]:
    return session.scalar(
        select(GiftBoost).where(
            GiftBoost.session_id == shuffle_session_id,
            GiftBoost.target_play_round == play_round_number,
        )
    )


def get_boost_for_round(session: Session, round_id: int) -> Optional[GiftBoost]:
    """Return the round-scoped boost of a round, if any."""
    return session.scalar(
        select(GiftBoost)
        .where(GiftBoost.round_id == round_id, GiftBoost.target_play_round.is_(None))
        .order_by(GiftBoost.id.desc())
    )


def remove_boost(session: Session, boost_id: int) -> GiftBoost:
    """Delete a boost and return the removed row.

    Raises
    ------
    NotFound
        If no boost with ``boost_id`` exists.
    """
    boost = session.get(GiftBoost, boost_id)
    if boost is None:
        raise NotFound(f"Boost {boost_id} does not exist")
    session.delete(boost)
    session.flush()
    return boost


def list_boosts(session: Session, shuffle_session_id: int) -> list[GiftBoost]:
    """Return the session's boosts by target play round, round-scoped ones last."""
    stmt = (
        select(GiftBoost)
        .where(GiftBoost.session_id == shuffle_session_id)
        .order_by(
            GiftBoost.target_play_round.is_(None),
            GiftBoost.target_play_round,
            GiftBoost.id,
        )
    )
    return list(session.scalars(stmt).unique())


__all__ = [
    "get_boost_for_play_round",
    "get_boost_for_round",
    "list_boosts",
    "remove_boost",
    "set_boost",
]

"""Round management: materializing breakdown templates into playable rounds.

A round is a copy of a breakdown, initially the session's own. Draws consume
the copy; when every unit of the current round is used, the next call to
:func:`get_or_create_next_round` completes it and opens a fresh copy of the
same breakdown with the following round number.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, insert, literal, select, update
from sqlalchemy.orm import Session

from ..models import BreakdownGift, BreakdownRound, Gift, GiftBreakdown, RoundGift, ShuffleSession
from ..models.round import ROUND_STATUS_ACTIVE, ROUND_STATUS_COMPLETED
from .errors import (
    DataIntegrityError,
    InvalidArgument,
    NoGiftsAvailable,
    NotFound,
    RoundAdvanceConflict,
    SessionClosed,
)

logger = logging.getLogger(__name__)


def get_current_round(session: Session, shuffle_session_id: int) -> Optional[BreakdownRound]:
    """Return the active round of a session, or ``None`` before the first round.

    Raises
    ------
    DataIntegrityError
        If more than one round of the session is marked active.
    """
    rows = session.scalars(
        select(BreakdownRound)
        .where(
            BreakdownRound.session_id == shuffle_session_id,
            BreakdownRound.status == ROUND_STATUS_ACTIVE,
        )
        .order_by(BreakdownRound.round_number)
    ).all()
    if len(rows) > 1:
        numbers = ", ".join(str(r.round_number) for r in rows)
        logger.error(
            f"Session {shuffle_session_id} has {len(rows)} active rounds ({numbers})"
        )
        raise DataIntegrityError(
            f"Session {shuffle_session_id} has more than one active round"
        )
    return rows[0] if rows else None


def get_round_gifts(session: Session, round_id: int) -> list[RoundGift]:
    """Return the inventory rows of a round ordered by gift name."""
    stmt = (
        select(RoundGift)
        .join(Gift, Gift.id == RoundGift.gift_id)
        .where(RoundGift.round_id == round_id)
        .order_by(Gift.name, RoundGift.id)
    )
    return list(session.scalars(stmt).unique())


def is_round_complete(session: Session, round_id: int) -> bool:
    """Return ``True`` when the round has inventory and all of it is used.

    A round without any inventory rows is never complete.
    """
    total, remaining = session.execute(
        select(
            func.count(RoundGift.id),
            func.coalesce(
                func.sum(RoundGift.quantity_available - RoundGift.quantity_used), 0
            ),
        ).where(RoundGift.round_id == round_id)
    ).one()
    return total > 0 and remaining == 0


def create_round(
    session: Session,
    shuffle_session: ShuffleSession,
    breakdown: GiftBreakdown,
    round_number: int,
    *,
    expected_current_round_id: Optional[int] = None,
) -> BreakdownRound:
    """Complete the active round and open ``round_number`` from ``breakdown``.

    Parameters
    ----------
    session : Session
        Active SQLAlchemy session. All writes happen in its transaction, so a
        failure in any step leaves no partial round behind once the caller
        rolls back.
    shuffle_session : ShuffleSession
        Session that owns the round.
    breakdown : GiftBreakdown
        Template whose lines are copied into the round's inventory with
        ``quantity_used = 0``. A template without lines yields an empty round.
    round_number : int
        Number of the new round; must be positive and unused in the session.
    expected_current_round_id : Optional[int], default: None
        When given, only that round is completed and only if it is still
        active. This is how concurrent advancers detect that someone else
        already moved the session forward.

    Returns
    -------
    BreakdownRound
        The new active round with its inventory loaded.

    Raises
    ------
    InvalidArgument
        If ``round_number`` is not positive.
    SessionClosed
        If the session is already completed.
    RoundAdvanceConflict
        If ``expected_current_round_id`` is no longer the active round.
    sqlalchemy.exc.IntegrityError
        If ``round_number`` already exists for the session.
    """
    if round_number <= 0:
        raise InvalidArgument("round_number must be positive")
    if shuffle_session.id is None or breakdown.id is None:
        raise InvalidArgument("Session and breakdown must be persisted before creating a round")
    _require_open(shuffle_session)

    now = datetime.now(timezone.utc)
    session_id = shuffle_session.id
    breakdown_id = breakdown.id

    # Bulk statements below bypass the unit of work; push pending state first.
    session.flush()

    complete_stmt = update(BreakdownRound).where(
        BreakdownRound.status == ROUND_STATUS_ACTIVE
    )
    if expected_current_round_id is not None:
        complete_stmt = complete_stmt.where(
            BreakdownRound.id == expected_current_round_id,
            BreakdownRound.session_id == session_id,
        )
    else:
        complete_stmt = complete_stmt.where(BreakdownRound.session_id == session_id)
    result = session.execute(
        complete_stmt.values(status=ROUND_STATUS_COMPLETED, completed_at=now),
        execution_options={"synchronize_session": False},
    )
    if expected_current_round_id is not None and result.rowcount == 0:
        raise RoundAdvanceConflict(
            f"Round {expected_current_round_id} of session {session_id} "
            "was already advanced"
        )
    session.expire_all()

    new_round = BreakdownRound(
        session_id=session_id,
        breakdown_id=breakdown_id,
        round_number=round_number,
        status=ROUND_STATUS_ACTIVE,
        created_at=now,
    )
    session.add(new_round)
    session.flush()

    session.execute(
        insert(RoundGift).from_select(
            ["round_id", "gift_id", "quantity_available", "quantity_used"],
            select(
                literal(new_round.id),
                BreakdownGift.gift_id,
                BreakdownGift.quantity,
                literal(0),
            ).where(BreakdownGift.breakdown_id == breakdown_id),
        )
    )

    shuffle_session.current_round_number = round_number
    session.flush()
    session.expire(new_round, ["gifts"])

    logger.info(
        f"Created round {round_number} for session {session_id} "
        f"from breakdown {breakdown_id} ({len(new_round.gifts)} gifts)"
    )
    return new_round


def _require_open(shuffle_session: ShuffleSession) -> None:
    if not shuffle_session.is_active:
        raise SessionClosed(f"Session {shuffle_session.id} is already completed")


def _breakdown_for(
    session: Session,
    shuffle_session: ShuffleSession,
    current: Optional[BreakdownRound] = None,
) -> GiftBreakdown:
    """Return the template the next round is copied from.

    An exhausted round is refilled from its own breakdown, which may differ
    from the session's when staff opened it with another template.
    """
    breakdown_id = current.breakdown_id if current is not None else shuffle_session.breakdown_id
    breakdown = session.get(GiftBreakdown, breakdown_id)
    if breakdown is None:
        raise NotFound(
            f"Breakdown {breakdown_id} of session {shuffle_session.id} does not exist"
        )
    return breakdown


def _has_inventory(session: Session, breakdown_id: int) -> bool:
    count = session.scalar(
        select(func.count(BreakdownGift.id)).where(
            BreakdownGift.breakdown_id == breakdown_id,
            BreakdownGift.quantity > 0,
        )
    )
    return bool(count)


def _latest_round_number(session: Session, shuffle_session_id: int) -> int:
    value = session.scalar(
        select(func.max(BreakdownRound.round_number)).where(
            BreakdownRound.session_id == shuffle_session_id
        )
    )
    return int(value or 0)


def get_or_create_next_round(
    session: Session, shuffle_session: ShuffleSession
) -> BreakdownRound:
    """Return a playable round for the session, opening one when needed.

    - no round yet: round 1 is created from the session's breakdown;
    - the active round is exhausted: it is completed and the next number is
      created from the exhausted round's breakdown;
    - otherwise the active round is returned unchanged.

    Raises
    ------
    SessionClosed
        If the session is already completed.
    NoGiftsAvailable
        If a round would have to be created from a breakdown without gifts.
    RoundAdvanceConflict
        If a concurrent caller advanced the exhausted round first.
    """
    _require_open(shuffle_session)
    current = get_current_round(session, shuffle_session.id)
    if current is not None and not is_round_complete(session, current.id):
        return current

    breakdown = _breakdown_for(session, shuffle_session, current)
    if not _has_inventory(session, breakdown.id):
        raise NoGiftsAvailable(
            f"Breakdown {breakdown.id} has no gifts to distribute"
        )

    if current is None:
        next_number = _latest_round_number(session, shuffle_session.id) + 1
        logger.debug(f"Session {shuffle_session.id} has no active round; opening {next_number}")
        return create_round(session, shuffle_session, breakdown, next_number)

    logger.debug(
        f"Round {current.round_number} of session {shuffle_session.id} is exhausted"
    )
    return create_round(
        session,
        shuffle_session,
        breakdown,
        current.round_number + 1,
        expected_current_round_id=current.id,
    )


def get_or_create_specific_round(
    session: Session, shuffle_session: ShuffleSession, round_number: int
) -> BreakdownRound:
    """Return round ``round_number`` of the session, creating it if missing.

    Creating the round completes whichever round is currently active.
    """
    if round_number <= 0:
        raise InvalidArgument("round_number must be positive")
    existing = session.scalar(
        select(BreakdownRound).where(
            BreakdownRound.session_id == shuffle_session.id,
            BreakdownRound.round_number == round_number,
        )
    )
    if existing is not None:
        return existing
    breakdown = _breakdown_for(session, shuffle_session)
    return create_round(session, shuffle_session, breakdown, round_number)


__all__ = [
    "create_round",
    "get_current_round",
    "get_or_create_next_round",
    "get_or_create_specific_round",
    "get_round_gifts",
    "is_round_complete",
]

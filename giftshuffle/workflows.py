from __future__ import annotations

import logging
import random
from datetime import datetime, timezone
from typing import Mapping, Optional

from sqlalchemy import case, func, select, update
from sqlalchemy.orm import Session

from .db.utils import as_utc, format_duration
from .models import (
    BreakdownGift,
    BreakdownRound,
    Gift,
    GiftBoost,
    GiftBreakdown,
    GiftWinner,
    RoundGift,
    ShuffleSession,
)
from .models.session import DEFAULT_THEME_KEY
from .shuffle.access_code import DEFAULT_ACCESS_CODE_LENGTH, generate_unique_access_code
from .shuffle.boosts import list_boosts
from .shuffle.engine import DrawEngine
from .shuffle.errors import (
    ConcurrencyConflict,
    DrawFailed,
    InvalidArgument,
    NoGiftsAvailable,
    NotFound,
    OutOfStock,
    SessionClosed,
)
from .shuffle.results import (
    CustomerInfo,
    GiftStatistics,
    RoundStatistics,
    SessionDetails,
    SessionStatistics,
)
from .shuffle.rounds import get_current_round, get_or_create_next_round, get_round_gifts

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_RECENT_WINNERS_LIMIT = 10


def create_breakdown(
    session: Session,
    name: str,
    total_number: int,
    quantities: Mapping[int, int],
    created_by_id: Optional[int] = None,
) -> GiftBreakdown:
    """Persist a breakdown template with one line per gift.

    Parameters
    ----------
    session : Session
        Active SQLAlchemy session.
    name : str
        Label of the template.
    total_number : int
        Declared number of prizes. Must equal the sum of ``quantities``.
    quantities : Mapping[int, int]
        ``{gift_id: quantity}``. Zero quantities are skipped; at least one
        gift must have a positive quantity.
    created_by_id : Optional[int], default: None
        Staff member creating the template.

    Returns
    -------
    GiftBreakdown
        The flushed template with its lines.

    Raises
    ------
    InvalidArgument
        If a quantity is negative, no gift has a positive quantity, or the
        quantities do not add up to ``total_number``.
    NotFound
        If a referenced gift does not exist.
    """
    if not (name or "").strip():
        raise InvalidArgument("Breakdown name must not be empty")
    if isinstance(total_number, bool) or not isinstance(total_number, int) or total_number < 0:
        raise InvalidArgument("total_number must be a non-negative integer")

    lines: dict[int, int] = {}
    for gift_id, quantity in quantities.items():
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
            raise InvalidArgument(f"Quantity for gift {gift_id} must be a non-negative integer")
        if quantity > 0:
            lines[gift_id] = quantity

    if not lines:
        raise InvalidArgument("At least one gift must have a quantity greater than 0")
    allocated = sum(lines.values())
    if allocated != total_number:
        raise InvalidArgument(
            f"Gift quantities add up to {allocated}, expected {total_number}"
        )

    found = set(session.scalars(select(Gift.id).where(Gift.id.in_(list(lines)))))
    missing = sorted(set(lines) - found)
    if missing:
        raise NotFound(f"Gifts do not exist: {missing}")

    breakdown = GiftBreakdown(
        name=name,
        total_number=total_number,
        created_by_id=created_by_id,
        lines=[BreakdownGift(gift_id=gift_id, quantity=qty) for gift_id, qty in lines.items()],
    )
    session.add(breakdown)
    session.flush()
    return breakdown


def set_breakdown_active(session: Session, breakdown_id: int, active: bool) -> GiftBreakdown:
    breakdown = session.get(GiftBreakdown, breakdown_id)
    if breakdown is None:
        raise NotFound(f"Breakdown {breakdown_id} does not exist")
    breakdown.is_active = active
    session.flush()
    return breakdown


def start_session(
    session: Session,
    *,
    event_name: str,
    vehicle_number: str,
    breakdown_id: int,
    theme_key: str = DEFAULT_THEME_KEY,
    collect_customer_info: bool = False,
    created_by_id: Optional[int] = None,
    access_code_length: int = DEFAULT_ACCESS_CODE_LENGTH,
) -> ShuffleSession:
    """Open a new active shuffle session on an active breakdown.

    The first round is not created here; it is opened by the first draw.
    """
    breakdown = session.get(GiftBreakdown, breakdown_id)
    if breakdown is None:
        raise NotFound(f"Breakdown {breakdown_id} does not exist")
    if not breakdown.is_active:
        raise InvalidArgument(f"Breakdown {breakdown_id} is not active")
    if not (event_name or "").strip() or not (vehicle_number or "").strip():
        raise InvalidArgument("event_name and vehicle_number are required")

    shuffle_session = ShuffleSession(
        event_name=event_name,
        vehicle_number=vehicle_number,
        breakdown=breakdown,
        access_code=generate_unique_access_code(session, access_code_length),
        theme_key=theme_key or DEFAULT_THEME_KEY,
        collect_customer_info=collect_customer_info,
        created_by_id=created_by_id,
    )
    session.add(shuffle_session)
    session.flush()
    logger.info(
        f"Started session {shuffle_session.id} ({shuffle_session.event_name}) "
        f"on breakdown {breakdown_id}"
    )
    return shuffle_session


def find_active_session_by_access_code(
    session: Session, access_code: str
) -> Optional[ShuffleSession]:
    if not (access_code or "").strip():
        raise InvalidArgument("access_code must not be empty")
    return ShuffleSession.get_by_access_code(session, access_code)


def get_shuffle_session(session: Session, shuffle_session_id: int) -> ShuffleSession:
    shuffle_session = session.get(ShuffleSession, shuffle_session_id)
    if shuffle_session is None:
        raise NotFound(f"Shuffle session {shuffle_session_id} does not exist")
    return shuffle_session


def complete_session(session: Session, shuffle_session: ShuffleSession) -> ShuffleSession:
    """Mark the session completed and close its active round.

    Raises
    ------
    SessionClosed
        If the session was already completed.
    """
    if not shuffle_session.is_active:
        raise SessionClosed(f"Session {shuffle_session.id} is already completed")

    now = datetime.now(timezone.utc)
    current = get_current_round(session, shuffle_session.id)
    if current is not None:
        current.mark_completed(timestamp=now)
    shuffle_session.mark_completed(timestamp=now)
    session.flush()
    logger.info(f"Completed session {shuffle_session.id}")
    return shuffle_session


def next_play_round_number(session: Session, shuffle_session_id: int) -> int:
    """Return the number the next draw of the session will carry.

    The value is read, not reserved: two concurrent draws may compute the
    same number.
    """
    return GiftWinner.max_play_round(session, shuffle_session_id) + 1


def _consume_unit(session: Session, round_gift: RoundGift) -> None:
    """Use one unit of ``round_gift`` unless another draw took the last one."""
    session.flush()
    result = session.execute(
        update(RoundGift)
        .where(
            RoundGift.id == round_gift.id,
            RoundGift.quantity_used < RoundGift.quantity_available,
        )
        .values(quantity_used=RoundGift.quantity_used + 1),
        execution_options={"synchronize_session": False},
    )
    if result.rowcount != 1:
        raise ConcurrencyConflict(f"Round gift {round_gift.id} was exhausted concurrently")
    session.expire(round_gift, ["quantity_used"])


def record_draw(
    session: Session,
    shuffle_session: ShuffleSession,
    customer: Optional[CustomerInfo] = None,
    *,
    rng: Optional[random.Random] = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> GiftWinner:
    """Draw a gift for the next play round and record the winner.

    Parameters
    ----------
    session : Session
        Active SQLAlchemy session. Inventory consumption and the winner row
        are written in its transaction.
    shuffle_session : ShuffleSession
        Active session the draw belongs to.
    customer : Optional[CustomerInfo], default: None
        Customer identity. Required (with a non-blank name) when the session
        collects customer info; ignored otherwise.
    rng : Optional[random.Random], default: None
        Randomness source forwarded to :class:`DrawEngine`.
    max_attempts : int, default: 3
        How many times a lost inventory race is retried.

    Returns
    -------
    GiftWinner
        The flushed winner row.

    Notes
    -----
    Each attempt:

    1. Ensures a playable round, advancing exhausted rounds.
    2. Computes the next play-round number.
    3. Lets the draw engine select a gift (boosts first).
    4. Consumes one unit with a conditional update. If the update matched
       no row another draw took the last unit; the attempt is repeated with
       fresh reads.

    Raises
    ------
    SessionClosed
        If the session is completed.
    InvalidArgument
        If customer info is required but missing.
    NoGiftsAvailable
        If no gift can be drawn.
    DrawFailed
        If every attempt lost its race.
    """
    if max_attempts < 1:
        raise InvalidArgument("max_attempts must be at least 1")
    if not shuffle_session.is_active:
        raise SessionClosed(f"Session {shuffle_session.id} is already completed")

    if shuffle_session.collect_customer_info:
        info = (customer or CustomerInfo()).normalized()
        if not info.has_name:
            raise InvalidArgument("Customer name is required for this session")
    else:
        info = CustomerInfo()

    session_id = shuffle_session.id
    engine = DrawEngine(session, rng=rng)

    for attempt in range(1, max_attempts + 1):
        try:
            current_round = get_or_create_next_round(session, shuffle_session)
            play_round = next_play_round_number(session, session_id)
            try:
                selection = engine.draw(current_round, session_id, play_round)
            except OutOfStock as exc:
                raise NoGiftsAvailable(str(exc)) from exc
            _consume_unit(session, selection.round_gift)
        except ConcurrencyConflict as exc:
            logger.warning(
                f"Draw attempt {attempt}/{max_attempts} for session {session_id} "
                f"lost a race: {exc}"
            )
            session.expire_all()
            continue

        winner = GiftWinner(
            session_id=session_id,
            round=current_round,
            gift=selection.round_gift.gift,
            winner_name=info.name,
            winner_nic=info.nic,
            winner_phone=info.phone,
            play_round_number=play_round,
            boosted=selection.boosted,
            win_time=datetime.now(timezone.utc),
        )
        session.add(winner)
        session.flush()
        logger.debug(
            f"Session {session_id} play round {play_round}: gift "
            f"{winner.gift_id} from round {current_round.round_number} "
            f"(boosted={selection.boosted})"
        )
        return winner

    raise DrawFailed(
        f"Draw for session {session_id} failed after {max_attempts} attempts",
        attempts=max_attempts,
    )


def recent_winners(
    session: Session,
    shuffle_session_id: int,
    limit: int = DEFAULT_RECENT_WINNERS_LIMIT,
) -> list[GiftWinner]:
    """Return the newest winners of a session first, with their gifts loaded."""
    if limit <= 0:
        return []
    stmt = (
        select(GiftWinner)
        .where(GiftWinner.session_id == shuffle_session_id)
        .order_by(GiftWinner.win_time.desc(), GiftWinner.id.desc())
        .limit(limit)
    )
    return list(session.scalars(stmt).unique())


def latest_winner(session: Session, shuffle_session_id: int) -> Optional[GiftWinner]:
    winners = recent_winners(session, shuffle_session_id, limit=1)
    return winners[0] if winners else None


def session_details(session: Session, shuffle_session_id: int) -> SessionDetails:
    shuffle_session = get_shuffle_session(session, shuffle_session_id)
    current = get_current_round(session, shuffle_session_id)
    round_gifts = get_round_gifts(session, current.id) if current is not None else []
    return SessionDetails(
        shuffle_session=shuffle_session,
        current_round=current,
        round_gifts=round_gifts,
        boosts=list_boosts(session, shuffle_session_id),
    )


def session_statistics(session: Session, shuffle_session_id: int) -> SessionStatistics:
    """Aggregate rounds, per-gift wins and timing for a session report."""
    get_shuffle_session(session, shuffle_session_id)

    round_rows = session.execute(
        select(
            BreakdownRound.round_number,
            BreakdownRound.status,
            BreakdownRound.created_at,
            BreakdownRound.completed_at,
            func.count(GiftWinner.id),
        )
        .outerjoin(GiftWinner, GiftWinner.round_id == BreakdownRound.id)
        .where(BreakdownRound.session_id == shuffle_session_id)
        .group_by(BreakdownRound.id)
        .order_by(BreakdownRound.round_number)
    ).all()
    rounds = [
        RoundStatistics(
            round_number=number,
            status=status,
            created_at=as_utc(created_at),
            completed_at=as_utc(completed_at),
            winners_count=count,
        )
        for number, status, created_at, completed_at, count in round_rows
    ]

    wins = func.count(GiftWinner.id)
    gift_rows = session.execute(
        select(
            Gift.id,
            Gift.name,
            wins,
            func.coalesce(func.sum(case((GiftWinner.boosted.is_(True), 1), else_=0)), 0),
        )
        .join(GiftWinner, GiftWinner.gift_id == Gift.id)
        .where(GiftWinner.session_id == shuffle_session_id)
        .group_by(Gift.id, Gift.name)
        .order_by(wins.desc(), Gift.name)
    ).all()
    gifts = [
        GiftStatistics(
            gift_id=gift_id,
            gift_name=name,
            winners_count=count,
            boosted_count=int(boosted),
        )
        for gift_id, name, count, boosted in gift_rows
    ]

    total_winners, first_win, last_win = session.execute(
        select(
            func.count(GiftWinner.id),
            func.min(GiftWinner.win_time),
            func.max(GiftWinner.win_time),
        ).where(GiftWinner.session_id == shuffle_session_id)
    ).one()
    total_boosts = session.scalar(
        select(func.count(GiftBoost.id)).where(GiftBoost.session_id == shuffle_session_id)
    )

    first_win = as_utc(first_win)
    last_win = as_utc(last_win)
    duration = None
    if first_win is not None and last_win is not None:
        duration = format_duration(last_win - first_win)

    return SessionStatistics(
        session_id=shuffle_session_id,
        rounds=rounds,
        gifts=gifts,
        total_winners=total_winners,
        total_boosts=total_boosts or 0,
        first_win_time=first_win,
        last_win_time=last_win,
        duration=duration,
    )


__all__ = [
    "complete_session",
    "create_breakdown",
    "find_active_session_by_access_code",
    "get_shuffle_session",
    "latest_winner",
    "next_play_round_number",
    "recent_winners",
    "record_draw",
    "session_details",
    "session_statistics",
    "set_breakdown_active",
    "start_session",
]

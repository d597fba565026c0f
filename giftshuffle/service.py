"""Transactional facade used by the staff dashboard and the customer display.

Every public method runs as its own unit of work: it opens a transaction with
``Session.begin()``, calls into :mod:`giftshuffle.workflows` and the
:mod:`giftshuffle.shuffle` engine, and commits or rolls back as a whole.
Identifiers are validated before the database is touched.
"""

from __future__ import annotations

import logging
import random
from typing import Any, Callable, Mapping, Optional, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload, sessionmaker

from . import workflows
from .activity import Actor, ActivitySink, DatabaseActivitySink
from .config import Settings
from .models.session import DEFAULT_THEME_KEY
from .models import (
    BreakdownRound,
    Gift,
    GiftBoost,
    GiftBreakdown,
    GiftWinner,
    RoundGift,
    ShuffleSession,
)
from .shuffle import boosts, rounds
from .shuffle.errors import (
    DrawFailed,
    DrawError,
    GiftShuffleError,
    InvalidArgument,
    NotFound,
    PermissionDenied,
    RoundAdvanceConflict,
    StorageFailure,
)
from .shuffle.results import (
    CustomerInfo,
    DrawResult,
    ReadOutcome,
    SessionDetails,
    SessionStatistics,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _require_id(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidArgument(f"{name} must be a positive integer, got {value!r}")
    return value


class GiftShuffleService:
    """Entry point for every gift shuffle operation."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        settings: Optional[Settings] = None,
        activity_sink: Optional[ActivitySink] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        """Create the service.

        Parameters
        ----------
        session_factory : sessionmaker[Session]
            Factory producing sessions bound to the gift shuffle database.
            It should be configured with ``expire_on_commit=False`` so returned
            ORM objects stay readable after their transaction ends.
        settings : Optional[Settings], default: None
            Runtime settings; read from the environment when omitted.
        activity_sink : Optional[ActivitySink], default: None
            Receives an entry for each successful mutation. Defaults to a
            :class:`DatabaseActivitySink` on ``session_factory``.
        rng : Optional[random.Random], default: None
            Randomness source for unboosted draws.
        """
        self._session_factory = session_factory
        self._settings = settings or Settings.from_env()
        self._activity = activity_sink or DatabaseActivitySink(session_factory)
        self._rng = rng

    # ------------------------------------------------------------------
    # plumbing
    # ------------------------------------------------------------------
    def _run(self, operation: str, work: Callable[[Session], T]) -> T:
        try:
            with self._session_factory.begin() as session:
                return work(session)
        except SQLAlchemyError as exc:
            logger.error(f"{operation} failed: {exc}")
            raise StorageFailure(f"{operation} failed", cause=exc) from exc

    def _run_with_retry(
        self, operation: str, work: Callable[[Session], T]
    ) -> T:
        """Run ``work`` in fresh transactions until it stops losing races."""
        attempts = self._settings.draw_max_attempts
        last_error: Optional[BaseException] = None
        for attempt in range(1, attempts + 1):
            try:
                with self._session_factory.begin() as session:
                    return work(session)
            except (RoundAdvanceConflict, IntegrityError) as exc:
                last_error = exc
                logger.warning(
                    f"{operation} attempt {attempt}/{attempts} conflicted: {exc}"
                )
            except SQLAlchemyError as exc:
                logger.error(f"{operation} failed: {exc}")
                raise StorageFailure(f"{operation} failed", cause=exc) from exc
        raise DrawFailed(
            f"{operation} failed after {attempts} attempts", attempts=attempts
        ) from last_error

    def _read(self, operation: str, work: Callable[[Session], T], default: T) -> ReadOutcome[T]:
        try:
            return ReadOutcome(value=self._run(operation, work))
        except StorageFailure as exc:
            logger.warning(f"{operation} degraded: {exc.cause}")
            return ReadOutcome(value=default, degraded=True, error=exc.cause)

    def _log(
        self,
        actor: Optional[Actor],
        action: str,
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        try:
            self._activity.log_activity(actor, action, details)
        except Exception as exc:
            logger.warning(f"Activity sink failed for '{action}': {exc}")

    @staticmethod
    def _authorize(
        actor: Optional[Actor], shuffle_session: Optional[ShuffleSession] = None
    ) -> Actor:
        if actor is None:
            raise PermissionDenied("A staff actor is required")
        if actor.is_manager:
            return actor
        if (
            shuffle_session is not None
            and actor.staff_id is not None
            and shuffle_session.created_by_id == actor.staff_id
        ):
            return actor
        raise PermissionDenied(
            f"Staff {actor.staff_id} ({actor.role}) may not perform this action"
        )

    @staticmethod
    def _load_round(
        session: Session, round: Optional[BreakdownRound]
    ) -> Optional[BreakdownRound]:
        """Reload ``round`` with its inventory so it is usable once detached.

        ``RoundGift.gift`` is joined-loaded, so each row also carries its gift.
        """
        if round is None:
            return None
        return session.scalars(
            select(BreakdownRound)
            .where(BreakdownRound.id == round.id)
            .options(selectinload(BreakdownRound.gifts))
            .execution_options(populate_existing=True)
        ).one()

    # ------------------------------------------------------------------
    # breakdowns and sessions
    # ------------------------------------------------------------------
    def create_breakdown(
        self,
        actor: Actor,
        name: str,
        total_number: int,
        quantities: Mapping[int, int],
    ) -> GiftBreakdown:
        self._authorize(actor)
        for gift_id in quantities:
            _require_id(gift_id, "gift_id")

        def work(session: Session) -> GiftBreakdown:
            breakdown = workflows.create_breakdown(
                session, name, total_number, quantities, created_by_id=actor.staff_id
            )
            return session.scalars(
                select(GiftBreakdown)
                .where(GiftBreakdown.id == breakdown.id)
                .options(selectinload(GiftBreakdown.lines))
                .execution_options(populate_existing=True)
            ).one()

        breakdown = self._run("create_breakdown", work)
        self._log(
            actor,
            "create_breakdown",
            {"subject_table": "gift_breakdowns", "subject_id": breakdown.id, "name": breakdown.name},
        )
        return breakdown

    def set_breakdown_active(self, actor: Actor, breakdown_id: int, active: bool) -> GiftBreakdown:
        self._authorize(actor)
        _require_id(breakdown_id, "breakdown_id")
        breakdown = self._run(
            "set_breakdown_active",
            lambda session: workflows.set_breakdown_active(session, breakdown_id, active),
        )
        self._log(
            actor,
            "set_breakdown_active",
            {"subject_table": "gift_breakdowns", "subject_id": breakdown_id, "active": active},
        )
        return breakdown

    def start_session(
        self,
        actor: Actor,
        *,
        event_name: str,
        vehicle_number: str,
        breakdown_id: int,
        theme_key: Optional[str] = None,
        collect_customer_info: bool = False,
    ) -> ShuffleSession:
        if actor is None:
            raise PermissionDenied("A staff actor is required")
        _require_id(breakdown_id, "breakdown_id")

        def work(session: Session) -> ShuffleSession:
            return workflows.start_session(
                session,
                event_name=event_name,
                vehicle_number=vehicle_number,
                breakdown_id=breakdown_id,
                theme_key=theme_key or DEFAULT_THEME_KEY,
                collect_customer_info=collect_customer_info,
                created_by_id=actor.staff_id,
                access_code_length=self._settings.access_code_length,
            )

        shuffle_session = self._run("start_session", work)
        self._log(
            actor,
            "start_session",
            {
                "subject_table": "shuffle_sessions",
                "subject_id": shuffle_session.id,
                "event_name": shuffle_session.event_name,
                "vehicle_number": shuffle_session.vehicle_number,
            },
        )
        return shuffle_session

    def complete_session(self, actor: Actor, session_id: int) -> ShuffleSession:
        _require_id(session_id, "session_id")

        def work(session: Session) -> ShuffleSession:
            shuffle_session = workflows.get_shuffle_session(session, session_id)
            self._authorize(actor, shuffle_session)
            return workflows.complete_session(session, shuffle_session)

        shuffle_session = self._run("complete_session", work)
        self._log(
            actor,
            "complete_session",
            {"subject_table": "shuffle_sessions", "subject_id": session_id},
        )
        return shuffle_session

    def find_active_session_by_access_code(self, access_code: str) -> Optional[ShuffleSession]:
        if not isinstance(access_code, str) or not access_code.strip():
            raise InvalidArgument("access_code must be a non-empty string")
        return self._run(
            "find_active_session_by_access_code",
            lambda session: workflows.find_active_session_by_access_code(session, access_code),
        )

    def session_details(self, session_id: int) -> SessionDetails:
        _require_id(session_id, "session_id")
        return self._run(
            "session_details",
            lambda session: workflows.session_details(session, session_id),
        )

    # ------------------------------------------------------------------
    # rounds
    # ------------------------------------------------------------------
    def get_current_round(self, session_id: int) -> Optional[BreakdownRound]:
        _require_id(session_id, "session_id")
        return self._run(
            "get_current_round",
            lambda session: self._load_round(
                session, rounds.get_current_round(session, session_id)
            ),
        )

    def get_round_gifts(self, round_id: int) -> list[RoundGift]:
        _require_id(round_id, "round_id")
        return self._run(
            "get_round_gifts", lambda session: rounds.get_round_gifts(session, round_id)
        )

    def is_round_complete(self, round_id: int) -> bool:
        _require_id(round_id, "round_id")
        return self._run(
            "is_round_complete", lambda session: rounds.is_round_complete(session, round_id)
        )

    def create_round(
        self,
        actor: Actor,
        session_id: int,
        round_number: int,
        breakdown_id: Optional[int] = None,
    ) -> BreakdownRound:
        """Open ``round_number`` for a session, completing the active round.

        ``breakdown_id`` defaults to the session's own breakdown.
        """
        _require_id(session_id, "session_id")
        _require_id(round_number, "round_number")
        if breakdown_id is not None:
            _require_id(breakdown_id, "breakdown_id")

        def work(session: Session) -> BreakdownRound:
            shuffle_session = workflows.get_shuffle_session(session, session_id)
            self._authorize(actor, shuffle_session)
            template_id = (
                breakdown_id if breakdown_id is not None else shuffle_session.breakdown_id
            )
            breakdown = session.get(GiftBreakdown, template_id)
            if breakdown is None:
                raise NotFound(f"Breakdown {template_id} does not exist")
            created = rounds.create_round(session, shuffle_session, breakdown, round_number)
            return self._load_round(session, created)

        created = self._run("create_round", work)
        self._log(
            actor,
            "create_round",
            {
                "subject_table": "breakdown_rounds",
                "subject_id": created.id,
                "session_id": session_id,
                "round_number": round_number,
            },
        )
        return created

    def get_or_create_next_round(self, session_id: int) -> BreakdownRound:
        _require_id(session_id, "session_id")

        def work(session: Session) -> BreakdownRound:
            shuffle_session = workflows.get_shuffle_session(session, session_id)
            return self._load_round(
                session, rounds.get_or_create_next_round(session, shuffle_session)
            )

        return self._run_with_retry("get_or_create_next_round", work)

    # ------------------------------------------------------------------
    # boosts
    # ------------------------------------------------------------------
    def set_boost(
        self,
        actor: Actor,
        session_id: int,
        round_id: int,
        gift_id: int,
        target_play_round: Optional[int] = None,
    ) -> GiftBoost:
        _require_id(session_id, "session_id")
        _require_id(round_id, "round_id")
        _require_id(gift_id, "gift_id")
        if target_play_round is not None:
            _require_id(target_play_round, "target_play_round")

        def work(session: Session) -> GiftBoost:
            shuffle_session = workflows.get_shuffle_session(session, session_id)
            self._authorize(actor, shuffle_session)
            round = session.get(BreakdownRound, round_id)
            if round is None:
                raise NotFound(f"Round {round_id} does not exist")
            gift = session.get(Gift, gift_id)
            if gift is None:
                raise NotFound(f"Gift {gift_id} does not exist")
            return boosts.set_boost(session, shuffle_session, round, gift, target_play_round)

        boost = self._run("set_boost", work)
        self._log(
            actor,
            "set_boost",
            {
                "subject_table": "gift_boosts",
                "subject_id": boost.id,
                "session_id": session_id,
                "gift_id": gift_id,
                "target_play_round": target_play_round,
            },
        )
        return boost

    def remove_boost(self, actor: Actor, boost_id: int) -> None:
        _require_id(boost_id, "boost_id")

        def work(session: Session) -> None:
            boost = session.get(GiftBoost, boost_id)
            if boost is None:
                raise NotFound(f"Boost {boost_id} does not exist")
            self._authorize(actor, workflows.get_shuffle_session(session, boost.session_id))
            boosts.remove_boost(session, boost_id)

        self._run("remove_boost", work)
        self._log(actor, "remove_boost", {"subject_table": "gift_boosts", "subject_id": boost_id})

    def list_boosts(self, session_id: int) -> ReadOutcome[list[GiftBoost]]:
        _require_id(session_id, "session_id")
        return self._read(
            "list_boosts", lambda session: boosts.list_boosts(session, session_id), []
        )

    # ------------------------------------------------------------------
    # draws and reporting
    # ------------------------------------------------------------------
    def draw_gift(
        self, session_id: int, customer: Optional[CustomerInfo] = None
    ) -> DrawResult:
        """Draw a gift for the next play round of an active session.

        Raises
        ------
        InvalidArgument
            For a malformed ``session_id`` or missing required customer info.
        NotFound
            If the session does not exist.
        SessionClosed
            If the session is completed.
        NoGiftsAvailable
            If the session's breakdown has nothing to give out.
        DrawFailed
            If the draw kept losing races with concurrent draws.
        """
        _require_id(session_id, "session_id")

        def work(session: Session) -> DrawResult:
            shuffle_session = workflows.get_shuffle_session(session, session_id)
            winner = workflows.record_draw(
                session,
                shuffle_session,
                customer,
                rng=self._rng,
                max_attempts=self._settings.draw_max_attempts,
            )
            return DrawResult.from_winner(winner)

        try:
            result = self._run_with_retry("draw_gift", work)
        except GiftShuffleError as exc:
            logger.info(f"Draw for session {session_id} refused: {exc}")
            raise
        self._log(
            None,
            "draw_gift",
            {
                "subject_table": "gift_winners",
                "subject_id": result.winner_id,
                "session_id": session_id,
                "gift_id": result.gift_id,
                "play_round_number": result.play_round_number,
                "boosted": result.boosted,
            },
        )
        return result

    def draw_for_display(
        self, session_id: int, customer: Optional[CustomerInfo] = None
    ) -> dict[str, Any]:
        """Draw a gift and shape the outcome for the customer-facing screen.

        A draw that could not be served (no stock, lost races) yields
        ``{"success": False, "message": ...}`` with the error's
        ``customer_message``; other errors propagate as from :meth:`draw_gift`.
        """
        try:
            result = self.draw_gift(session_id, customer)
        except DrawError as exc:
            return {"success": False, "message": exc.customer_message}
        return {"success": True, **result.for_display()}

    def recent_winners(
        self, session_id: int, limit: Optional[int] = None
    ) -> ReadOutcome[list[GiftWinner]]:
        _require_id(session_id, "session_id")
        limit = self._settings.recent_winners_limit if limit is None else limit
        return self._read(
            "recent_winners",
            lambda session: workflows.recent_winners(session, session_id, limit),
            [],
        )

    def latest_winner(self, session_id: int) -> Optional[GiftWinner]:
        _require_id(session_id, "session_id")
        return self._run(
            "latest_winner", lambda session: workflows.latest_winner(session, session_id)
        )

    def get_session_statistics(self, session_id: int) -> ReadOutcome[SessionStatistics]:
        _require_id(session_id, "session_id")
        return self._read(
            "get_session_statistics",
            lambda session: workflows.session_statistics(session, session_id),
            SessionStatistics(session_id=session_id),
        )


__all__ = ["GiftShuffleService"]

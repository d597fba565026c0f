"""Staff actor context and the activity log sink."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .models import ActivityLog
from .models.staff import MANAGING_ROLES, STAFF_ROLES

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Actor:
    """Staff member on whose behalf a mutating operation runs."""

    staff_id: Optional[int]
    role: str

    def __post_init__(self) -> None:
        if self.role not in STAFF_ROLES:
            raise ValueError(f"Unknown staff role '{self.role}'")

    @property
    def is_manager(self) -> bool:
        return self.role in MANAGING_ROLES


class ActivitySink(Protocol):
    def log_activity(
        self,
        actor: Optional[Actor],
        action: str,
        details: Optional[Mapping[str, Any]] = None,
    ) -> None: ...


class NullActivitySink:
    """Sink that drops every entry."""

    def log_activity(
        self,
        actor: Optional[Actor],
        action: str,
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        return None


class DatabaseActivitySink:
    """Write :class:`ActivityLog` rows in their own transaction.

    The entry is committed independently of the operation it describes, and a
    failure to write it is logged and otherwise ignored.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def log_activity(
        self,
        actor: Optional[Actor],
        action: str,
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        payload = dict(details or {})
        entry = ActivityLog(
            actor_id=actor.staff_id if actor is not None else None,
            actor_role=actor.role if actor is not None else None,
            action=action,
            subject_table=payload.pop("subject_table", None),
            subject_id=payload.pop("subject_id", None),
        )
        entry.details = payload
        try:
            with self._session_factory.begin() as session:
                session.add(entry)
        except SQLAlchemyError as exc:
            logger.warning(f"Failed to record activity '{action}': {exc}")


__all__ = ["Actor", "ActivitySink", "DatabaseActivitySink", "NullActivitySink"]

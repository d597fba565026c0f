"""Exceptions raised by the gift shuffle engine and service."""

from __future__ import annotations

from typing import Optional

CUSTOMER_RETRY_MESSAGE = "Unable to process your request right now. Please try again."


class GiftShuffleError(Exception):
    """Base class for every error raised by :mod:`giftshuffle`."""


class InvalidArgument(GiftShuffleError, ValueError):
    """An identifier or argument is malformed; nothing was read or written."""


class NotFound(GiftShuffleError, LookupError):
    """A referenced session, round, gift, breakdown or boost does not exist."""


class PermissionDenied(GiftShuffleError):
    """The acting staff member may not perform the operation."""


class SessionClosed(GiftShuffleError):
    """The shuffle session is already completed."""


class DataIntegrityError(GiftShuffleError):
    """Persisted state violates an invariant, e.g. two active rounds."""


class StorageFailure(GiftShuffleError):
    """The database could not be read or written."""

    def __init__(self, message: str, *, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.cause = cause


class DrawError(GiftShuffleError):
    """Base class for failures of the customer-facing draw.

    The customer display should never show the specific reason; it shows
    :attr:`customer_message` and lets the customer try again.
    """

    customer_message = CUSTOMER_RETRY_MESSAGE


class OutOfStock(DrawError):
    """The round has no remaining units to select from."""


class NoGiftsAvailable(DrawError):
    """No playable round could be found or created for the session."""


class ConcurrencyConflict(DrawError):
    """A guarded write affected no rows because another writer got there first."""


class RoundAdvanceConflict(ConcurrencyConflict):
    """Another writer already completed the round being advanced."""


class DrawFailed(DrawError):
    """The draw kept losing races and gave up after the allowed attempts."""

    def __init__(self, message: str, *, attempts: int) -> None:
        super().__init__(message)
        self.attempts = attempts


__all__ = [
    "CUSTOMER_RETRY_MESSAGE",
    "ConcurrencyConflict",
    "DataIntegrityError",
    "DrawError",
    "DrawFailed",
    "GiftShuffleError",
    "InvalidArgument",
    "NoGiftsAvailable",
    "NotFound",
    "OutOfStock",
    "PermissionDenied",
    "RoundAdvanceConflict",
    "SessionClosed",
    "StorageFailure",
]

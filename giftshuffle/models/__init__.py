from .base import Base

# import models so Alembic/autoloaders can discover mappers
from .staff import StaffUser  # noqa: F401
from .gift import Gift  # noqa: F401
from .breakdown import BreakdownGift, GiftBreakdown  # noqa: F401
from .session import ShuffleSession  # noqa: F401
from .round import BreakdownRound, RoundGift  # noqa: F401
from .boost import GiftBoost  # noqa: F401
from .winner import GiftWinner  # noqa: F401
from .activity_log import ActivityLog  # noqa: F401

__all__ = [
    "Base",
    "StaffUser",
    "Gift",
    "GiftBreakdown",
    "BreakdownGift",
    "ShuffleSession",
    "BreakdownRound",
    "RoundGift",
    "GiftBoost",
    "GiftWinner",
    "ActivityLog",
]

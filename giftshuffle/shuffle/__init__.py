"""Round, boost and draw engine of the gift shuffle."""

from .access_code import generate_access_code, generate_unique_access_code
from .boosts import (
    get_boost_for_play_round,
    get_boost_for_round,
    list_boosts,
    remove_boost,
    set_boost,
)
from .engine import DrawEngine, build_weighted_pool, selection_probabilities
from .errors import (
    ConcurrencyConflict,
    DataIntegrityError,
    DrawError,
    DrawFailed,
    GiftShuffleError,
    InvalidArgument,
    NoGiftsAvailable,
    NotFound,
    OutOfStock,
    PermissionDenied,
    RoundAdvanceConflict,
    SessionClosed,
    StorageFailure,
)
from .results import (
    CustomerInfo,
    DrawResult,
    GiftSelection,
    GiftStatistics,
    ReadOutcome,
    RoundStatistics,
    SessionDetails,
    SessionStatistics,
)
from .rounds import (
    create_round,
    get_current_round,
    get_or_create_next_round,
    get_or_create_specific_round,
    get_round_gifts,
    is_round_complete,
)

__all__ = [
    "ConcurrencyConflict",
    "CustomerInfo",
    "DataIntegrityError",
    "DrawEngine",
    "DrawError",
    "DrawFailed",
    "DrawResult",
    "GiftSelection",
    "GiftShuffleError",
    "GiftStatistics",
    "InvalidArgument",
    "NoGiftsAvailable",
    "NotFound",
    "OutOfStock",
    "PermissionDenied",
    "ReadOutcome",
    "RoundAdvanceConflict",
    "RoundStatistics",
    "SessionClosed",
    "SessionDetails",
    "SessionStatistics",
    "StorageFailure",
    "build_weighted_pool",
    "create_round",
    "generate_access_code",
    "generate_unique_access_code",
    "get_boost_for_play_round",
    "get_boost_for_round",
    "get_current_round",
    "get_or_create_next_round",
    "get_or_create_specific_round",
    "get_round_gifts",
    "is_round_complete",
    "list_boosts",
    "remove_boost",
    "selection_probabilities",
    "set_boost",
]

from .coach import CoachService, get_coach_service
from .ledger import (
    BookingConflict,
    BookingError,
    BookingLedger,
    BookingNotFound,
    ReleaseOutcome,
    ReserveOutcome,
    SessionCancelled,
    SessionFull,
    SessionNotFound,
)
from .materializer import ensure_sessions_for_week
from .service import BookingResult, BookingService, get_booking_service, get_or_create_user

__all__ = [
    "BookingConflict",
    "BookingError",
    "BookingLedger",
    "BookingNotFound",
    "BookingResult",
    "BookingService",
    "CoachService",
    "ReleaseOutcome",
    "ReserveOutcome",
    "SessionCancelled",
    "SessionFull",
    "SessionNotFound",
    "ensure_sessions_for_week",
    "get_booking_service",
    "get_coach_service",
    "get_or_create_user",
]

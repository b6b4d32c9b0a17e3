from __future__ import annotations

import logging
from dataclasses import dataclass

from gym_booking.core import get_settings
from gym_booking.db.models import (
    Booking,
    BookingStatus,
    Session,
    SessionStatus,
    UserProfile,
    booking_id_for,
)
from gym_booking.db.repository import BOOKINGS, SESSIONS, from_snapshot, to_document
from gym_booking.db.store import DocumentStore, Transaction, TransactionAborted, run_transaction

logger = logging.getLogger(__name__)


class BookingError(Exception):
    """Base class for rejected reservations and cancellations."""

    default_message = "Booking failed"

    def __init__(self, message: str | None = None, *, session_id: str | None = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.session_id = session_id


class SessionNotFound(BookingError):
    default_message = "Session not found"


class SessionCancelled(BookingError):
    default_message = "This session has been cancelled"


class SessionFull(BookingError):
    default_message = "This session is full"


class BookingNotFound(BookingError):
    default_message = "Booking not found"


class BookingConflict(BookingError):
    default_message = "Too many people are booking right now, please try again"


@dataclass(frozen=True)
class ReserveOutcome:
    booking: Booking
    # False when the member already held a spot and nothing was written
    created: bool


@dataclass(frozen=True)
class ReleaseOutcome:
    booking: Booking
    # Read in the same transaction as the decrement
    was_at_capacity: bool
    # False when the booking was already cancelled and nothing changed
    released: bool
    booking_count: int


class BookingLedger:
    """
    Capacity-safe reservation and cancellation of session spots.

    Each operation is one optimistic transaction over the session and the
    booking document: the booking write and the `booking_count` change
    commit together or not at all, and a commit only succeeds if neither
    document changed since it was read. Conflicts are retried from fresh
    reads; preconditions (cancelled, full) are evaluated on every attempt,
    so a request that keeps losing to other bookings ends as soon as the
    session fills up rather than when the retry budget runs out.
    """

    def __init__(
        self,
        store: DocumentStore,
        *,
        max_attempts: int | None = None,
        timeout: float | None = None,
    ) -> None:
        settings = get_settings()
        self.store = store
        self.max_attempts = max_attempts or settings.transaction_max_attempts
        self.timeout = timeout or settings.transaction_timeout

    async def reserve(self, session_id: str, member: UserProfile) -> Booking:
        return (await self.reserve_with_outcome(session_id, member)).booking

    async def reserve_with_outcome(self, session_id: str, member: UserProfile) -> ReserveOutcome:
        booking_id = booking_id_for(member.id, session_id)

        async def reserve_in(tx: Transaction) -> ReserveOutcome:
            session_snap = await tx.get(SESSIONS, session_id)
            if not session_snap.exists:
                raise SessionNotFound(session_id=session_id)
            booking_snap = await tx.get(BOOKINGS, booking_id)

            session = from_snapshot(Session, session_snap)
            if session.status == SessionStatus.CANCELLED:
                raise SessionCancelled(session_id=session_id)

            if booking_snap.exists and booking_snap.data.get("status") == BookingStatus.CONFIRMED.value:
                # Already holding a spot, nothing to write
                return ReserveOutcome(from_snapshot(Booking, booking_snap), created=False)

            if session.booking_count >= session.max_capacity:
                raise SessionFull(session_id=session_id)

            booking = Booking(
                id=booking_id,
                user_id=member.id,
                user_name=member.display_name,
                session_id=session.id,
                session_date=session.date,
                session_start_time=session.start_time,
                session_end_time=session.end_time,
                session_location=session.location,
                status=BookingStatus.CONFIRMED,
                checked_in=False,
            )
            tx.set(BOOKINGS, booking_id, to_document(booking))
            tx.update(SESSIONS, session_id, {"booking_count": session.booking_count + 1})
            return ReserveOutcome(booking, created=True)

        try:
            outcome = await run_transaction(
                self.store, reserve_in, max_attempts=self.max_attempts, timeout=self.timeout
            )
        except TransactionAborted as exc:
            logger.warning("Reservation of %s by %s aborted: %s", session_id, member.id, exc)
            raise BookingConflict(session_id=session_id) from exc

        if outcome.created:
            logger.info("Reserved %s for %s", session_id, member.id)
        return outcome

    async def release(self, booking: Booking) -> ReleaseOutcome:
        session_id = booking.session_id

        async def release_in(tx: Transaction) -> ReleaseOutcome:
            session_snap = await tx.get(SESSIONS, session_id)
            if not session_snap.exists:
                raise SessionNotFound(session_id=session_id)
            booking_snap = await tx.get(BOOKINGS, booking.id)

            session = from_snapshot(Session, session_snap)
            current = from_snapshot(Booking, booking_snap) if booking_snap.exists else booking

            if current.status != BookingStatus.CONFIRMED or not booking_snap.exists:
                return ReleaseOutcome(current, False, False, session.booking_count)

            cancelled = current.model_copy(update={"status": BookingStatus.CANCELLED})
            tx.update(BOOKINGS, booking.id, {"status": BookingStatus.CANCELLED.value})

            if session.status == SessionStatus.CANCELLED:
                # Counter is frozen once the session is cancelled
                return ReleaseOutcome(cancelled, False, True, session.booking_count)

            was_at_capacity = session.booking_count >= session.max_capacity
            new_count = max(0, session.booking_count - 1)
            tx.update(SESSIONS, session_id, {"booking_count": new_count})
            return ReleaseOutcome(cancelled, was_at_capacity, True, new_count)

        try:
            outcome = await run_transaction(
                self.store, release_in, max_attempts=self.max_attempts, timeout=self.timeout
            )
        except TransactionAborted as exc:
            logger.warning("Release of %s aborted: %s", booking.id, exc)
            raise BookingConflict(session_id=session_id) from exc

        if outcome.released:
            logger.info(
                "Released %s (count now %s, was at capacity: %s)",
                booking.id,
                outcome.booking_count,
                outcome.was_at_capacity,
            )
        return outcome

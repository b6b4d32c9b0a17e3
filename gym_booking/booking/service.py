from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Coroutine

from gym_booking.booking.ledger import BookingError, BookingLedger, BookingNotFound, ReleaseOutcome
from gym_booking.booking.materializer import ensure_sessions_for_week
from gym_booking.core.dates import format_day, get_week_start
from gym_booking.db.models import (
    BROADCAST_USER_ID,
    Booking,
    NotificationType,
    Session,
    UserProfile,
    UserRole,
    user_id_for_telegram,
)
from gym_booking.db.repository import GymRepository
from gym_booking.db.store import DocumentStore, StoreError
from gym_booking.notifications.feed import NotificationFeed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookingResult:
    ok: bool
    message: str
    booking: Booking | None = None
    outcome: ReleaseOutcome | None = None


class BookingService:
    """
    Member-facing booking operations.

    This is the boundary where ledger errors become user-visible messages.
    Notifications are written afterwards on background tasks; their failure
    is logged and never changes the reported outcome.
    """

    def __init__(
        self,
        store: DocumentStore,
        ledger: BookingLedger | None = None,
        feed: NotificationFeed | None = None,
    ) -> None:
        self.store = store
        self.repo = GymRepository(store)
        self.ledger = ledger or BookingLedger(store)
        self.feed = feed or NotificationFeed(store)
        self._background: set[asyncio.Task[None]] = set()

    async def book(self, session_id: str, member: UserProfile) -> BookingResult:
        try:
            outcome = await self.ledger.reserve_with_outcome(session_id, member)
        except BookingError as exc:
            return BookingResult(False, exc.message)
        except StoreError as exc:
            logger.exception("Storage error while booking %s: %s", session_id, exc)
            return BookingResult(False, "Booking failed, please try again later")

        booking = outcome.booking
        if not outcome.created:
            return BookingResult(True, "You already booked this session", booking=booking)

        self._spawn(
            self.feed.create(
                user_id=member.id,
                type=NotificationType.BOOKING_CONFIRMED,
                title="Booking confirmed",
                message=(
                    f"Your {booking.session_start_time} session on "
                    f"{format_day(booking.session_date)} is booked!"
                ),
                related_session_id=booking.session_id,
            )
        )
        return BookingResult(True, "Session booked!", booking=booking)

    async def cancel(self, booking_id: str, member: UserProfile) -> BookingResult:
        try:
            booking = await self.repo.get_booking(booking_id)
            if booking is None:
                raise BookingNotFound()
            if booking.user_id != member.id:
                return BookingResult(False, "You can only cancel your own bookings")
            outcome = await self.ledger.release(booking)
        except BookingError as exc:
            return BookingResult(False, exc.message)
        except StoreError as exc:
            logger.exception("Storage error while cancelling %s: %s", booking_id, exc)
            return BookingResult(False, "Cancellation failed, please try again later")

        if not outcome.released:
            return BookingResult(True, "Booking was already cancelled", booking=outcome.booking, outcome=outcome)

        if outcome.was_at_capacity:
            self._spawn(
                self.feed.create(
                    user_id=BROADCAST_USER_ID,
                    type=NotificationType.SPOT_AVAILABLE,
                    title="Spot available",
                    message=(
                        f"A spot opened up for the {booking.session_start_time} session on "
                        f"{format_day(booking.session_date)}!"
                    ),
                    related_session_id=booking.session_id,
                )
            )
        return BookingResult(True, "Booking cancelled", booking=outcome.booking, outcome=outcome)

    async def week_schedule(self, week_start: date | None = None) -> list[Session]:
        week_start = get_week_start(week_start)
        slots = await self.repo.list_slots()
        await ensure_sessions_for_week(self.store, slots, week_start)
        return await self.repo.list_sessions_between(week_start, week_start + timedelta(days=6))

    async def upcoming_bookings(self, member: UserProfile, today: date | None = None) -> list[Booking]:
        return await self.repo.list_upcoming_bookings(member.id, today or date.today())

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.create_task(self._side_effect(coro))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _side_effect(self, coro: Coroutine[Any, Any, Any]) -> None:
        try:
            await coro
        except Exception as exc:  # noqa: BLE001
            logger.error("Post-booking notification failed: %s", exc)

    async def drain(self) -> None:
        """Wait for pending post-booking notifications."""
        while self._background:
            await asyncio.gather(*list(self._background))


async def get_or_create_user(
    store: DocumentStore,
    telegram_user_id: int,
    display_name: str,
) -> tuple[UserProfile, bool]:
    """
    Resolve the profile of a Telegram user, creating it on first contact.

    The very first registered user becomes the coach.
    Returns (user, is_new).
    """

    repo = GymRepository(store)
    user_id = user_id_for_telegram(telegram_user_id)
    existing = await repo.get_user(user_id)
    if existing is not None:
        return existing, False

    role = UserRole.MEMBER if await repo.has_any_user() else UserRole.COACH
    user = UserProfile(
        id=user_id,
        telegram_user_id=telegram_user_id,
        display_name=display_name or "User",
        role=role,
    )
    if not await repo.create_user(user):
        # Someone registered the same id in between
        existing = await repo.get_user(user_id)
        if existing is not None:
            return existing, False
    logger.info("Registered %s as %s", user_id, role.value)
    return user, True


_booking_service: BookingService | None = None


def get_booking_service() -> BookingService:
    """
    Lazy singleton for BookingService bound to the configured store.

    Keeping one instance alive also keeps its background notification
    tasks referenced until they finish.
    """

    global _booking_service
    if _booking_service is None:
        from gym_booking.db import get_store

        _booking_service = BookingService(get_store())
    return _booking_service

from __future__ import annotations

import logging
import uuid

from gym_booking.booking.ledger import BookingNotFound, SessionNotFound
from gym_booking.core import Settings, get_settings
from gym_booking.core.dates import format_day
from gym_booking.core.validation import validate_capacity, validate_day_of_week, validate_time_range
from gym_booking.db.models import (
    BROADCAST_USER_ID,
    Announcement,
    Booking,
    NotificationType,
    Session,
    SessionStatus,
    Slot,
    UserProfile,
    UserRole,
)
from gym_booking.db.repository import (
    ANNOUNCEMENTS,
    BOOKINGS,
    CURRENT_ANNOUNCEMENT_ID,
    SESSIONS,
    SLOTS,
    GymRepository,
    to_document,
)
from gym_booking.db.store import DocumentStore, StoreError
from gym_booking.notifications.feed import NotificationFeed

logger = logging.getLogger(__name__)


class CoachService:
    """
    Coach dashboard operations.

    Session status and time edits are plain field writes; they never touch
    `booking_count`, which only the booking ledger changes.
    """

    def __init__(self, store: DocumentStore, settings: Settings | None = None) -> None:
        self.store = store
        self.settings = settings or get_settings()
        self.repo = GymRepository(store)
        self.feed = NotificationFeed(store)

    # Slots

    async def list_slots(self) -> list[Slot]:
        return await self.repo.list_slots()

    async def create_slot(
        self,
        *,
        day_of_week: int,
        start_time: str,
        end_time: str,
        max_capacity: int,
        location: str | None = None,
    ) -> Slot:
        start, end = validate_time_range(start_time, end_time)
        slot = Slot(
            id=uuid.uuid4().hex[:12],
            day_of_week=validate_day_of_week(day_of_week),
            start_time=start,
            end_time=end,
            location=location or self.settings.default_location,
            max_capacity=validate_capacity(max_capacity),
            active=True,
        )
        await self.store.create(SLOTS, slot.id, to_document(slot))
        logger.info("Created slot %s", slot.id)
        return slot

    async def update_slot(
        self,
        slot_id: str,
        *,
        day_of_week: int,
        start_time: str,
        end_time: str,
        max_capacity: int,
    ) -> Slot:
        """Edit a slot; already materialized sessions keep their values."""
        slot = await self.repo.get_slot(slot_id)
        if slot is None:
            raise StoreError(f"Slot {slot_id} not found", status_code=404)
        start, end = validate_time_range(start_time, end_time)
        patch = {
            "day_of_week": validate_day_of_week(day_of_week),
            "start_time": start,
            "end_time": end,
            "max_capacity": validate_capacity(max_capacity),
        }
        await self.store.update(SLOTS, slot_id, patch)
        return slot.model_copy(update=patch)

    async def set_slot_active(self, slot_id: str, active: bool) -> None:
        await self.store.update(SLOTS, slot_id, {"active": active})

    # Sessions

    async def _require_session(self, session_id: str) -> Session:
        session = await self.repo.get_session(session_id)
        if session is None:
            raise SessionNotFound(session_id=session_id)
        return session

    async def cancel_session(self, session_id: str, note: str | None = None) -> int:
        """
        Cancel a session and tell everyone booked into it.

        Returns the number of members notified.
        """

        session = await self._require_session(session_id)
        if session.status == SessionStatus.CANCELLED:
            return 0

        note = (note or "").strip() or None
        await self.store.update(
            SESSIONS,
            session_id,
            {"status": SessionStatus.CANCELLED.value, "cancel_note": note},
        )

        bookings = await self.repo.list_confirmed_bookings(session_id)
        suffix = f" Note: {note}" if note else ""
        for booking in bookings:
            await self.feed.create(
                user_id=booking.user_id,
                type=NotificationType.SESSION_CANCELLED,
                title="Session Cancelled",
                message=(
                    f"The {session.start_time} session on {format_day(session.date)} "
                    f"has been cancelled.{suffix}"
                ),
                related_session_id=session_id,
            )
        logger.info("Session %s cancelled, %s member(s) notified", session_id, len(bookings))
        return len(bookings)

    async def update_session_time(self, session_id: str, start_time: str, end_time: str) -> Session:
        session = await self._require_session(session_id)
        start, end = validate_time_range(start_time, end_time)
        await self.store.update(SESSIONS, session_id, {"start_time": start, "end_time": end})

        for booking in await self.repo.list_confirmed_bookings(session_id):
            await self.feed.create(
                user_id=booking.user_id,
                type=NotificationType.SESSION_TIME_CHANGED,
                title="Session Time Changed",
                message=f"The session on {format_day(session.date)} has been moved to {start}-{end}.",
                related_session_id=session_id,
            )
        return session.model_copy(update={"start_time": start, "end_time": end})

    async def session_roster(self, session_id: str) -> list[Booking]:
        return await self.repo.list_confirmed_bookings(session_id)

    async def toggle_check_in(self, booking_id: str) -> Booking:
        booking = await self.repo.get_booking(booking_id)
        if booking is None:
            raise BookingNotFound()
        checked_in = not booking.checked_in
        await self.store.update(BOOKINGS, booking_id, {"checked_in": checked_in})
        return booking.model_copy(update={"checked_in": checked_in})

    # Announcements

    async def current_announcement(self) -> Announcement | None:
        return await self.repo.get_announcement()

    async def post_announcement(self, coach: UserProfile, text: str) -> Announcement:
        message = text.strip()
        if not message:
            raise ValueError("Announcement text is empty")
        announcement = Announcement(
            message=message,
            posted_by=coach.display_name,
            posted_by_uid=coach.id,
        )
        await self.store.set(ANNOUNCEMENTS, CURRENT_ANNOUNCEMENT_ID, to_document(announcement))
        await self.feed.create(
            user_id=BROADCAST_USER_ID,
            type=NotificationType.ANNOUNCEMENT,
            title="New Announcement",
            message=message,
        )
        return announcement

    async def clear_announcement(self) -> None:
        await self.store.set(ANNOUNCEMENTS, CURRENT_ANNOUNCEMENT_ID, {})

    # Members

    async def list_members(self) -> list[UserProfile]:
        return await self.repo.list_users(UserRole.MEMBER)


_coach_service: CoachService | None = None


def get_coach_service() -> CoachService:
    global _coach_service
    if _coach_service is None:
        from gym_booking.db import get_store

        _coach_service = CoachService(get_store())
    return _coach_service

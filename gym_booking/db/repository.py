from __future__ import annotations

from datetime import date
from typing import Any, TypeVar

from pydantic import BaseModel

from gym_booking.db.models import (
    BROADCAST_USER_ID,
    Announcement,
    Booking,
    BookingStatus,
    Notification,
    Session,
    SessionStatus,
    Slot,
    UserProfile,
    UserRole,
)
from gym_booking.db.store import DocumentSnapshot, DocumentStore

ModelT = TypeVar("ModelT", bound=BaseModel)

USERS = "users"
SLOTS = "slots"
SESSIONS = "sessions"
BOOKINGS = "bookings"
NOTIFICATIONS = "notifications"
ANNOUNCEMENTS = "announcements"

CURRENT_ANNOUNCEMENT_ID = "current"


def to_document(model: BaseModel) -> dict[str, Any]:
    """Serialize a model for storage; the id lives in the document key."""
    return model.model_dump(mode="json", exclude={"id"})


def from_snapshot(model: type[ModelT], snapshot: DocumentSnapshot) -> ModelT:
    if snapshot.data is None:
        raise ValueError(f"Document {snapshot.collection}/{snapshot.id} does not exist")
    return model.model_validate({**snapshot.data, "id": snapshot.id})


class GymRepository:
    """
    Typed reads and simple writes for the gym collections.

    Anything that has to keep session counters consistent goes through
    the booking ledger instead.
    """

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    # Users

    async def get_user(self, user_id: str) -> UserProfile | None:
        snapshot = await self.store.get(USERS, user_id)
        if not snapshot.exists:
            return None
        return from_snapshot(UserProfile, snapshot)

    async def list_users(self, role: UserRole | None = None) -> list[UserProfile]:
        filters = [("role", "==", role.value)] if role is not None else []
        snapshots = await self.store.query(USERS, filters, order_by="display_name")
        return [from_snapshot(UserProfile, s) for s in snapshots]

    async def create_user(self, user: UserProfile) -> bool:
        return await self.store.create(USERS, user.id, to_document(user))

    async def has_any_user(self) -> bool:
        return bool(await self.store.query(USERS, limit=1))

    # Slots

    async def get_slot(self, slot_id: str) -> Slot | None:
        snapshot = await self.store.get(SLOTS, slot_id)
        if not snapshot.exists:
            return None
        return from_snapshot(Slot, snapshot)

    async def list_slots(self) -> list[Slot]:
        slots = [from_snapshot(Slot, s) for s in await self.store.query(SLOTS)]
        return sorted(slots, key=lambda s: (s.day_of_week, s.start_time))

    # Sessions

    async def get_session(self, session_id: str) -> Session | None:
        snapshot = await self.store.get(SESSIONS, session_id)
        if not snapshot.exists:
            return None
        return from_snapshot(Session, snapshot)

    async def list_sessions_between(self, start: date, end: date) -> list[Session]:
        snapshots = await self.store.query(
            SESSIONS,
            [("date", ">=", start.isoformat()), ("date", "<=", end.isoformat())],
        )
        sessions = [from_snapshot(Session, s) for s in snapshots]
        return sorted(sessions, key=lambda s: (s.date, s.start_time))

    async def list_scheduled_sessions_on(self, day: date) -> list[Session]:
        snapshots = await self.store.query(
            SESSIONS,
            [("date", "==", day.isoformat()), ("status", "==", SessionStatus.SCHEDULED.value)],
        )
        return [from_snapshot(Session, s) for s in snapshots]

    # Bookings

    async def get_booking(self, booking_id: str) -> Booking | None:
        snapshot = await self.store.get(BOOKINGS, booking_id)
        if not snapshot.exists:
            return None
        return from_snapshot(Booking, snapshot)

    async def list_confirmed_bookings(self, session_id: str) -> list[Booking]:
        snapshots = await self.store.query(
            BOOKINGS,
            [("session_id", "==", session_id), ("status", "==", BookingStatus.CONFIRMED.value)],
            order_by="created_at",
        )
        return [from_snapshot(Booking, s) for s in snapshots]

    async def list_upcoming_bookings(self, user_id: str, today: date) -> list[Booking]:
        snapshots = await self.store.query(
            BOOKINGS,
            [
                ("user_id", "==", user_id),
                ("status", "==", BookingStatus.CONFIRMED.value),
                ("session_date", ">=", today.isoformat()),
            ],
            order_by="session_date",
        )
        bookings = [from_snapshot(Booking, s) for s in snapshots]
        return sorted(bookings, key=lambda b: (b.session_date, b.session_start_time))

    # Notifications

    async def get_notification(self, notification_id: str) -> Notification | None:
        snapshot = await self.store.get(NOTIFICATIONS, notification_id)
        if not snapshot.exists:
            return None
        return from_snapshot(Notification, snapshot)

    async def list_notifications(self, user_id: str, limit: int = 20) -> list[Notification]:
        snapshots = await self.store.query(
            NOTIFICATIONS,
            [("user_id", "in", [user_id, BROADCAST_USER_ID])],
            order_by="created_at",
            descending=True,
            limit=limit,
        )
        return [from_snapshot(Notification, s) for s in snapshots]

    # Announcements

    async def get_announcement(self) -> Announcement | None:
        snapshot = await self.store.get(ANNOUNCEMENTS, CURRENT_ANNOUNCEMENT_ID)
        if not snapshot.exists or not snapshot.data.get("message"):
            return None
        return Announcement.model_validate(snapshot.data)

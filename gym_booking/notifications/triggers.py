from __future__ import annotations

import logging
from datetime import date
from typing import Callable

from gym_booking.db.models import BookingStatus, NotificationType, SessionStatus, UserProfile, UserRole
from gym_booking.db.repository import ANNOUNCEMENTS, BOOKINGS, SESSIONS, GymRepository
from gym_booking.db.store import DocumentChange, DocumentStore
from gym_booking.notifications.feed import NotificationFeed
from gym_booking.notifications.push import PushReport, PushSender

logger = logging.getLogger(__name__)


class NotificationTriggers:
    """
    Background fan-out reacting to committed document changes.

    Runs strictly after the ledger has committed and on its own tasks:
    whatever happens here never changes a booking outcome.
    """

    def __init__(self, store: DocumentStore, push: PushSender | None = None) -> None:
        self.store = store
        self.repo = GymRepository(store)
        self.feed = NotificationFeed(store)
        self.push = push or PushSender(store)
        self._unsubscribe: list[Callable[[], None]] = []

    def register(self) -> None:
        if self._unsubscribe:
            return
        self._unsubscribe = [
            self.store.changes.subscribe(SESSIONS, self.on_session_change),
            self.store.changes.subscribe(BOOKINGS, self.on_booking_change),
            self.store.changes.subscribe(ANNOUNCEMENTS, self.on_announcement_change),
        ]
        logger.info("Notification triggers registered")

    def unregister(self) -> None:
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe = []

    async def _users(self, user_ids: list[str]) -> list[UserProfile]:
        users = []
        for user_id in dict.fromkeys(user_ids):
            user = await self.repo.get_user(user_id)
            if user is not None:
                users.append(user)
        return users

    async def on_session_change(self, change: DocumentChange) -> None:
        before, after = change.before, change.after
        if not before or not after:
            return
        if before.get("status") == SessionStatus.CANCELLED.value:
            return
        if after.get("status") != SessionStatus.CANCELLED.value:
            return

        bookings = await self.repo.list_confirmed_bookings(change.id)
        if not bookings:
            return

        users = await self._users([b.user_id for b in bookings])
        note = f" Note: {after['cancel_note']}" if after.get("cancel_note") else ""
        await self.push.send(
            users,
            "Session Cancelled",
            f"The {after.get('start_time', '')} session on {after.get('date', '')} has been cancelled.{note}",
        )

    async def on_booking_change(self, change: DocumentChange) -> None:
        after = change.after
        if not after:
            return
        before_status = (change.before or {}).get("status")
        after_status = after.get("status")

        user_name = after.get("user_name") or "A member"
        session_date = after.get("session_date", "")
        start_time = after.get("session_start_time", "")

        if after_status == BookingStatus.CONFIRMED.value and before_status != BookingStatus.CONFIRMED.value:
            await self._notify_coaches(
                NotificationType.BOOKING_CONFIRMED,
                "New Booking",
                f"{user_name} booked the {start_time} session on {session_date}.",
                after.get("session_id"),
            )
        elif before_status == BookingStatus.CONFIRMED.value and after_status == BookingStatus.CANCELLED.value:
            await self._notify_coaches(
                NotificationType.BOOKING_CANCELLED,
                "Booking Cancelled",
                f"{user_name} cancelled their {start_time} session on {session_date}.",
                after.get("session_id"),
            )

    async def _notify_coaches(
        self,
        notification_type: NotificationType,
        title: str,
        message: str,
        session_id: str | None,
    ) -> None:
        coaches = await self.repo.list_users(UserRole.COACH)
        for coach in coaches:
            await self.feed.create(
                user_id=coach.id,
                type=notification_type,
                title=title,
                message=message,
                related_session_id=session_id,
            )
        await self.push.send(coaches, title, message)

    async def on_announcement_change(self, change: DocumentChange) -> None:
        after = change.after
        if not after or not after.get("message"):
            return
        if change.before and change.before.get("message") == after["message"]:
            return

        poster = after.get("posted_by_uid") or ""
        users = [u for u in await self.repo.list_users() if u.id != poster and u.notifications_enabled]
        await self.push.send(users, "New Announcement", after["message"])

    async def send_daily_reminders(self, today: date | None = None) -> PushReport:
        """
        Remind everyone booked into a session taking place today.

        Writes a `reminder` notification per booking and pushes it.
        """

        today = today or date.today()
        report = PushReport()
        for session in await self.repo.list_scheduled_sessions_on(today):
            message = f"Your {session.start_time} session is today!"
            for booking in await self.repo.list_confirmed_bookings(session.id):
                await self.feed.create(
                    user_id=booking.user_id,
                    type=NotificationType.REMINDER,
                    title="Session Today",
                    message=message,
                    related_session_id=session.id,
                )
                user = await self.repo.get_user(booking.user_id)
                if user is not None:
                    report += await self.push.send([user], "Session Today", message)

        logger.info("Daily reminders for %s done (%s pushed)", today.isoformat(), report.success)
        return report

from __future__ import annotations

import uuid

from gym_booking.db.models import BROADCAST_USER_ID, Notification, NotificationType, UserProfile
from gym_booking.db.repository import NOTIFICATIONS, GymRepository, to_document
from gym_booking.db.store import DocumentStore


class NotificationFeed:
    """
    In-app notification documents.

    Notifications are addressed to one user id or to "all"; only the
    reading user ever flips `read`.
    """

    def __init__(self, store: DocumentStore) -> None:
        self.store = store
        self.repo = GymRepository(store)

    async def create(
        self,
        *,
        user_id: str,
        type: NotificationType,
        title: str,
        message: str,
        related_session_id: str | None = None,
    ) -> Notification:
        notification = Notification(
            id=uuid.uuid4().hex,
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            related_session_id=related_session_id,
        )
        await self.store.set(NOTIFICATIONS, notification.id, to_document(notification))
        return notification

    async def list_for_user(self, user: UserProfile, limit: int = 20) -> list[Notification]:
        items = await self.repo.list_notifications(user.id, limit=limit)
        if user.is_coach:
            # The coach posted the announcements themselves
            items = [n for n in items if n.type != NotificationType.ANNOUNCEMENT]
        return items

    async def unread_count(self, user: UserProfile) -> int:
        return sum(1 for n in await self.list_for_user(user) if not n.read)

    async def mark_as_read(self, notification_id: str, user: UserProfile) -> bool:
        """Returns False when the notification is missing or addressed to someone else."""
        notification = await self.repo.get_notification(notification_id)
        if notification is None or notification.user_id not in (user.id, BROADCAST_USER_ID):
            return False
        if not notification.read:
            await self.store.update(NOTIFICATIONS, notification_id, {"read": True})
        return True

    async def mark_all_as_read(self, user: UserProfile) -> int:
        unread = [n for n in await self.list_for_user(user) if not n.read]
        await self.store.update_many(NOTIFICATIONS, {n.id: {"read": True} for n in unread})
        return len(unread)

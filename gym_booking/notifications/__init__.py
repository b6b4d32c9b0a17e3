"""
In-app and web push notifications.

- NotificationFeed: notification documents shown inside the bot
- PushSubscriptionRegistry: per-user web push endpoints
- PushSender: pywebpush delivery with stale endpoint cleanup
- NotificationTriggers: fan-out reacting to session/booking/announcement changes
"""

from .feed import NotificationFeed
from .push import PushReport, PushSender, configure_vapid
from .subscriptions import PushSubscriptionRegistry
from .triggers import NotificationTriggers

__all__ = [
    "NotificationFeed",
    "NotificationTriggers",
    "PushReport",
    "PushSender",
    "PushSubscriptionRegistry",
    "configure_vapid",
]

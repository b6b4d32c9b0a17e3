from __future__ import annotations

import asyncio
import json
import logging
import threading
from dataclasses import dataclass
from typing import Iterable

from py_vapid import Vapid
from pywebpush import WebPushException, webpush

from gym_booking.core import Settings, get_settings
from gym_booking.db.models import PushSubscriptionInfo, UserProfile
from gym_booking.db.store import DocumentStore
from gym_booking.notifications.subscriptions import PushSubscriptionRegistry

logger = logging.getLogger(__name__)

# Push services answer 404/410 for endpoints that will never work again
GONE_STATUS_CODES = (404, 410)


@dataclass(frozen=True)
class VapidDetails:
    key: Vapid
    claims_email: str


_vapid: VapidDetails | None = None
_vapid_lock = threading.Lock()


def configure_vapid(settings: Settings | None = None) -> VapidDetails | None:
    """
    Load the VAPID signing key once per process.

    Returns None (and stays unconfigured) when the keys are not set.
    """

    global _vapid
    if _vapid is not None:
        return _vapid

    settings = settings or get_settings()
    if not settings.push_configured:
        return None

    with _vapid_lock:
        if _vapid is None:
            _vapid = VapidDetails(
                key=Vapid.from_string(private_key=settings.vapid_private_key.strip()),
                claims_email=settings.vapid_claims_email,
            )
            logger.info("VAPID credentials configured")
    return _vapid


def reset_vapid() -> None:
    global _vapid
    with _vapid_lock:
        _vapid = None


@dataclass
class PushReport:
    success: int = 0
    failed: int = 0
    removed: int = 0

    def __iadd__(self, other: "PushReport") -> "PushReport":
        self.success += other.success
        self.failed += other.failed
        self.removed += other.removed
        return self


class PushSender:
    """
    Web push delivery to every endpoint on file for a set of users.

    Each endpoint is attempted independently; one failure never blocks the
    others. Endpoints the push service reports as gone are pruned from the
    owner's subscription list.
    """

    def __init__(self, store: DocumentStore, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self.registry = PushSubscriptionRegistry(store)

    def build_payload(self, title: str, body: str) -> str:
        return json.dumps({"title": title, "body": body, "url": self.settings.push_url})

    async def send(self, users: Iterable[UserProfile], title: str, body: str) -> PushReport:
        report = PushReport()
        targets = [
            (user, subscription)
            for user in users
            if user.notifications_enabled
            for subscription in user.push_subscriptions
        ]
        if not targets:
            return report

        vapid = configure_vapid(self.settings)
        if vapid is None:
            logger.warning("Push notifications not configured; skipping %s endpoint(s)", len(targets))
            return report

        payload = self.build_payload(title, body)
        results = await asyncio.gather(
            *(self._send_one(subscription, payload, vapid) for _, subscription in targets)
        )

        stale: dict[str, list[str]] = {}
        for (user, subscription), result in zip(targets, results):
            if result == "sent":
                report.success += 1
            else:
                report.failed += 1
                if result == "gone":
                    stale.setdefault(user.id, []).append(subscription.endpoint)

        for user_id, endpoints in stale.items():
            try:
                report.removed += await self.registry.remove(user_id, endpoints)
            except Exception as exc:  # noqa: BLE001
                logger.error("Failed to prune stale endpoints for %s: %s", user_id, exc)

        logger.info("Push sent: %s success, %s failure", report.success, report.failed)
        return report

    async def _send_one(self, subscription: PushSubscriptionInfo, payload: str, vapid: VapidDetails) -> str:
        try:
            await asyncio.to_thread(
                webpush,
                subscription_info=subscription.model_dump(mode="json"),
                data=payload,
                vapid_private_key=vapid.key,
                # webpush mutates the claims, so every call gets its own dict
                vapid_claims={"sub": vapid.claims_email},
            )
            return "sent"
        except WebPushException as exc:
            status_code = getattr(getattr(exc, "response", None), "status_code", None)
            if status_code in GONE_STATUS_CODES:
                logger.info("Push subscription gone (%s); removing endpoint=%s", status_code, subscription.endpoint)
                return "gone"
            logger.error("Push send failed: %s", exc)
            return "failed"
        except Exception as exc:  # noqa: BLE001
            logger.error("Push send failed: %s", exc)
            return "failed"

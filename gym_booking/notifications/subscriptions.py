from __future__ import annotations

import logging
from typing import Iterable

from gym_booking.db.models import PushSubscriptionInfo, UserProfile
from gym_booking.db.repository import USERS, from_snapshot
from gym_booking.db.store import DocumentStore, StoreError, Transaction, run_transaction

logger = logging.getLogger(__name__)


class PushSubscriptionRegistry:
    """
    Per-user list of web push endpoints.

    Every change is a read-modify-write of the user document, so concurrent
    registrations and stale-endpoint cleanups never drop each other's edits.
    """

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    async def _modify(self, user_id: str, change) -> UserProfile:
        async def modify_in(tx: Transaction) -> UserProfile:
            snapshot = await tx.get(USERS, user_id)
            if not snapshot.exists:
                raise StoreError(f"User {user_id} not found", status_code=404)
            user = from_snapshot(UserProfile, snapshot)
            patch = change(user)
            if patch:
                tx.update(USERS, user_id, patch)
                user = user.model_copy(update=_model_update(patch))
            return user

        return await run_transaction(self.store, modify_in)

    async def add(self, user_id: str, info: PushSubscriptionInfo) -> UserProfile:
        """Register an endpoint (deduplicated by URL) and turn notifications on."""

        def change(user: UserProfile) -> dict:
            subs = [s for s in user.push_subscriptions if s.endpoint != info.endpoint]
            subs.append(info)
            return {
                "push_subscriptions": [s.model_dump(mode="json") for s in subs],
                "notifications_enabled": True,
            }

        user = await self._modify(user_id, change)
        logger.info("Push endpoint registered for %s (%s total)", user_id, len(user.push_subscriptions))
        return user

    async def remove(self, user_id: str, endpoints: Iterable[str]) -> int:
        """Drop the given endpoints; returns how many were actually removed."""
        stale = set(endpoints)
        removed = 0

        def change(user: UserProfile) -> dict:
            nonlocal removed
            kept = [s for s in user.push_subscriptions if s.endpoint not in stale]
            removed = len(user.push_subscriptions) - len(kept)
            if not removed:
                return {}
            return {"push_subscriptions": [s.model_dump(mode="json") for s in kept]}

        await self._modify(user_id, change)
        return removed

    async def disable(self, user_id: str, endpoint: str | None = None) -> UserProfile:
        """Turn notifications off, forgetting `endpoint` when given."""

        def change(user: UserProfile) -> dict:
            patch: dict = {"notifications_enabled": False}
            if endpoint is not None:
                patch["push_subscriptions"] = [
                    s.model_dump(mode="json") for s in user.push_subscriptions if s.endpoint != endpoint
                ]
            return patch

        return await self._modify(user_id, change)


def _model_update(patch: dict) -> dict:
    update = dict(patch)
    if "push_subscriptions" in update:
        update["push_subscriptions"] = [
            PushSubscriptionInfo.model_validate(s) for s in update["push_subscriptions"]
        ]
    return update

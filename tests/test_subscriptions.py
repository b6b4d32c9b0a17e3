from __future__ import annotations

import asyncio

import pytest
from conftest import add_user

from gym_booking.db.models import PushKeys, PushSubscriptionInfo
from gym_booking.db.repository import GymRepository
from gym_booking.db.store import StoreError
from gym_booking.notifications import PushSubscriptionRegistry


def _info(endpoint: str) -> PushSubscriptionInfo:
    return PushSubscriptionInfo(endpoint=endpoint, keys=PushKeys(p256dh="p256dh-key", auth="auth-key"))


@pytest.mark.asyncio
async def test_add_deduplicates_and_enables(store):
    await add_user(store, "tg_1", "Ann")
    registry = PushSubscriptionRegistry(store)

    await registry.add("tg_1", _info("https://push.example/a"))
    user = await registry.add("tg_1", _info("https://push.example/a"))

    assert user.notifications_enabled is True
    assert [s.endpoint for s in user.push_subscriptions] == ["https://push.example/a"]
    stored = await GymRepository(store).get_user("tg_1")
    assert stored.notifications_enabled is True
    assert len(stored.push_subscriptions) == 1


@pytest.mark.asyncio
async def test_concurrent_adds_keep_every_endpoint(store):
    await add_user(store, "tg_1", "Ann")
    registry = PushSubscriptionRegistry(store)

    await asyncio.gather(*(registry.add("tg_1", _info(f"https://push.example/{n}")) for n in range(4)))

    stored = await GymRepository(store).get_user("tg_1")
    assert len(stored.push_subscriptions) == 4


@pytest.mark.asyncio
async def test_remove_returns_count(store):
    await add_user(store, "tg_1", "Ann")
    registry = PushSubscriptionRegistry(store)
    await registry.add("tg_1", _info("https://push.example/a"))
    await registry.add("tg_1", _info("https://push.example/b"))

    assert await registry.remove("tg_1", ["https://push.example/a", "https://push.example/zzz"]) == 1
    assert await registry.remove("tg_1", ["https://push.example/a"]) == 0

    stored = await GymRepository(store).get_user("tg_1")
    assert [s.endpoint for s in stored.push_subscriptions] == ["https://push.example/b"]


@pytest.mark.asyncio
async def test_disable(store):
    await add_user(store, "tg_1", "Ann")
    registry = PushSubscriptionRegistry(store)
    await registry.add("tg_1", _info("https://push.example/a"))
    await registry.add("tg_1", _info("https://push.example/b"))

    user = await registry.disable("tg_1", "https://push.example/a")

    assert user.notifications_enabled is False
    assert [s.endpoint for s in user.push_subscriptions] == ["https://push.example/b"]


@pytest.mark.asyncio
async def test_unknown_user(store):
    with pytest.raises(StoreError):
        await PushSubscriptionRegistry(store).add("tg_404", _info("https://push.example/a"))

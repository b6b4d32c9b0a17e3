from __future__ import annotations

import pytest
from conftest import add_user

from gym_booking.db.models import BROADCAST_USER_ID, NotificationType, UserRole
from gym_booking.notifications import NotificationFeed


@pytest.fixture
def feed(store) -> NotificationFeed:
    return NotificationFeed(store)


@pytest.mark.asyncio
async def test_member_sees_own_and_broadcast_newest_first(store, feed):
    ann = await add_user(store, "tg_1", "Ann")
    await feed.create(user_id="tg_1", type=NotificationType.BOOKING_CONFIRMED, title="Booked", message="one")
    await feed.create(user_id="tg_2", type=NotificationType.BOOKING_CONFIRMED, title="Booked", message="other")
    await feed.create(user_id=BROADCAST_USER_ID, type=NotificationType.ANNOUNCEMENT, title="News", message="all")

    items = await feed.list_for_user(ann)

    assert [n.message for n in items] == ["all", "one"]
    assert await feed.unread_count(ann) == 2


@pytest.mark.asyncio
async def test_coach_does_not_see_announcements(store, feed):
    coach = await add_user(store, "tg_1", "Coach", role=UserRole.COACH)
    await feed.create(user_id=BROADCAST_USER_ID, type=NotificationType.ANNOUNCEMENT, title="News", message="all")
    await feed.create(user_id=BROADCAST_USER_ID, type=NotificationType.SPOT_AVAILABLE, title="Spot", message="spot")

    assert [n.type for n in await feed.list_for_user(coach)] == [NotificationType.SPOT_AVAILABLE]


@pytest.mark.asyncio
async def test_list_is_limited(store, feed):
    ann = await add_user(store, "tg_1", "Ann")
    for n in range(25):
        await feed.create(user_id="tg_1", type=NotificationType.REMINDER, title="R", message=str(n))

    assert len(await feed.list_for_user(ann)) == 20
    assert len(await feed.list_for_user(ann, limit=5)) == 5


@pytest.mark.asyncio
async def test_mark_read(store, feed):
    ann = await add_user(store, "tg_1", "Ann")
    first = await feed.create(user_id="tg_1", type=NotificationType.REMINDER, title="R", message="a")
    await feed.create(user_id="tg_1", type=NotificationType.REMINDER, title="R", message="b")
    await feed.create(user_id="tg_1", type=NotificationType.REMINDER, title="R", message="c")

    assert await feed.mark_as_read(first.id, ann) is True
    assert await feed.unread_count(ann) == 2

    assert await feed.mark_all_as_read(ann) == 2
    assert await feed.unread_count(ann) == 0
    assert await feed.mark_all_as_read(ann) == 0


@pytest.mark.asyncio
async def test_mark_read_only_for_the_addressee(store, feed):
    ann = await add_user(store, "tg_1", "Ann")
    bob = await add_user(store, "tg_2", "Bob")
    private = await feed.create(user_id="tg_1", type=NotificationType.REMINDER, title="R", message="a")
    broadcast = await feed.create(
        user_id=BROADCAST_USER_ID, type=NotificationType.SPOT_AVAILABLE, title="Spot", message="b"
    )

    assert await feed.mark_as_read(private.id, bob) is False
    assert await feed.mark_as_read("missing", bob) is False
    assert await feed.unread_count(ann) == 2

    assert await feed.mark_as_read(broadcast.id, bob) is True
    assert await feed.unread_count(ann) == 1

from __future__ import annotations

import pytest
from conftest import MONDAY, add_session, add_user

from gym_booking.booking import BookingLedger, BookingService, CoachService
from gym_booking.db.models import NotificationType, UserRole
from gym_booking.db.repository import NOTIFICATIONS
from gym_booking.notifications import NotificationTriggers


@pytest.fixture
def triggers(store, fake_push):
    triggers = NotificationTriggers(store, push=fake_push)
    triggers.register()
    yield triggers
    triggers.unregister()


async def _notifications_for(store, user_id: str):
    return [s.data for s in await store.query(NOTIFICATIONS, [("user_id", "==", user_id)], order_by="created_at")]


@pytest.mark.asyncio
async def test_new_booking_notifies_coaches(store, triggers, fake_push):
    await add_user(store, "tg_coach", "Coach", role=UserRole.COACH)
    ann = await add_user(store, "tg_1", "Ann")
    await add_session(store)

    await BookingLedger(store).reserve("slot1_2024-01-01", ann)
    await store.changes.drain()

    [item] = await _notifications_for(store, "tg_coach")
    assert item["type"] == NotificationType.BOOKING_CONFIRMED.value
    assert item["message"] == "Ann booked the 18:00 session on 2024-01-01."
    assert fake_push.calls == [(["tg_coach"], "New Booking", item["message"])]


@pytest.mark.asyncio
async def test_cancelled_booking_notifies_coaches(store, triggers, fake_push):
    await add_user(store, "tg_coach", "Coach", role=UserRole.COACH)
    ann = await add_user(store, "tg_1", "Ann")
    await add_session(store)
    ledger = BookingLedger(store)
    booking = await ledger.reserve("slot1_2024-01-01", ann)

    await ledger.release(booking)
    await ledger.release(booking)
    await store.changes.drain()

    titles = [title for _, title, _ in fake_push.calls]
    assert titles == ["New Booking", "Booking Cancelled"]
    types = [n["type"] for n in await _notifications_for(store, "tg_coach")]
    assert NotificationType.BOOKING_CANCELLED.value in types


@pytest.mark.asyncio
async def test_check_in_does_not_notify(store, triggers, fake_push):
    await add_user(store, "tg_coach", "Coach", role=UserRole.COACH)
    await add_session(store)
    booking = await BookingLedger(store).reserve("slot1_2024-01-01", await add_user(store, "tg_1", "Ann"))
    await store.changes.drain()
    fake_push.calls.clear()

    await CoachService(store).toggle_check_in(booking.id)
    await store.changes.drain()

    assert fake_push.calls == []


@pytest.mark.asyncio
async def test_session_cancel_pushes_to_bookers(store, triggers, fake_push):
    await add_session(store)
    ledger = BookingLedger(store)
    await ledger.reserve("slot1_2024-01-01", await add_user(store, "tg_1", "Ann"))
    await ledger.reserve("slot1_2024-01-01", await add_user(store, "tg_2", "Bob"))
    await store.changes.drain()
    fake_push.calls.clear()

    await CoachService(store).cancel_session("slot1_2024-01-01", "Flooded")
    await store.changes.drain()

    [(user_ids, title, body)] = fake_push.calls
    assert sorted(user_ids) == ["tg_1", "tg_2"]
    assert title == "Session Cancelled"
    assert body.endswith("Note: Flooded")


@pytest.mark.asyncio
async def test_announcement_pushes_to_everyone_but_poster(store, triggers, fake_push):
    coach = await add_user(store, "tg_coach", "Coach", role=UserRole.COACH, notifications_enabled=True)
    await add_user(store, "tg_1", "Ann", notifications_enabled=True)
    await add_user(store, "tg_2", "Bob", notifications_enabled=False)
    service = CoachService(store)

    await service.post_announcement(coach, "Gym closed Friday")
    await store.changes.drain()
    await service.clear_announcement()
    await store.changes.drain()

    assert fake_push.calls == [(["tg_1"], "New Announcement", "Gym closed Friday")]


@pytest.mark.asyncio
async def test_daily_reminders(store, triggers, fake_push):
    await add_session(store)
    await add_session(store, "other_2024-01-02", day=MONDAY.replace(day=2))
    await add_session(store, "off_2024-01-01", status="cancelled")
    ledger = BookingLedger(store)
    await ledger.reserve("slot1_2024-01-01", await add_user(store, "tg_1", "Ann", notifications_enabled=True))
    await ledger.reserve("other_2024-01-02", await add_user(store, "tg_2", "Bob"))
    await store.changes.drain()
    fake_push.calls.clear()

    await triggers.send_daily_reminders(today=MONDAY)

    [reminder] = [n for n in await _notifications_for(store, "tg_1") if n["type"] == NotificationType.REMINDER.value]
    assert reminder["message"] == "Your 18:00 session is today!"
    assert fake_push.calls == [(["tg_1"], "Session Today", "Your 18:00 session is today!")]
    assert await _notifications_for(store, "tg_2") == []


@pytest.mark.asyncio
async def test_failing_push_never_changes_booking(store, triggers, fake_push):
    async def broken_send(users, title, body):
        raise RuntimeError("push gateway down")

    fake_push.send = broken_send
    await add_user(store, "tg_coach", "Coach", role=UserRole.COACH)
    ann = await add_user(store, "tg_1", "Ann")
    await add_session(store)
    service = BookingService(store)

    result = await service.book("slot1_2024-01-01", ann)
    await service.drain()
    await store.changes.drain()

    assert result.ok is True
    assert (await service.upcoming_bookings(ann, today=MONDAY))[0].id == result.booking.id

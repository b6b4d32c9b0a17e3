from __future__ import annotations

import os
from datetime import date

import pytest

# Bot modules read settings at import time
os.environ.setdefault("BOT_TOKEN", "test-token")

from gym_booking.core import get_settings  # noqa: E402
from gym_booking.db.models import Session, Slot, UserProfile, UserRole  # noqa: E402
from gym_booking.db.repository import SESSIONS, SLOTS, USERS, to_document  # noqa: E402
from gym_booking.db.store import InMemoryDocumentStore  # noqa: E402
from gym_booking.notifications import push as push_module  # noqa: E402
from gym_booking.notifications.push import PushReport  # noqa: E402

MONDAY = date(2024, 1, 1)


@pytest.fixture(autouse=True)
def _settings_env(monkeypatch):
    monkeypatch.setenv("BOT_TOKEN", "test-token")
    monkeypatch.setenv("ENVIRONMENT", "local")
    monkeypatch.delenv("STORAGE_BACKEND", raising=False)
    monkeypatch.delenv("VAPID_PUBLIC_KEY", raising=False)
    monkeypatch.delenv("VAPID_PRIVATE_KEY", raising=False)
    get_settings.cache_clear()
    push_module.reset_vapid()
    yield
    get_settings.cache_clear()
    push_module.reset_vapid()


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


class FakePushSender:
    """Records push calls instead of talking to push services."""

    def __init__(self) -> None:
        self.calls: list[tuple[list[str], str, str]] = []

    async def send(self, users, title: str, body: str) -> PushReport:
        users = list(users)
        self.calls.append(([u.id for u in users], title, body))
        return PushReport(success=sum(len(u.push_subscriptions) for u in users if u.notifications_enabled))


@pytest.fixture
def fake_push() -> FakePushSender:
    return FakePushSender()


async def add_user(store, user_id: str, name: str, role: UserRole = UserRole.MEMBER, **extra) -> UserProfile:
    user = UserProfile(id=user_id, display_name=name, role=role, **extra)
    await store.set(USERS, user.id, to_document(user))
    return user


async def add_slot(store, slot_id: str = "slot1", day_of_week: int = 1, **extra) -> Slot:
    values = {
        "start_time": "18:00",
        "end_time": "19:00",
        "location": "Main Gym",
        "max_capacity": 3,
        **extra,
    }
    slot = Slot(id=slot_id, day_of_week=day_of_week, **values)
    await store.set(SLOTS, slot.id, to_document(slot))
    return slot


async def add_session(
    store,
    session_id: str = "slot1_2024-01-01",
    *,
    day: date = MONDAY,
    max_capacity: int = 3,
    booking_count: int = 0,
    **extra,
) -> Session:
    session = Session(
        id=session_id,
        slot_id=session_id.split("_", 1)[0],
        date=day,
        start_time=extra.pop("start_time", "18:00"),
        end_time=extra.pop("end_time", "19:00"),
        location=extra.pop("location", "Main Gym"),
        max_capacity=max_capacity,
        booking_count=booking_count,
        **extra,
    )
    await store.set(SESSIONS, session.id, to_document(session))
    return session

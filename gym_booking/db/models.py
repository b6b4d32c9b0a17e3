from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

BROADCAST_USER_ID = "all"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserRole(str, Enum):
    COACH = "coach"
    MEMBER = "member"


class PushKeys(BaseModel):
    p256dh: str
    auth: str


class PushSubscriptionInfo(BaseModel):
    endpoint: str
    keys: PushKeys


class UserProfile(BaseModel):
    # tg_{telegram_user_id}
    id: str
    telegram_user_id: Optional[int] = None
    display_name: str
    role: UserRole = UserRole.MEMBER
    notifications_enabled: bool = False
    push_subscriptions: list[PushSubscriptionInfo] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def is_coach(self) -> bool:
        return self.role == UserRole.COACH


class Slot(BaseModel):
    id: str
    day_of_week: int  # 0=Sunday, 1=Monday ... 6=Saturday
    start_time: str  # "HH:mm"
    end_time: str
    location: str
    max_capacity: int
    active: bool = True
    created_at: datetime = Field(default_factory=utcnow)


class SessionStatus(str, Enum):
    SCHEDULED = "scheduled"
    CANCELLED = "cancelled"


class Session(BaseModel):
    # {slot_id}_{iso_date}
    id: str
    slot_id: str
    date: date
    start_time: str
    end_time: str
    location: str
    max_capacity: int
    booking_count: int = 0
    status: SessionStatus = SessionStatus.SCHEDULED
    cancel_note: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def is_full(self) -> bool:
        return self.booking_count >= self.max_capacity

    @property
    def spots_left(self) -> int:
        return max(0, self.max_capacity - self.booking_count)


class BookingStatus(str, Enum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class Booking(BaseModel):
    # {user_id}_{session_id}
    id: str
    user_id: str
    user_name: str
    session_id: str
    # Snapshot of the session at booking time, keeps history stable
    session_date: date
    session_start_time: str
    session_end_time: str
    session_location: str
    status: BookingStatus = BookingStatus.CONFIRMED
    checked_in: bool = False
    created_at: datetime = Field(default_factory=utcnow)


class NotificationType(str, Enum):
    BOOKING_CONFIRMED = "booking_confirmed"
    BOOKING_CANCELLED = "booking_cancelled"
    SESSION_CANCELLED = "session_cancelled"
    SESSION_TIME_CHANGED = "session_time_changed"
    ANNOUNCEMENT = "announcement"
    REMINDER = "reminder"
    SPOT_AVAILABLE = "spot_available"


class Notification(BaseModel):
    id: str
    # Specific user id or "all" for broadcast
    user_id: str
    type: NotificationType
    title: str
    message: str
    read: bool = False
    related_session_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class Announcement(BaseModel):
    message: str
    posted_by: str
    posted_by_uid: Optional[str] = None
    posted_at: datetime = Field(default_factory=utcnow)


def session_id_for(slot_id: str, day: date) -> str:
    return f"{slot_id}_{day.isoformat()}"


def booking_id_for(user_id: str, session_id: str) -> str:
    return f"{user_id}_{session_id}"


def user_id_for_telegram(telegram_user_id: int) -> str:
    return f"tg_{telegram_user_id}"

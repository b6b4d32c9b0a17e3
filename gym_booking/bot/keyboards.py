from __future__ import annotations

from datetime import date, timedelta

from aiogram import html
from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup

from gym_booking.core.dates import DAY_NAMES_SHORT, format_day
from gym_booking.db.models import Booking, Notification, Session, SessionStatus, Slot


class Keyboards:
    """
    Centralized keyboard/button builder for consistent UI.
    """

    @staticmethod
    def main_menu(is_coach: bool = False) -> InlineKeyboardMarkup:
        """Main menu buttons."""
        buttons = [
            [
                InlineKeyboardButton(text="📅 Schedule", callback_data="menu_schedule"),
                InlineKeyboardButton(text="🎟 My bookings", callback_data="menu_bookings"),
            ],
            [
                InlineKeyboardButton(text="🔔 Notifications", callback_data="menu_notifications"),
                InlineKeyboardButton(text="❓ Help", callback_data="menu_help"),
            ],
        ]
        if is_coach:
            buttons.append(
                [
                    InlineKeyboardButton(text="🗓 Slots", callback_data="menu_slots"),
                    InlineKeyboardButton(text="👥 Members", callback_data="menu_members"),
                ]
            )
        return InlineKeyboardMarkup(inline_keyboard=buttons)

    @staticmethod
    def week_schedule(
        sessions: list[Session],
        week_start: date,
        booked_session_ids: set[str],
        is_coach: bool = False,
    ) -> InlineKeyboardMarkup:
        """One row per session plus week navigation."""
        buttons: list[list[InlineKeyboardButton]] = []
        for session in sessions:
            label = f"{format_day(session.date)} {session.start_time}"
            if session.status == SessionStatus.CANCELLED:
                text = f"✖️ {label} (cancelled)"
                action = f"coach_session:{session.id}" if is_coach else "noop"
            elif session.id in booked_session_ids:
                text = f"✅ {label} (booked)"
                action = f"coach_session:{session.id}" if is_coach else "noop"
            elif session.is_full:
                text = f"⛔ {label} (full)"
                action = f"coach_session:{session.id}" if is_coach else "noop"
            else:
                text = f"➕ {label} ({session.spots_left} left)"
                action = f"coach_session:{session.id}" if is_coach else f"book:{session.id}"
            buttons.append([InlineKeyboardButton(text=text, callback_data=action)])

        prev_week = (week_start - timedelta(days=7)).isoformat()
        next_week = (week_start + timedelta(days=7)).isoformat()
        buttons.append(
            [
                InlineKeyboardButton(text="⬅️ Prev", callback_data=f"week:{prev_week}"),
                InlineKeyboardButton(text="Next ➡️", callback_data=f"week:{next_week}"),
            ]
        )
        return InlineKeyboardMarkup(inline_keyboard=buttons)

    @staticmethod
    def my_bookings(bookings: list[Booking]) -> InlineKeyboardMarkup:
        buttons = [
            [
                InlineKeyboardButton(
                    text=f"❌ Cancel {format_day(b.session_date)} {b.session_start_time}",
                    callback_data=f"cancel:{b.id}",
                )
            ]
            for b in bookings
        ]
        buttons.append([InlineKeyboardButton(text="⬅️ Back", callback_data="menu_main")])
        return InlineKeyboardMarkup(inline_keyboard=buttons)

    @staticmethod
    def coach_session(session: Session) -> InlineKeyboardMarkup:
        """Coach actions for one session."""
        buttons = [[InlineKeyboardButton(text="👥 Roster", callback_data=f"roster:{session.id}")]]
        if session.status == SessionStatus.SCHEDULED:
            buttons.append(
                [
                    InlineKeyboardButton(text="🕒 Change time", callback_data=f"edit_time:{session.id}"),
                    InlineKeyboardButton(text="🚫 Cancel session", callback_data=f"cancel_session:{session.id}"),
                ]
            )
        buttons.append([InlineKeyboardButton(text="⬅️ Back", callback_data="menu_schedule")])
        return InlineKeyboardMarkup(inline_keyboard=buttons)

    @staticmethod
    def roster(bookings: list[Booking]) -> InlineKeyboardMarkup:
        buttons = [
            [
                InlineKeyboardButton(
                    text=f"{'☑️' if b.checked_in else '⬜'} {b.user_name}",
                    callback_data=f"checkin:{b.id}",
                )
            ]
            for b in bookings
        ]
        buttons.append([InlineKeyboardButton(text="⬅️ Back", callback_data="menu_schedule")])
        return InlineKeyboardMarkup(inline_keyboard=buttons)

    @staticmethod
    def slots(slots: list[Slot]) -> InlineKeyboardMarkup:
        buttons = [
            [
                InlineKeyboardButton(
                    text=(
                        f"{'🟢' if s.active else '⚪'} {DAY_NAMES_SHORT[s.day_of_week]} "
                        f"{s.start_time}-{s.end_time} · {s.max_capacity} spots"
                    ),
                    callback_data=f"toggle_slot:{s.id}",
                )
            ]
            for s in slots
        ]
        buttons.append([InlineKeyboardButton(text="➕ New slot", callback_data="add_slot")])
        buttons.append([InlineKeyboardButton(text="⬅️ Back", callback_data="menu_main")])
        return InlineKeyboardMarkup(inline_keyboard=buttons)

    @staticmethod
    def notifications(unread: list[Notification] | None = None) -> InlineKeyboardMarkup:
        """One mark-read button per unread item."""
        buttons = [
            [InlineKeyboardButton(text=f"👁 {n.title}", callback_data=f"read:{n.id}")]
            for n in unread or []
        ]
        buttons.append([InlineKeyboardButton(text="✔️ Mark all as read", callback_data="notifications_read_all")])
        buttons.append([InlineKeyboardButton(text="⬅️ Back", callback_data="menu_main")])
        return InlineKeyboardMarkup(inline_keyboard=buttons)

    @staticmethod
    def back_button(callback_data: str = "menu_main") -> InlineKeyboardMarkup:
        """Simple back button."""
        buttons = [
            [InlineKeyboardButton(text="⬅️ Back", callback_data=callback_data)],
        ]
        return InlineKeyboardMarkup(inline_keyboard=buttons)


class MessageTemplates:
    """
    Standardized message templates for consistent formatting.
    """

    @staticmethod
    def header(title: str, emoji: str = "📋") -> str:
        return f"<b>{emoji} {title}</b>\n"

    @staticmethod
    def item(text: str, indent: int = 1) -> str:
        return "  " * indent + f"• {text}"

    @staticmethod
    def error(message: str) -> str:
        return f"❌ <b>Error:</b> {html.quote(message)}"

    @staticmethod
    def success(message: str) -> str:
        return f"✅ {message}"

    @staticmethod
    def info(message: str) -> str:
        return f"ℹ️ {message}"

    @staticmethod
    def session_line(session: Session) -> str:
        line = f"{format_day(session.date)} {session.start_time}-{session.end_time} · {html.quote(session.location)}"
        if session.status == SessionStatus.CANCELLED:
            note = f" ({html.quote(session.cancel_note)})" if session.cancel_note else ""
            return f"<s>{line}</s> cancelled{note}"
        return f"{line} · {session.booking_count}/{session.max_capacity}"

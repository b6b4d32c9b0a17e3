from __future__ import annotations

from datetime import date

from aiogram import F, Router, html
from aiogram.filters import Command
from aiogram.types import CallbackQuery, InlineKeyboardMarkup, Message

from gym_booking.booking import get_booking_service, get_coach_service
from gym_booking.bot.keyboards import Keyboards, MessageTemplates
from gym_booking.core.dates import get_week_start
from gym_booking.core.logging import configure_logging
from gym_booking.db.models import UserProfile

router = Router(name="schedule")
logger = configure_logging()

NOT_REGISTERED = "Send /start first so I can register you."


async def _render_week(member: UserProfile, week_start: date) -> tuple[str, InlineKeyboardMarkup]:
    service = get_booking_service()
    sessions = await service.week_schedule(week_start)
    booked = {b.session_id for b in await service.upcoming_bookings(member, today=week_start)}

    lines = [MessageTemplates.header(f"Week of {week_start.strftime('%d.%m.%Y')}", "📅")]
    if not sessions:
        lines.append("No sessions this week.")
    for session in sessions:
        lines.append(MessageTemplates.item(MessageTemplates.session_line(session)))

    announcement = await get_coach_service().current_announcement()
    if announcement is not None:
        lines.append("")
        lines.append(f"📣 <b>{html.quote(announcement.posted_by)}:</b> {html.quote(announcement.message)}")

    keyboard = Keyboards.week_schedule(sessions, week_start, booked, is_coach=member.is_coach)
    return "\n".join(lines), keyboard


@router.message(Command("schedule"))
async def cmd_schedule(message: Message, member: UserProfile | None = None) -> None:
    """
    Show this week's sessions with booking buttons.
    """

    if member is None:
        await message.answer(NOT_REGISTERED)
        return

    text, keyboard = await _render_week(member, get_week_start())
    await message.answer(text, reply_markup=keyboard)


@router.callback_query(F.data == "menu_schedule")
async def cb_schedule(callback: CallbackQuery, member: UserProfile | None = None) -> None:
    if member is None:
        await callback.answer(NOT_REGISTERED, show_alert=True)
        return
    text, keyboard = await _render_week(member, get_week_start())
    await callback.message.edit_text(text, reply_markup=keyboard)
    await callback.answer()


@router.callback_query(F.data.startswith("week:"))
async def cb_week(callback: CallbackQuery, member: UserProfile | None = None) -> None:
    if member is None:
        await callback.answer(NOT_REGISTERED, show_alert=True)
        return
    try:
        week_start = get_week_start(date.fromisoformat(callback.data.split(":", 1)[1]))
    except ValueError:
        await callback.answer("Unknown week", show_alert=True)
        return
    text, keyboard = await _render_week(member, week_start)
    await callback.message.edit_text(text, reply_markup=keyboard)
    await callback.answer()


@router.callback_query(F.data.startswith("book:"))
async def cb_book(callback: CallbackQuery, member: UserProfile | None = None) -> None:
    """
    Reserve a spot; the ledger decides, this only reports the outcome.
    """

    if member is None:
        await callback.answer(NOT_REGISTERED, show_alert=True)
        return

    session_id = callback.data.split(":", 1)[1]
    result = await get_booking_service().book(session_id, member)
    await callback.answer(result.message, show_alert=not result.ok)

    if result.ok:
        week_start = get_week_start(result.booking.session_date)
        text, keyboard = await _render_week(member, week_start)
        await callback.message.edit_text(text, reply_markup=keyboard)

from __future__ import annotations

from aiogram import F, Router, html
from aiogram.filters import Command
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import State, StatesGroup
from aiogram.types import CallbackQuery, Message

from gym_booking.booking import BookingError, get_coach_service
from gym_booking.bot.keyboards import Keyboards, MessageTemplates
from gym_booking.core.logging import configure_logging
from gym_booking.db import get_store
from gym_booking.db.models import UserProfile
from gym_booking.db.repository import GymRepository

router = Router(name="coach")
logger = configure_logging()

COACH_ONLY = "Only the coach can do that."


class CancelSessionStates(StatesGroup):
    waiting_for_note = State()


class EditTimeStates(StatesGroup):
    waiting_for_times = State()


class AnnouncementStates(StatesGroup):
    waiting_for_text = State()


def _is_coach(member: UserProfile | None) -> bool:
    return member is not None and member.is_coach


@router.callback_query(F.data.startswith("coach_session:"))
async def cb_coach_session(callback: CallbackQuery, member: UserProfile | None = None) -> None:
    if not _is_coach(member):
        await callback.answer(COACH_ONLY, show_alert=True)
        return

    session_id = callback.data.split(":", 1)[1]
    session = await GymRepository(get_store()).get_session(session_id)
    if session is None:
        await callback.answer("Session not found", show_alert=True)
        return

    await callback.message.edit_text(
        MessageTemplates.session_line(session),
        reply_markup=Keyboards.coach_session(session),
    )
    await callback.answer()


@router.callback_query(F.data.startswith("roster:"))
async def cb_roster(callback: CallbackQuery, member: UserProfile | None = None) -> None:
    if not _is_coach(member):
        await callback.answer(COACH_ONLY, show_alert=True)
        return

    session_id = callback.data.split(":", 1)[1]
    bookings = await get_coach_service().session_roster(session_id)
    text = f"👥 <b>{len(bookings)} booked</b>" if bookings else "Nobody booked yet."
    await callback.message.edit_text(text, reply_markup=Keyboards.roster(bookings))
    await callback.answer()


@router.callback_query(F.data.startswith("checkin:"))
async def cb_check_in(callback: CallbackQuery, member: UserProfile | None = None) -> None:
    if not _is_coach(member):
        await callback.answer(COACH_ONLY, show_alert=True)
        return

    service = get_coach_service()
    try:
        booking = await service.toggle_check_in(callback.data.split(":", 1)[1])
    except BookingError as exc:
        await callback.answer(exc.message, show_alert=True)
        return

    bookings = await service.session_roster(booking.session_id)
    await callback.message.edit_reply_markup(reply_markup=Keyboards.roster(bookings))
    await callback.answer("Checked in" if booking.checked_in else "Check-in removed")


@router.callback_query(F.data.startswith("cancel_session:"))
async def cb_cancel_session(callback: CallbackQuery, state: FSMContext, member: UserProfile | None = None) -> None:
    if not _is_coach(member):
        await callback.answer(COACH_ONLY, show_alert=True)
        return

    await state.update_data(session_id=callback.data.split(":", 1)[1])
    await state.set_state(CancelSessionStates.waiting_for_note)
    await callback.message.answer(
        "Send a short note for the members (or <b>-</b> for none).\n\n"
        "To abort send /cancel."
    )
    await callback.answer()


@router.message(CancelSessionStates.waiting_for_note, F.text.len() > 0)
async def cancel_session_note(message: Message, state: FSMContext) -> None:
    data = await state.get_data()
    await state.clear()

    note = message.text.strip()
    try:
        notified = await get_coach_service().cancel_session(
            data["session_id"],
            None if note == "-" else note,
        )
    except BookingError as exc:
        await message.answer(MessageTemplates.error(exc.message))
        return

    await message.answer(MessageTemplates.success(f"Session cancelled, {notified} member(s) notified."))


@router.callback_query(F.data.startswith("edit_time:"))
async def cb_edit_time(callback: CallbackQuery, state: FSMContext, member: UserProfile | None = None) -> None:
    if not _is_coach(member):
        await callback.answer(COACH_ONLY, show_alert=True)
        return

    await state.update_data(session_id=callback.data.split(":", 1)[1])
    await state.set_state(EditTimeStates.waiting_for_times)
    await callback.message.answer("Send the new time as <b>HH:mm-HH:mm</b>, e.g. 18:30-19:30.")
    await callback.answer()


@router.message(EditTimeStates.waiting_for_times, F.text.len() > 0)
async def edit_time_value(message: Message, state: FSMContext) -> None:
    start, _, end = message.text.strip().partition("-")
    data = await state.get_data()
    try:
        session = await get_coach_service().update_session_time(data["session_id"], start, end)
    except ValueError as exc:
        await message.answer(MessageTemplates.error(str(exc)))
        return
    except BookingError as exc:
        await state.clear()
        await message.answer(MessageTemplates.error(exc.message))
        return

    await state.clear()
    await message.answer(MessageTemplates.success(f"Moved to {session.start_time}-{session.end_time}."))


@router.message(Command("announce"))
async def cmd_announce(message: Message, state: FSMContext, member: UserProfile | None = None) -> None:
    if not _is_coach(member):
        await message.answer(COACH_ONLY)
        return
    await state.set_state(AnnouncementStates.waiting_for_text)
    await message.answer("Send the announcement text.\n\nTo abort send /cancel.")


@router.message(AnnouncementStates.waiting_for_text, F.text.len() > 0)
async def announce_text(message: Message, state: FSMContext, member: UserProfile | None = None) -> None:
    await state.clear()
    if not _is_coach(member):
        await message.answer(COACH_ONLY)
        return
    try:
        await get_coach_service().post_announcement(member, message.text)
    except ValueError as exc:
        await message.answer(MessageTemplates.error(str(exc)))
        return
    await message.answer(MessageTemplates.success("Announcement posted."))


@router.message(Command("clear_announcement"))
async def cmd_clear_announcement(message: Message, member: UserProfile | None = None) -> None:
    if not _is_coach(member):
        await message.answer(COACH_ONLY)
        return
    await get_coach_service().clear_announcement()
    await message.answer(MessageTemplates.info("Announcement cleared."))


async def _members_text() -> str:
    members = await get_coach_service().list_members()
    if not members:
        return "No members yet."
    lines = [MessageTemplates.header(f"Members ({len(members)})", "👥")]
    for idx, m in enumerate(members, start=1):
        push = "🔔" if m.notifications_enabled else "🔕"
        lines.append(f"{idx}. {html.quote(m.display_name)} {push}")
    return "\n".join(lines)


@router.message(Command("members"))
async def cmd_members(message: Message, member: UserProfile | None = None) -> None:
    if not _is_coach(member):
        await message.answer(COACH_ONLY)
        return
    await message.answer(await _members_text())


@router.callback_query(F.data == "menu_members")
async def cb_members(callback: CallbackQuery, member: UserProfile | None = None) -> None:
    if not _is_coach(member):
        await callback.answer(COACH_ONLY, show_alert=True)
        return
    await callback.message.edit_text(await _members_text(), reply_markup=Keyboards.back_button())
    await callback.answer()

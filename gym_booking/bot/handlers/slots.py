from __future__ import annotations

from aiogram import F, Router, html
from aiogram.filters import Command, CommandObject
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import State, StatesGroup
from aiogram.types import CallbackQuery, Message

from gym_booking.booking import get_coach_service
from gym_booking.bot.keyboards import Keyboards, MessageTemplates
from gym_booking.core.dates import DAY_NAMES, DAY_NAMES_SHORT
from gym_booking.core.logging import configure_logging
from gym_booking.core.validation import validate_capacity, validate_day_of_week, validate_time_range
from gym_booking.db.models import Slot, UserProfile
from gym_booking.db.store import StoreError

router = Router(name="slots")
logger = configure_logging()

COACH_ONLY = "Only the coach can do that."


class AddSlotStates(StatesGroup):
    waiting_for_day = State()
    waiting_for_times = State()
    waiting_for_capacity = State()


def parse_day(raw: str) -> int:
    """
    Accept a weekday as 0-6 (0=Sunday) or an English name/abbreviation.
    """

    value = raw.strip().lower()
    if value.isdigit():
        return validate_day_of_week(int(value))
    for idx, (name, short) in enumerate(zip(DAY_NAMES, DAY_NAMES_SHORT)):
        if value in (name.lower(), short.lower()):
            return idx
    raise ValueError("Unknown day, send 0-6 (0=Sunday) or a name like Mon")


def parse_time_range(raw: str) -> tuple[str, str]:
    start, _, end = raw.strip().partition("-")
    return validate_time_range(start, end)


def _slots_text(slots: list[Slot]) -> str:
    if not slots:
        return "No weekly slots yet. Tap ➕ to add one."
    lines = [MessageTemplates.header("Weekly slots", "🗓")]
    for slot in slots:
        state = "active" if slot.active else "inactive"
        lines.append(
            MessageTemplates.item(
                f"{DAY_NAMES[slot.day_of_week]} {slot.start_time}-{slot.end_time}, "
                f"{slot.max_capacity} spots, {state} (<code>{slot.id}</code>)"
            )
        )
    lines.append("")
    lines.append("Tap a slot to activate/deactivate it.")
    return "\n".join(lines)


@router.message(Command("slots"))
async def cmd_slots(message: Message, member: UserProfile | None = None) -> None:
    if member is None or not member.is_coach:
        await message.answer(COACH_ONLY)
        return
    slots = await get_coach_service().list_slots()
    await message.answer(_slots_text(slots), reply_markup=Keyboards.slots(slots))


@router.callback_query(F.data == "menu_slots")
async def cb_slots(callback: CallbackQuery, member: UserProfile | None = None) -> None:
    if member is None or not member.is_coach:
        await callback.answer(COACH_ONLY, show_alert=True)
        return
    slots = await get_coach_service().list_slots()
    await callback.message.edit_text(_slots_text(slots), reply_markup=Keyboards.slots(slots))
    await callback.answer()


@router.callback_query(F.data.startswith("toggle_slot:"))
async def cb_toggle_slot(callback: CallbackQuery, member: UserProfile | None = None) -> None:
    if member is None or not member.is_coach:
        await callback.answer(COACH_ONLY, show_alert=True)
        return

    slot_id = callback.data.split(":", 1)[1]
    service = get_coach_service()
    slot = next((s for s in await service.list_slots() if s.id == slot_id), None)
    if slot is None:
        await callback.answer("Slot not found", show_alert=True)
        return

    await service.set_slot_active(slot_id, not slot.active)
    slots = await service.list_slots()
    await callback.message.edit_text(_slots_text(slots), reply_markup=Keyboards.slots(slots))
    await callback.answer("Deactivated" if slot.active else "Activated")


async def _start_add_slot(message: Message, state: FSMContext) -> None:
    await state.set_state(AddSlotStates.waiting_for_day)
    await message.answer(
        "Let's add a weekly slot.\n"
        "Send the <b>day</b>: 0-6 (0=Sunday) or a name like Mon.\n\n"
        "To abort send /cancel."
    )


@router.message(Command("add_slot"))
async def cmd_add_slot(message: Message, state: FSMContext, member: UserProfile | None = None) -> None:
    if member is None or not member.is_coach:
        await message.answer(COACH_ONLY)
        return
    await _start_add_slot(message, state)


@router.callback_query(F.data == "add_slot")
async def cb_add_slot(callback: CallbackQuery, state: FSMContext, member: UserProfile | None = None) -> None:
    if member is None or not member.is_coach:
        await callback.answer(COACH_ONLY, show_alert=True)
        return
    await _start_add_slot(callback.message, state)
    await callback.answer()


@router.message(AddSlotStates.waiting_for_day, F.text.len() > 0)
async def add_slot_day(message: Message, state: FSMContext) -> None:
    try:
        day = parse_day(message.text)
    except ValueError as exc:
        await message.answer(MessageTemplates.error(str(exc)))
        return

    await state.update_data(day_of_week=day)
    await state.set_state(AddSlotStates.waiting_for_times)
    await message.answer("Now send the <b>time</b> as HH:mm-HH:mm, e.g. 18:00-19:00.")


@router.message(AddSlotStates.waiting_for_times, F.text.len() > 0)
async def add_slot_times(message: Message, state: FSMContext) -> None:
    try:
        start, end = parse_time_range(message.text)
    except ValueError as exc:
        await message.answer(MessageTemplates.error(str(exc)))
        return

    await state.update_data(start_time=start, end_time=end)
    await state.set_state(AddSlotStates.waiting_for_capacity)
    await message.answer("And the <b>capacity</b> (number of spots):")


@router.message(AddSlotStates.waiting_for_capacity, F.text.len() > 0)
async def add_slot_capacity(message: Message, state: FSMContext) -> None:
    try:
        capacity = validate_capacity(int(message.text.strip()))
    except ValueError:
        await message.answer(MessageTemplates.error("Capacity must be a positive number"))
        return

    data = await state.get_data()
    await state.clear()

    try:
        slot = await get_coach_service().create_slot(
            day_of_week=data["day_of_week"],
            start_time=data["start_time"],
            end_time=data["end_time"],
            max_capacity=capacity,
        )
    except StoreError as exc:
        logger.exception("Failed to create slot: %s", exc)
        await message.answer(MessageTemplates.error("Couldn't save the slot, try again later."))
        return

    await message.answer(
        MessageTemplates.success(
            f"Slot added: {DAY_NAMES[slot.day_of_week]} {slot.start_time}-{slot.end_time}, "
            f"{slot.max_capacity} spots."
        )
    )


@router.message(Command("edit_slot"))
async def cmd_edit_slot(
    message: Message,
    command: CommandObject,
    member: UserProfile | None = None,
) -> None:
    """
    /edit_slot <id> <day> <HH:mm-HH:mm> <capacity>

    Sessions that already exist keep their old values.
    """

    if member is None or not member.is_coach:
        await message.answer(COACH_ONLY)
        return

    parts = (command.args or "").split()
    if len(parts) != 4:
        await message.answer(html.quote("Usage: /edit_slot <id> <day> <HH:mm-HH:mm> <capacity>"))
        return

    slot_id, raw_day, raw_times, raw_capacity = parts
    try:
        start, end = parse_time_range(raw_times)
        slot = await get_coach_service().update_slot(
            slot_id,
            day_of_week=parse_day(raw_day),
            start_time=start,
            end_time=end,
            max_capacity=int(raw_capacity),
        )
    except ValueError as exc:
        await message.answer(MessageTemplates.error(str(exc)))
        return
    except StoreError as exc:
        await message.answer(MessageTemplates.error(str(exc)))
        return

    await message.answer(
        MessageTemplates.success(
            f"Slot updated: {DAY_NAMES[slot.day_of_week]} {slot.start_time}-{slot.end_time}, "
            f"{slot.max_capacity} spots."
        )
    )

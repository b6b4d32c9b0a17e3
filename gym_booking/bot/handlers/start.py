from __future__ import annotations

from aiogram import F, Router, html
from aiogram.filters import Command, CommandStart
from aiogram.fsm.context import FSMContext
from aiogram.types import CallbackQuery, Message

from gym_booking.booking import get_or_create_user
from gym_booking.bot.keyboards import Keyboards
from gym_booking.core import get_settings
from gym_booking.core.logging import configure_logging
from gym_booking.db import get_store
from gym_booking.db.models import UserProfile
from gym_booking.db.store import StoreError

router = Router(name="start")

HELP_TEXT = """
<b>📋 Commands</b>

<b>📅 Booking</b>
/schedule - this week's sessions, tap one to book
/my_bookings - your upcoming sessions, tap to cancel

<b>🔔 Notifications</b>
/notifications - latest notifications
/read_all - mark everything as read
/push_off - stop push notifications

<b>🏋️ Coach</b>
/slots - weekly slots (tap to activate/deactivate)
/add_slot - add a weekly slot
/edit_slot - change a slot: /edit_slot id day HH:mm-HH:mm capacity
/announce - post an announcement
/clear_announcement - remove the current announcement
/members - registered members

/help - this help
/cancel - abort the current dialog
""".strip()


@router.message(CommandStart())
async def cmd_start(message: Message) -> None:
    """
    /start for members and the coach.

    On first run creates the profile (the first user ever becomes the coach).
    On subsequent runs shows the menu.
    """

    settings = get_settings()
    logger = configure_logging()

    telegram_user_id = message.from_user.id
    full_name = message.from_user.full_name

    try:
        member, is_new = await get_or_create_user(get_store(), telegram_user_id, full_name)
    except StoreError as exc:
        logger.exception("Storage error during /start: %s", exc)
        lines = [
            "👋 Hi! I couldn't reach the database right now.",
            "Please try again a bit later.",
        ]
        if settings.is_debug and exc.status_code is not None:
            lines.append(f"<code>status={exc.status_code}</code>")
        await message.answer("\n".join(lines))
        return

    if is_new:
        greeting_lines = [
            f"👋 Welcome, <b>{html.quote(member.display_name)}</b>!",
            "",
            "You're registered as the <b>coach</b>." if member.is_coach else "You can now book sessions.",
        ]
    else:
        greeting_lines = [f"👋 Welcome back, <b>{html.quote(member.display_name)}</b>!"]

    if settings.is_debug:
        greeting_lines.append("")
        greeting_lines.append(f"Mode: <b>DEBUG</b> | user_id={member.id} | role={member.role.value}")

    await message.answer(
        "\n".join(greeting_lines),
        reply_markup=Keyboards.main_menu(member.is_coach),
    )


@router.message(Command("menu"))
async def cmd_menu(message: Message, member: UserProfile | None = None) -> None:
    await message.answer(
        "🏋️ <b>Main menu</b>",
        reply_markup=Keyboards.main_menu(member is not None and member.is_coach),
    )


@router.callback_query(F.data == "menu_main")
async def cb_menu(callback: CallbackQuery, member: UserProfile | None = None) -> None:
    await callback.message.edit_text(
        "🏋️ <b>Main menu</b>",
        reply_markup=Keyboards.main_menu(member is not None and member.is_coach),
    )
    await callback.answer()


@router.message(Command("help"))
async def cmd_help(message: Message) -> None:
    await message.answer(HELP_TEXT)


@router.callback_query(F.data == "menu_help")
async def cb_help(callback: CallbackQuery) -> None:
    await callback.message.answer(HELP_TEXT)
    await callback.answer()


@router.callback_query(F.data == "noop")
async def cb_noop(callback: CallbackQuery) -> None:
    await callback.answer()


@router.message(Command("cancel"))
async def cmd_cancel(message: Message, state: FSMContext) -> None:
    """
    Cancel any active dialog.
    """

    current_state = await state.get_state()
    if current_state is None:
        await message.answer("Nothing to cancel.")
        return

    await state.clear()
    await message.answer("Cancelled.")

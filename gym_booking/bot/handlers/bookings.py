from __future__ import annotations

from aiogram import F, Router
from aiogram.filters import Command
from aiogram.types import CallbackQuery, Message

from gym_booking.booking import get_booking_service
from gym_booking.bot.keyboards import Keyboards, MessageTemplates
from gym_booking.core.dates import format_day
from gym_booking.db.models import Booking, UserProfile

router = Router(name="bookings")


def _bookings_text(bookings: list[Booking]) -> str:
    if not bookings:
        return "You have no upcoming sessions. Use /schedule to book one."
    lines = [MessageTemplates.header("My bookings", "🎟")]
    for booking in bookings:
        lines.append(
            MessageTemplates.item(
                f"{format_day(booking.session_date)} {booking.session_start_time}-"
                f"{booking.session_end_time} · {booking.session_location}"
            )
        )
    return "\n".join(lines)


@router.message(Command("my_bookings"))
async def cmd_my_bookings(message: Message, member: UserProfile | None = None) -> None:
    """
    List upcoming confirmed bookings with cancel buttons.
    """

    if member is None:
        await message.answer("Send /start first so I can register you.")
        return

    bookings = await get_booking_service().upcoming_bookings(member)
    await message.answer(_bookings_text(bookings), reply_markup=Keyboards.my_bookings(bookings))


@router.callback_query(F.data == "menu_bookings")
async def cb_my_bookings(callback: CallbackQuery, member: UserProfile | None = None) -> None:
    if member is None:
        await callback.answer("Send /start first so I can register you.", show_alert=True)
        return
    bookings = await get_booking_service().upcoming_bookings(member)
    await callback.message.edit_text(_bookings_text(bookings), reply_markup=Keyboards.my_bookings(bookings))
    await callback.answer()


@router.callback_query(F.data.startswith("cancel:"))
async def cb_cancel_booking(callback: CallbackQuery, member: UserProfile | None = None) -> None:
    if member is None:
        await callback.answer("Send /start first so I can register you.", show_alert=True)
        return

    booking_id = callback.data.split(":", 1)[1]
    service = get_booking_service()
    result = await service.cancel(booking_id, member)
    await callback.answer(result.message, show_alert=not result.ok)

    bookings = await service.upcoming_bookings(member)
    await callback.message.edit_text(_bookings_text(bookings), reply_markup=Keyboards.my_bookings(bookings))

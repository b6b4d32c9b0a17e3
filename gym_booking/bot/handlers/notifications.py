from __future__ import annotations

from aiogram import F, Router, html
from aiogram.filters import Command, CommandObject
from aiogram.types import CallbackQuery, InlineKeyboardMarkup, Message
from pydantic import ValidationError

from gym_booking.bot.keyboards import Keyboards, MessageTemplates
from gym_booking.core.logging import configure_logging
from gym_booking.db import get_store
from gym_booking.db.models import PushSubscriptionInfo, UserProfile
from gym_booking.notifications import NotificationFeed, PushSubscriptionRegistry

router = Router(name="notifications")
logger = configure_logging()


async def _render_feed(member: UserProfile) -> tuple[str, InlineKeyboardMarkup]:
    feed = NotificationFeed(get_store())
    items = await feed.list_for_user(member)
    if not items:
        return "No notifications yet.", Keyboards.notifications()

    unread = [n for n in items if not n.read]
    lines = [MessageTemplates.header(f"Notifications ({len(unread)} unread)", "🔔")]
    for notification in items:
        marker = "🆕" if not notification.read else "▫️"
        lines.append(f"{marker} <b>{html.quote(notification.title)}</b>\n{html.quote(notification.message)}")
    return "\n\n".join(lines), Keyboards.notifications(unread)


@router.message(Command("notifications"))
async def cmd_notifications(message: Message, member: UserProfile | None = None) -> None:
    """
    Show the latest 20 notifications (own and broadcast).
    """

    if member is None:
        await message.answer("Send /start first so I can register you.")
        return
    text, keyboard = await _render_feed(member)
    await message.answer(text, reply_markup=keyboard)


@router.callback_query(F.data == "menu_notifications")
async def cb_notifications(callback: CallbackQuery, member: UserProfile | None = None) -> None:
    if member is None:
        await callback.answer("Send /start first so I can register you.", show_alert=True)
        return
    text, keyboard = await _render_feed(member)
    await callback.message.edit_text(text, reply_markup=keyboard)
    await callback.answer()


@router.callback_query(F.data.startswith("read:"))
async def cb_read_one(callback: CallbackQuery, member: UserProfile | None = None) -> None:
    if member is None:
        await callback.answer()
        return
    notification_id = callback.data.split(":", 1)[1]
    if not await NotificationFeed(get_store()).mark_as_read(notification_id, member):
        await callback.answer("Notification not found", show_alert=True)
        return
    text, keyboard = await _render_feed(member)
    await callback.message.edit_text(text, reply_markup=keyboard)
    await callback.answer()


@router.message(Command("read_all"))
async def cmd_read_all(message: Message, member: UserProfile | None = None) -> None:
    if member is None:
        await message.answer("Send /start first so I can register you.")
        return
    count = await NotificationFeed(get_store()).mark_all_as_read(member)
    await message.answer(MessageTemplates.success(f"Marked {count} notification(s) as read."))


@router.callback_query(F.data == "notifications_read_all")
async def cb_read_all(callback: CallbackQuery, member: UserProfile | None = None) -> None:
    if member is None:
        await callback.answer()
        return
    await NotificationFeed(get_store()).mark_all_as_read(member)
    text, keyboard = await _render_feed(member)
    await callback.message.edit_text(text, reply_markup=keyboard)
    await callback.answer("Done")


async def _register_push(message: Message, member: UserProfile | None, raw: str) -> None:
    if member is None:
        await message.answer("Send /start first so I can register you.")
        return
    try:
        info = PushSubscriptionInfo.model_validate_json(raw)
    except ValidationError as exc:
        logger.info("Rejected push subscription from %s: %s", member.id, exc)
        await message.answer(MessageTemplates.error("That doesn't look like a push subscription."))
        return

    await PushSubscriptionRegistry(get_store()).add(member.id, info)
    await message.answer(MessageTemplates.success("Push notifications enabled on this device."))


@router.message(F.web_app_data)
async def on_web_app_data(message: Message, member: UserProfile | None = None) -> None:
    """
    Push subscription JSON sent by the booking web app via `Telegram.WebApp.sendData`.
    """

    await _register_push(message, member, message.web_app_data.data)


@router.message(Command("push_subscribe"))
async def cmd_push_subscribe(
    message: Message,
    command: CommandObject,
    member: UserProfile | None = None,
) -> None:
    if not command.args:
        await message.answer("Usage: /push_subscribe {\"endpoint\": ..., \"keys\": {...}}")
        return
    await _register_push(message, member, command.args)


@router.message(Command("push_off"))
async def cmd_push_off(message: Message, member: UserProfile | None = None) -> None:
    if member is None:
        await message.answer("Send /start first so I can register you.")
        return
    await PushSubscriptionRegistry(get_store()).disable(member.id)
    await message.answer(MessageTemplates.info("Push notifications disabled."))

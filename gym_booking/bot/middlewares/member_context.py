from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict

from aiogram import BaseMiddleware
from aiogram.types import CallbackQuery, Message, TelegramObject

from gym_booking.core.logging import configure_logging
from gym_booking.db import get_store
from gym_booking.db.models import UserProfile, user_id_for_telegram
from gym_booking.db.repository import GymRepository


logger = configure_logging()


class MemberContextMiddleware(BaseMiddleware):
    """
    Middleware that attaches the current user profile to handler data.

    Resolution is based on Telegram user id and a store lookup.
    Works for both Message and CallbackQuery events.
    """

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        # Handle both Message and CallbackQuery
        from_user = None
        if isinstance(event, Message):
            from_user = event.from_user
        elif isinstance(event, CallbackQuery):
            from_user = event.from_user

        if from_user:
            repo = GymRepository(get_store())
            member: UserProfile | None
            try:
                member = await repo.get_user(user_id_for_telegram(from_user.id))
            except Exception as exc:  # noqa: BLE001
                logger.warning("Failed to resolve member context: %s", exc)
                member = None

            data["member"] = member

        return await handler(event, data)

from __future__ import annotations

import asyncio

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.fsm.storage.memory import MemoryStorage

from gym_booking.bot.handlers import setup_routers
from gym_booking.bot.middlewares import MemberContextMiddleware
from gym_booking.bot.scheduler import get_reminder_scheduler
from gym_booking.core import get_settings
from gym_booking.core.logging import configure_logging
from gym_booking.db import close_store, get_store
from gym_booking.notifications import NotificationTriggers, configure_vapid


async def _run_bot() -> None:
    settings = get_settings()
    logger = configure_logging()

    bot = Bot(
        token=settings.bot_token,
        default=DefaultBotProperties(parse_mode=ParseMode.HTML),
    )
    dp = Dispatcher(storage=MemoryStorage())
    dp.message.middleware(MemberContextMiddleware())
    dp.callback_query.middleware(MemberContextMiddleware())
    dp.include_router(setup_routers())

    logger.info("Starting bot in %s environment (%s store)", settings.environment, settings.storage_backend)

    if configure_vapid(settings) is None:
        logger.warning("VAPID keys not configured, push notifications are disabled")

    triggers = NotificationTriggers(get_store())
    triggers.register()

    scheduler = get_reminder_scheduler(triggers)
    await scheduler.start()

    try:
        await dp.start_polling(bot, allowed_updates=dp.resolve_used_update_types())
    finally:
        await scheduler.stop()
        triggers.unregister()
        await get_store().changes.drain()
        await close_store()
        await bot.session.close()


def main() -> None:
    asyncio.run(_run_bot())


if __name__ == "__main__":
    main()

from aiogram import Router

from . import bookings, coach, notifications, schedule, slots, start


def setup_routers() -> Router:
    """
    Aggregate and return root router for the bot.
    """

    router = Router(name="root")
    router.include_router(start.router)
    router.include_router(schedule.router)
    router.include_router(bookings.router)
    router.include_router(notifications.router)
    router.include_router(coach.router)
    router.include_router(slots.router)
    return router

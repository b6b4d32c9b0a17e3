from __future__ import annotations

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from gym_booking.core import Settings, get_settings
from gym_booking.notifications.triggers import NotificationTriggers

logger = logging.getLogger(__name__)


class ReminderScheduler:
    """
    APScheduler manager for the daily "session today" reminders.
    Runs once a day at REMINDER_HOUR in REMINDER_TIMEZONE.
    """

    def __init__(self, triggers: NotificationTriggers, settings: Settings | None = None) -> None:
        self.triggers = triggers
        self.settings = settings or get_settings()
        self.scheduler: AsyncIOScheduler | None = None

    async def start(self) -> None:
        self.scheduler = AsyncIOScheduler(timezone=self.settings.reminder_timezone)
        self.scheduler.add_job(
            self._send_daily_reminders,
            CronTrigger(
                hour=self.settings.reminder_hour,
                minute=0,
                timezone=self.settings.reminder_timezone,
            ),
            id="daily_reminders",
            name="Daily Session Reminders",
        )
        self.scheduler.start()
        logger.info(
            "Reminder scheduler started (%02d:00 %s)",
            self.settings.reminder_hour,
            self.settings.reminder_timezone,
        )

    async def stop(self) -> None:
        """
        Stop the scheduler gracefully.
        """
        if self.scheduler:
            self.scheduler.shutdown()
            self.scheduler = None
            logger.info("Reminder scheduler stopped")

    async def _send_daily_reminders(self) -> None:
        try:
            report = await self.triggers.send_daily_reminders()
        except Exception as exc:  # noqa: BLE001
            logger.exception("Error sending daily reminders: %s", exc)
            return
        logger.info("Daily reminders sent: %s success, %s failure", report.success, report.failed)


_scheduler: ReminderScheduler | None = None


def get_reminder_scheduler(triggers: NotificationTriggers | None = None) -> ReminderScheduler:
    """
    Get or create the global reminder scheduler.
    """
    global _scheduler
    if _scheduler is None:
        if triggers is None:
            raise RuntimeError("Notification triggers required to initialize scheduler")
        _scheduler = ReminderScheduler(triggers)
    return _scheduler

from __future__ import annotations

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from talentpipe.core.config import settings
from talentpipe.jobs.tasks import run_interview_feedback_reminders
from talentpipe.services.notifications import NotificationHook


def start_scheduler(notifier: NotificationHook) -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        run_interview_feedback_reminders,
        IntervalTrigger(minutes=settings.reminder_interval_minutes),
        args=[notifier],
        id="interview_feedback_reminders",
        replace_existing=True,
    )
    scheduler.start()
    return scheduler

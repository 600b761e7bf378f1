from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from talentpipe.core.config import settings
from talentpipe.core.datetime_utils import format_local_datetime, utcnow
from talentpipe.db.session import SessionLocal, unit_of_work
from talentpipe.services.candidate_store import CandidateStore
from talentpipe.services.events import event_exists, log_event
from talentpipe.services.identity import UserDirectory
from talentpipe.services.interview_store import InterviewStore
from talentpipe.services.notifications import EventType, NotificationEvent, NotificationHook
from talentpipe.services.stage_store import StageStore

logger = logging.getLogger("talentpipe.jobs")

FEEDBACK_REMINDER_ACTION = "feedback_reminder_sent"


async def run_interview_feedback_reminders(
    notifier: NotificationHook,
    *,
    session_factory: Callable[[], AsyncSession] = SessionLocal,
    now: datetime | None = None,
) -> int:
    """Remind interviewers of bookings that ended long ago without an outcome. Each booking is reminded once."""
    cutoff = (now or utcnow()) - timedelta(hours=settings.feedback_reminder_hours)
    pending: list[NotificationEvent] = []

    async with session_factory() as session:
        async with unit_of_work(session):
            users = UserDirectory(session)
            candidates = CandidateStore(session)
            stages = StageStore(session)
            for interview in await InterviewStore(session).scheduled_before(cutoff):
                if interview.ends_at > cutoff:
                    continue
                if await event_exists(
                    session,
                    candidate_id=interview.candidate_id,
                    action_type=FEEDBACK_REMINDER_ACTION,
                    related_entity_type="interview",
                    related_entity_id=interview.interview_id,
                ):
                    continue
                interviewer = await users.get_user(interview.interviewer_id)
                if not interviewer:
                    continue
                candidate = await candidates.get(interview.candidate_id)
                stage = await stages.get(interview.stage_id)
                await log_event(
                    session,
                    candidate_id=interview.candidate_id,
                    action_type=FEEDBACK_REMINDER_ACTION,
                    related_entity_type="interview",
                    related_entity_id=interview.interview_id,
                    meta_json={"interviewer_id": interview.interviewer_id},
                )
                pending.append(
                    NotificationEvent(
                        event_type=EventType.FEEDBACK_REMINDER,
                        candidate_id=interview.candidate_id,
                        recipient_id=interview.interviewer_id,
                        payload={
                            "interview_id": interview.interview_id,
                            "candidate_name": candidate.full_name if candidate else "",
                            "stage_name": stage.stage_name if stage else "",
                            "interviewer_name": interviewer.full_name,
                            "interviewer_email": interviewer.email,
                            "scheduled_start": format_local_datetime(interview.scheduled_at),
                        },
                    )
                )

    for event in pending:
        await notifier.emit(event)
    if pending:
        logger.info("feedback_reminders_sent", extra={"count": len(pending)})
    return len(pending)

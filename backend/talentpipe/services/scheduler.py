"""Interview booking on top of the conflict checker and the two stores."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from talentpipe.core.config import settings
from talentpipe.core.datetime_utils import format_local_datetime, format_local_time, to_utc_naive, utcnow
from talentpipe.core.errors import ConflictError, NotFoundError, PreconditionError, ValidationError
from talentpipe.core.stage_machine import (
    ACTIVE,
    CANCELLED,
    IN_PROGRESS,
    PENDING,
    SCHEDULED,
    can_transition_interview,
    can_transition_stage,
    is_completed_stage,
)
from talentpipe.db.session import unit_of_work
from talentpipe.models.candidate import Candidate
from talentpipe.models.interview import Interview
from talentpipe.models.stage import Stage
from talentpipe.services.candidate_store import CandidateStore
from talentpipe.services.conflicts import booking_end, find_conflict
from talentpipe.services.events import log_event
from talentpipe.services.identity import UserDirectory, UserRef
from talentpipe.services.interview_store import InterviewStore
from talentpipe.services.locks import PipelineLocks
from talentpipe.services.notifications import EventType, NotificationEvent, NotificationHook, NullNotificationHook
from talentpipe.services.stage_store import StageStore

logger = logging.getLogger("talentpipe.scheduler")


def interview_payload(
    interview: Interview,
    *,
    stage: Stage | None,
    candidate: Candidate | None,
    interviewer: UserRef | None,
) -> dict[str, Any]:
    return {
        "interview_id": interview.interview_id,
        "stage_id": interview.stage_id,
        "stage_name": stage.stage_name if stage else None,
        "candidate_id": interview.candidate_id,
        "candidate_name": candidate.full_name if candidate else None,
        "interviewer_id": interview.interviewer_id,
        "interviewer_name": interviewer.full_name if interviewer else None,
        "interviewer_email": interviewer.email if interviewer else None,
        "scheduled_at": interview.scheduled_at.isoformat(),
        "scheduled_start": format_local_datetime(interview.scheduled_at),
        "duration": interview.duration,
        "status": interview.status,
    }


class Scheduler:
    def __init__(
        self,
        session: AsyncSession,
        *,
        locks: PipelineLocks,
        notifier: NotificationHook | None = None,
        users: UserDirectory | None = None,
    ):
        self.session = session
        self.locks = locks
        self.notifier = notifier or NullNotificationHook()
        self.users = users or UserDirectory(session)
        self.stages = StageStore(session)
        self.interviews = InterviewStore(session)
        self.candidates = CandidateStore(session)

    @staticmethod
    def _validate_duration(duration: int | None) -> int:
        if duration is None:
            return settings.default_interview_minutes
        if duration <= 0:
            raise ValidationError("Interview duration must be positive.", details={"duration": duration})
        if duration > settings.max_interview_minutes:
            raise ValidationError(
                f"Interview duration cannot exceed {settings.max_interview_minutes} minutes.",
                details={"duration": duration},
            )
        return duration

    @staticmethod
    def _conflict_error(existing: Interview) -> ConflictError:
        conflict_time = format_local_time(existing.scheduled_at)
        return ConflictError(
            f"Interviewer is busy at this time. Conflicts with the interview at {conflict_time}.",
            conflict_time=conflict_time,
            interview_id=existing.interview_id,
            details={
                "conflict_start": existing.scheduled_at.isoformat(),
                "conflict_end": booking_end(existing).isoformat(),
            },
        )

    @staticmethod
    def _ensure_bookable(candidate: Candidate, stage: Stage) -> None:
        if candidate.status != ACTIVE:
            raise PreconditionError(
                f"Candidate is '{candidate.status}'; only active candidates can be scheduled.",
                details={"candidate_id": candidate.candidate_id, "status": candidate.status},
            )
        if stage.stage_index != candidate.current_stage_index:
            raise PreconditionError(
                "Only the candidate's current stage can be scheduled.",
                details={"stage_index": stage.stage_index, "current_stage_index": candidate.current_stage_index},
            )
        if is_completed_stage(stage.status):
            raise PreconditionError(f"Stage already completed as '{stage.status}'.", details={"stage_id": stage.stage_id})
        if stage.status == IN_PROGRESS:
            raise PreconditionError(
                "Stage already has a scheduled interview; reschedule it instead.",
                details={"stage_id": stage.stage_id},
            )

    async def book_interview(
        self,
        stage_id: int,
        interviewer_id: int,
        scheduled_at: datetime,
        duration: int | None = None,
        *,
        meeting_link: str | None = None,
        performed_by: int | None = None,
    ) -> Interview:
        duration = self._validate_duration(duration)
        start_at = to_utc_naive(scheduled_at)

        async with unit_of_work(self.session):
            candidate_id = await self.stages.candidate_id_of(stage_id)

        # Lock spans check, insert and commit, closing the check-then-insert race.
        async with self.locks.hold(self.session, interviewers=interviewer_id, candidates=candidate_id):
            async with unit_of_work(self.session):
                stage = await self.stages.get_for_update(stage_id)
                interviewer = await self.users.get_user(interviewer_id)
                if not interviewer:
                    raise NotFoundError("Interviewer not found", details={"interviewer_id": interviewer_id})

                existing = await self.interviews.scheduled_for_interviewer(interviewer_id)
                decision = find_conflict(existing, start_at, duration)
                if decision.has_conflict:
                    raise self._conflict_error(decision.conflicting)

                candidate = await self.candidates.get_for_update(stage.candidate_id)
                self._ensure_bookable(candidate, stage)

                interview = await self.interviews.add(
                    stage_id=stage.stage_id,
                    candidate_id=stage.candidate_id,
                    interviewer_id=interviewer_id,
                    scheduled_at=start_at,
                    duration=duration,
                    meeting_link=meeting_link,
                )
                from_status = stage.status
                stage.status = IN_PROGRESS
                stage.scheduled_at = start_at
                stage.updated_at = utcnow()

                await log_event(
                    self.session,
                    candidate_id=candidate.candidate_id,
                    action_type="interview_scheduled",
                    related_entity_type="interview",
                    related_entity_id=interview.interview_id,
                    from_status=from_status,
                    to_status=IN_PROGRESS,
                    performed_by=performed_by,
                    meta_json={
                        "stage_id": stage.stage_id,
                        "stage_name": stage.stage_name,
                        "interviewer_id": interviewer_id,
                        "scheduled_at": start_at.isoformat(),
                        "duration": duration,
                    },
                )
                payload = interview_payload(interview, stage=stage, candidate=candidate, interviewer=interviewer)

        logger.info(
            "interview_scheduled",
            extra={"interview_id": interview.interview_id, "stage_id": stage_id, "interviewer_id": interviewer_id},
        )
        await self.notifier.emit(
            NotificationEvent(
                event_type=EventType.INTERVIEW_SCHEDULED,
                candidate_id=interview.candidate_id,
                recipient_id=interviewer_id,
                payload=payload,
            )
        )
        return interview

    async def reschedule_interview(
        self,
        interview_id: int,
        new_date_time: datetime,
        *,
        performed_by: int | None = None,
    ) -> Interview:
        start_at = to_utc_naive(new_date_time)
        async with unit_of_work(self.session):
            candidate_id, interviewer_id, _ = await self.interviews.owners_of(interview_id)

        async with self.locks.hold(self.session, interviewers=interviewer_id, candidates=candidate_id):
            async with unit_of_work(self.session):
                interview = await self.interviews.get_for_update(interview_id)
                if interview.status != SCHEDULED:
                    raise PreconditionError(
                        f"Only scheduled interviews can be rescheduled (status is '{interview.status}').",
                        details={"interview_id": interview_id, "status": interview.status},
                    )

                others = await self.interviews.scheduled_for_interviewer(
                    interviewer_id,
                    exclude_interview_id=interview.interview_id,
                )
                decision = find_conflict(others, start_at, interview.duration)
                if decision.has_conflict:
                    raise self._conflict_error(decision.conflicting)

                previous_at = interview.scheduled_at
                interview.scheduled_at = start_at
                interview.updated_at = utcnow()

                stage = await self.stages.get(interview.stage_id)
                if stage is not None:
                    stage.scheduled_at = start_at
                    stage.updated_at = utcnow()
                candidate = await self.candidates.get(interview.candidate_id)
                interviewer = await self.users.get_user(interviewer_id)

                await log_event(
                    self.session,
                    candidate_id=interview.candidate_id,
                    action_type="interview_rescheduled",
                    related_entity_type="interview",
                    related_entity_id=interview.interview_id,
                    performed_by=performed_by,
                    meta_json={
                        "old_scheduled_at": previous_at.isoformat(),
                        "new_scheduled_at": start_at.isoformat(),
                    },
                )
                payload = interview_payload(interview, stage=stage, candidate=candidate, interviewer=interviewer)
                payload["previous_scheduled_at"] = previous_at.isoformat()
                payload["previous_start"] = format_local_datetime(previous_at)

        logger.info(
            "interview_rescheduled",
            extra={"interview_id": interview_id, "old": previous_at.isoformat(), "new": start_at.isoformat()},
        )
        await self.notifier.emit(
            NotificationEvent(
                event_type=EventType.INTERVIEW_RESCHEDULED,
                candidate_id=interview.candidate_id,
                recipient_id=interviewer_id,
                payload=payload,
            )
        )
        return interview

    async def cancel_interview(
        self,
        interview_id: int,
        *,
        reason: str | None = None,
        performed_by: int | None = None,
    ) -> Interview:
        async with unit_of_work(self.session):
            candidate_id, _, _ = await self.interviews.owners_of(interview_id)

        async with self.locks.hold(self.session, candidates=candidate_id):
            async with unit_of_work(self.session):
                interview = await self.interviews.get_for_update(interview_id)
                if not can_transition_interview(interview.status, CANCELLED):
                    raise PreconditionError(
                        f"Only scheduled interviews can be cancelled (status is '{interview.status}').",
                        details={"interview_id": interview_id, "status": interview.status},
                    )
                from_status = interview.status
                interview.status = CANCELLED
                if reason:
                    interview.notes = "\n".join(filter(None, [interview.notes, f"Cancelled: {reason.strip()}"]))
                interview.updated_at = utcnow()

                # The stage goes back to waiting for a booking.
                stage = await self.stages.get_for_update(interview.stage_id)
                if can_transition_stage(stage.status, PENDING):
                    stage.status = PENDING
                    stage.scheduled_at = None
                    stage.updated_at = utcnow()
                candidate = await self.candidates.get(candidate_id)
                interviewer = await self.users.get_user(interview.interviewer_id)

                await log_event(
                    self.session,
                    candidate_id=candidate_id,
                    action_type="interview_cancelled",
                    related_entity_type="interview",
                    related_entity_id=interview.interview_id,
                    from_status=from_status,
                    to_status=CANCELLED,
                    performed_by=performed_by,
                    meta_json={"reason": reason} if reason else None,
                )
                payload = interview_payload(interview, stage=stage, candidate=candidate, interviewer=interviewer)

        await self.notifier.emit(
            NotificationEvent(
                event_type=EventType.INTERVIEW_CANCELLED,
                candidate_id=interview.candidate_id,
                recipient_id=interview.interviewer_id,
                payload=payload,
            )
        )
        return interview

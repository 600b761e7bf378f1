"""Candidate pipeline state machine.

Every mutating operation runs as one unit of work: stage, candidate and interview
rows change together or not at all, under the candidate's pipeline lock so two
callers never decide the same stage. Notifications go out only after the commit
and never affect the outcome of the call.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Iterable, List

from sqlalchemy.ext.asyncio import AsyncSession

from talentpipe.core.datetime_utils import to_utc_naive, utcnow
from talentpipe.core.errors import ForbiddenError, PreconditionError, ValidationError
from talentpipe.core.stage_machine import (
    ACTIVE,
    COMPLETED,
    DISMISSED,
    DOCUMENTATION,
    HIRED,
    OUTCOME_STATUSES,
    PASSED,
    PENDING,
    REJECTED,
    WAITING,
    can_transition_candidate,
    can_transition_interview,
    can_transition_stage,
    is_completed_stage,
    normalize_status,
)
from talentpipe.db.session import unit_of_work
from talentpipe.models.candidate import Candidate
from talentpipe.models.interview import Interview
from talentpipe.models.stage import Stage
from talentpipe.schemas.candidate import CandidateCreate
from talentpipe.schemas.stage_chain import chain_to_json, parse_stage_chain
from talentpipe.schemas.user import UserContext
from talentpipe.services.candidate_store import CandidateStore
from talentpipe.services.events import log_event
from talentpipe.services.identity import UserDirectory
from talentpipe.services.interview_store import InterviewStore
from talentpipe.services.locks import PipelineLocks
from talentpipe.services.notifications import EventType, NotificationEvent, NotificationHook, NullNotificationHook
from talentpipe.services.stage_store import StageStore

logger = logging.getLogger("talentpipe.pipeline")


def _require_text(value: str | None, message: str, field: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValidationError(message, details={"field": field})
    return cleaned


def _stage_snapshot(stage: Stage) -> dict[str, Any]:
    return {
        "stage_index": stage.stage_index,
        "stage_name": stage.stage_name,
        "interviewer_id": stage.interviewer_id,
        "status": stage.status,
        "comments": stage.comments,
        "rating": stage.rating,
        "completed_at": stage.completed_at.isoformat() if stage.completed_at else None,
    }


class PipelineEngine:
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
        self.candidates = CandidateStore(session)
        self.stages = StageStore(session)
        self.interviews = InterviewStore(session)

    @asynccontextmanager
    async def _candidate_unit(self, candidate_id: int) -> AsyncIterator[Candidate]:
        """One unit of work under the candidate's lock, on a freshly loaded candidate row."""
        async with self.locks.hold(self.session, candidates=candidate_id):
            async with unit_of_work(self.session):
                yield await self.candidates.get_for_update(candidate_id)

    async def _emit_all(self, events: Iterable[NotificationEvent]) -> None:
        for event in events:
            await self.notifier.emit(event)

    def _ensure_candidate_transition(self, candidate: Candidate, to_status: str, message: str) -> None:
        if not can_transition_candidate(candidate.status, to_status):
            raise PreconditionError(
                message,
                details={"candidate_id": candidate.candidate_id, "status": candidate.status, "target": to_status},
            )

    # Intake and chain

    async def create_candidate(self, payload: CandidateCreate, *, created_by: int | None = None) -> Candidate:
        entries = parse_stage_chain(payload.interview_stage_chain)
        async with unit_of_work(self.session):
            candidate = await self.candidates.add(
                Candidate(
                    full_name=payload.full_name.strip(),
                    email=str(payload.email) if payload.email else None,
                    phone=payload.phone,
                    city=payload.city,
                    source=payload.source,
                    vacancy_id=payload.vacancy_id,
                    interview_stage_chain=chain_to_json(entries),
                    current_stage_index=0,
                    status=ACTIVE,
                    created_by=created_by,
                )
            )
            await self.stages.materialize(candidate.candidate_id, entries)
            await log_event(
                self.session,
                candidate_id=candidate.candidate_id,
                action_type="candidate_created",
                to_status=ACTIVE,
                performed_by=created_by,
                meta_json={"stages": len(entries)},
            )
        logger.info("candidate_created", extra={"candidate_id": candidate.candidate_id, "stages": len(entries)})
        return candidate

    @staticmethod
    def _ensure_chain_editable(candidate: Candidate) -> None:
        if candidate.status != ACTIVE:
            raise PreconditionError(
                "Stage chain can only be edited while the candidate is active.",
                details={"candidate_id": candidate.candidate_id, "status": candidate.status},
            )

    async def materialize_chain(self, candidate_id: int, chain: Iterable[Any]) -> List[Stage]:
        """Replace the candidate's stage rows with ``chain``, pointing it back at the first stage."""
        entries = parse_stage_chain(chain)
        async with self._candidate_unit(candidate_id) as candidate:
            self._ensure_chain_editable(candidate)
            stages = await self.stages.materialize(candidate_id, entries)
            candidate.interview_stage_chain = chain_to_json(entries)
            candidate.current_stage_index = 0
            candidate.updated_at = utcnow()
        return stages

    async def replace_stage_chain(
        self,
        candidate_id: int,
        chain: Iterable[Any],
        *,
        performed_by: int | None = None,
    ) -> List[Stage]:
        entries = parse_stage_chain(chain)
        async with self._candidate_unit(candidate_id) as candidate:
            self._ensure_chain_editable(candidate)
            # Keep the outgoing rows in the audit trail; they are deleted below.
            previous = [_stage_snapshot(stage) for stage in await self.stages.list_for_candidate(candidate_id)]
            previous_index = candidate.current_stage_index

            stages = await self.stages.materialize(candidate_id, entries)
            candidate.interview_stage_chain = chain_to_json(entries)
            candidate.current_stage_index = 0
            candidate.updated_at = utcnow()

            await log_event(
                self.session,
                candidate_id=candidate_id,
                action_type="stage_chain_replaced",
                performed_by=performed_by,
                meta_json={
                    "previous_stage_index": previous_index,
                    "previous_stages": previous,
                    "new_chain": chain_to_json(entries),
                },
            )

        logger.info("stage_chain_replaced", extra={"candidate_id": candidate_id, "stages": len(stages)})
        await self.notifier.emit(
            NotificationEvent(
                event_type=EventType.STAGE_CHAIN_REPLACED,
                candidate_id=candidate_id,
                payload={"candidate_name": candidate.full_name, "stages": chain_to_json(entries)},
            )
        )
        return stages

    async def activate_stage(self, candidate_id: int, *, performed_by: int | None = None) -> Stage:
        """Flip the stage at the candidate's pointer from waiting to pending."""
        async with self._candidate_unit(candidate_id) as candidate:
            if candidate.status != ACTIVE:
                raise PreconditionError(
                    "Only active candidates have a stage to activate.",
                    details={"candidate_id": candidate_id, "status": candidate.status},
                )
            stage = await self.stages.get_by_index(candidate_id, candidate.current_stage_index)
            if stage is None:
                raise PreconditionError(
                    "Candidate has no stage at the current position.",
                    details={"candidate_id": candidate_id, "current_stage_index": candidate.current_stage_index},
                )
            if stage.status != WAITING:
                raise PreconditionError(
                    f"Stage is already '{stage.status}'.",
                    details={"stage_id": stage.stage_id, "status": stage.status},
                )
            stage.status = PENDING
            stage.updated_at = utcnow()
            await log_event(
                self.session,
                candidate_id=candidate_id,
                action_type="stage_activated",
                related_entity_type="stage",
                related_entity_id=stage.stage_id,
                from_status=WAITING,
                to_status=PENDING,
                performed_by=performed_by,
            )
        return stage

    # Outcomes

    async def record_outcome(
        self,
        stage_id: int,
        status: str,
        comments: str | None,
        completed_at: datetime | None = None,
        *,
        rating: int | None = None,
        performed_by: int | None = None,
        interview_id: int | None = None,
    ) -> Stage:
        """Decide the candidate's current stage and move the candidate on.

        ``interview_id`` names the booking the outcome was entered on; it must still
        be open when the lock is taken.
        """
        outcome = normalize_status(status)
        if outcome not in OUTCOME_STATUSES:
            raise ValidationError(
                "Outcome must be 'passed' or 'failed'.",
                details={"field": "status", "value": status},
            )
        feedback = _require_text(comments, "Feedback is required when completing an interview stage.", "comments")
        if rating is not None and not 1 <= rating <= 5:
            raise ValidationError("Rating must be between 1 and 5.", details={"field": "rating", "value": rating})
        finished_at = to_utc_naive(completed_at) if completed_at else utcnow()

        events: list[NotificationEvent] = []
        async with unit_of_work(self.session):
            candidate_id = await self.stages.candidate_id_of(stage_id)
        async with self._candidate_unit(candidate_id) as candidate:
            stage = await self.stages.get_for_update(stage_id)
            if interview_id is not None:
                interview = await self.interviews.get_for_update(interview_id)
                if not can_transition_interview(interview.status, COMPLETED):
                    raise PreconditionError(
                        f"Interview is '{interview.status}' and cannot receive an outcome.",
                        details={"interview_id": interview_id, "status": interview.status},
                    )

            if is_completed_stage(stage.status):
                raise PreconditionError(
                    f"Stage already has outcome '{stage.status}'.",
                    details={"stage_id": stage_id, "status": stage.status},
                )
            if candidate.status != ACTIVE:
                raise PreconditionError(
                    f"Candidate is '{candidate.status}'; outcomes can only be recorded for active candidates.",
                    details={"candidate_id": candidate.candidate_id, "status": candidate.status},
                )
            if stage.stage_index != candidate.current_stage_index or not can_transition_stage(stage.status, outcome):
                raise PreconditionError(
                    "Only the candidate's current stage can receive an outcome.",
                    details={"stage_index": stage.stage_index, "current_stage_index": candidate.current_stage_index},
                )

            from_status = stage.status
            now = utcnow()
            stage.status = outcome
            stage.completed_at = finished_at
            stage.comments = feedback
            if rating is not None:
                stage.rating = rating
            stage.updated_at = now

            # The booking mirrors the stage outcome.
            for interview in await self.interviews.for_stage(stage.stage_id):
                if not can_transition_interview(interview.status, COMPLETED):
                    continue
                interview.outcome = outcome
                interview.status = COMPLETED
                interview.notes = feedback
                interview.updated_at = now

            await log_event(
                self.session,
                candidate_id=candidate.candidate_id,
                action_type="stage_outcome_recorded",
                related_entity_type="stage",
                related_entity_id=stage.stage_id,
                from_status=from_status,
                to_status=outcome,
                performed_by=performed_by,
                meta_json={"stage_name": stage.stage_name, "comments": feedback, "rating": rating},
            )

            base_payload = {
                "candidate_name": candidate.full_name,
                "stage_id": stage.stage_id,
                "stage_name": stage.stage_name,
                "stage_index": stage.stage_index,
            }
            if outcome == PASSED:
                events.extend(await self._advance(candidate, stage, base_payload, performed_by))
            else:
                events.append(await self._reject(candidate, stage, feedback, base_payload, performed_by))
            candidate.updated_at = now

        logger.info(
            "stage_outcome_recorded",
            extra={
                "stage_id": stage_id,
                "candidate_id": stage.candidate_id,
                "outcome": outcome,
                "current_stage_index": candidate.current_stage_index,
                "candidate_status": candidate.status,
            },
        )
        await self._emit_all(events)
        return stage

    async def _advance(
        self,
        candidate: Candidate,
        stage: Stage,
        base_payload: dict[str, Any],
        performed_by: int | None,
    ) -> list[NotificationEvent]:
        next_index = stage.stage_index + 1
        candidate.current_stage_index = next_index
        next_stage = await self.stages.get_by_index(candidate.candidate_id, next_index)

        if next_stage is None:
            candidate.status = DOCUMENTATION
            await log_event(
                self.session,
                candidate_id=candidate.candidate_id,
                action_type="candidate_status_changed",
                from_status=ACTIVE,
                to_status=DOCUMENTATION,
                performed_by=performed_by,
                meta_json={"reason": "stage_chain_completed"},
            )
            return [
                NotificationEvent(
                    event_type=EventType.CANDIDATE_MOVED_TO_DOCUMENTATION,
                    candidate_id=candidate.candidate_id,
                    payload=dict(base_payload),
                )
            ]

        interviewer = await self.users.get_user(next_stage.interviewer_id)
        advanced = {
            **base_payload,
            "from_stage_index": stage.stage_index,
            "to_stage_index": next_index,
            "next_stage_id": next_stage.stage_id,
            "next_stage_name": next_stage.stage_name,
        }
        await log_event(
            self.session,
            candidate_id=candidate.candidate_id,
            action_type="stage_advanced",
            related_entity_type="stage",
            related_entity_id=next_stage.stage_id,
            performed_by=performed_by,
            meta_json={"from_stage_index": stage.stage_index, "to_stage_index": next_index},
        )
        return [
            NotificationEvent(
                event_type=EventType.STAGE_ADVANCED,
                candidate_id=candidate.candidate_id,
                payload=advanced,
            ),
            NotificationEvent(
                event_type=EventType.INTERVIEWER_ASSIGNED,
                candidate_id=candidate.candidate_id,
                recipient_id=next_stage.interviewer_id,
                payload={
                    "candidate_name": candidate.full_name,
                    "stage_id": next_stage.stage_id,
                    "stage_name": next_stage.stage_name,
                    "stage_index": next_index,
                    "interviewer_id": next_stage.interviewer_id,
                    "interviewer_name": interviewer.full_name if interviewer else None,
                    "interviewer_email": interviewer.email if interviewer else None,
                },
            ),
        ]

    async def _reject(
        self,
        candidate: Candidate,
        stage: Stage,
        feedback: str,
        base_payload: dict[str, Any],
        performed_by: int | None,
    ) -> NotificationEvent:
        # Pointer stays on the failed stage; later stages remain waiting.
        candidate.status = REJECTED
        candidate.rejection_stage = stage.stage_name
        candidate.rejection_reason = feedback
        await log_event(
            self.session,
            candidate_id=candidate.candidate_id,
            action_type="candidate_status_changed",
            from_status=ACTIVE,
            to_status=REJECTED,
            performed_by=performed_by,
            meta_json={"rejection_stage": stage.stage_name, "rejection_reason": feedback},
        )
        return NotificationEvent(
            event_type=EventType.CANDIDATE_REJECTED,
            candidate_id=candidate.candidate_id,
            payload={**base_payload, "rejection_reason": feedback},
        )

    async def record_interview_outcome(
        self,
        interview_id: int,
        outcome: str,
        notes: str | None,
        *,
        performed_by: int | None = None,
    ) -> Interview:
        async with unit_of_work(self.session):
            _, _, stage_id = await self.interviews.owners_of(interview_id)
        await self.record_outcome(stage_id, outcome, notes, performed_by=performed_by, interview_id=interview_id)
        return await self.interviews.require(interview_id)

    async def update_stage_comments(self, stage_id: int, comments: str | None, *, actor: UserContext) -> Stage:
        feedback = _require_text(comments, "Comments cannot be empty.", "comments")
        async with unit_of_work(self.session):
            stage = await self.stages.get_for_update(stage_id)
            if not actor.is_admin and actor.user_id != stage.interviewer_id:
                raise ForbiddenError(
                    "Only the stage interviewer or an admin can edit feedback.",
                    details={"stage_id": stage_id},
                )
            if not is_completed_stage(stage.status):
                raise PreconditionError(
                    "Feedback can only be edited on completed stages.",
                    details={"stage_id": stage_id, "status": stage.status},
                )
            previous = stage.comments
            stage.comments = feedback
            stage.updated_at = utcnow()
            await log_event(
                self.session,
                candidate_id=stage.candidate_id,
                action_type="stage_comments_updated",
                related_entity_type="stage",
                related_entity_id=stage.stage_id,
                performed_by=actor.user_id,
                meta_json={"previous": previous, "current": feedback},
            )
        return stage

    # Candidate lifecycle

    async def move_to_documentation(self, candidate_id: int, *, performed_by: int | None = None) -> Candidate:
        async with self._candidate_unit(candidate_id) as candidate:
            self._ensure_candidate_transition(
                candidate,
                DOCUMENTATION,
                f"Candidate is '{candidate.status}'; only active candidates can move to documentation.",
            )
            stages = await self.stages.list_for_candidate(candidate_id)
            unfinished = [stage.stage_name for stage in stages if stage.status != PASSED]
            if not stages or unfinished:
                raise PreconditionError(
                    "All interview stages must be passed before documentation.",
                    details={"candidate_id": candidate_id, "unfinished_stages": unfinished},
                )
            from_status = candidate.status
            candidate.status = DOCUMENTATION
            candidate.updated_at = utcnow()
            await log_event(
                self.session,
                candidate_id=candidate_id,
                action_type="candidate_status_changed",
                from_status=from_status,
                to_status=DOCUMENTATION,
                performed_by=performed_by,
            )
        await self.notifier.emit(
            NotificationEvent(
                event_type=EventType.CANDIDATE_MOVED_TO_DOCUMENTATION,
                candidate_id=candidate_id,
                payload={"candidate_name": candidate.full_name},
            )
        )
        return candidate

    async def complete_documentation(self, candidate_id: int, *, performed_by: int | None = None) -> Candidate:
        async with self._candidate_unit(candidate_id) as candidate:
            if candidate.status != DOCUMENTATION:
                raise PreconditionError(
                    f"Candidate is '{candidate.status}'; documentation can only be completed from 'documentation'.",
                    details={"candidate_id": candidate_id, "status": candidate.status},
                )
            candidate.status = HIRED
            candidate.updated_at = utcnow()
            await log_event(
                self.session,
                candidate_id=candidate_id,
                action_type="candidate_status_changed",
                from_status=DOCUMENTATION,
                to_status=HIRED,
                performed_by=performed_by,
            )
        logger.info("candidate_hired", extra={"candidate_id": candidate_id})
        await self.notifier.emit(
            NotificationEvent(
                event_type=EventType.CANDIDATE_HIRED,
                candidate_id=candidate_id,
                payload={"candidate_name": candidate.full_name},
            )
        )
        return candidate

    async def dismiss(
        self,
        candidate_id: int,
        reason: str | None,
        date: datetime,
        *,
        performed_by: int | None = None,
    ) -> Candidate:
        dismissal_reason = _require_text(reason, "Dismissal reason is required.", "dismissal_reason")
        async with self._candidate_unit(candidate_id) as candidate:
            if candidate.status != HIRED:
                raise PreconditionError(
                    f"Candidate is '{candidate.status}'; only hired employees can be dismissed.",
                    details={"candidate_id": candidate_id, "status": candidate.status},
                )
            candidate.status = DISMISSED
            candidate.dismissal_reason = dismissal_reason
            candidate.dismissal_date = to_utc_naive(date)
            candidate.updated_at = utcnow()
            await log_event(
                self.session,
                candidate_id=candidate_id,
                action_type="candidate_status_changed",
                from_status=HIRED,
                to_status=DISMISSED,
                performed_by=performed_by,
                meta_json={"dismissal_reason": dismissal_reason, "dismissal_date": candidate.dismissal_date},
            )
        await self.notifier.emit(
            NotificationEvent(
                event_type=EventType.CANDIDATE_DISMISSED,
                candidate_id=candidate_id,
                payload={"candidate_name": candidate.full_name, "dismissal_reason": dismissal_reason},
            )
        )
        return candidate

    async def delete_candidate(self, candidate_id: int, *, performed_by: int | None = None) -> None:
        async with self._candidate_unit(candidate_id) as candidate:
            await self.candidates.delete(candidate)
        logger.info("candidate_deleted", extra={"candidate_id": candidate_id, "performed_by": performed_by})

    # Read models

    async def candidate_detail(self, candidate_id: int) -> tuple[Candidate, List[Stage]]:
        candidate = await self.candidates.require(candidate_id)
        stages = await self.stages.list_for_candidate(candidate_id)
        return candidate, stages

    async def interviewer_workload(self, interviewer_id: int) -> list[tuple[Candidate, Stage]]:
        return await self.candidates.with_active_stage_for_interviewer(interviewer_id)

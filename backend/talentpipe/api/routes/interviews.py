from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from talentpipe.api import deps
from talentpipe.core.auth import require_roles
from talentpipe.core.datetime_utils import utcnow
from talentpipe.core.roles import Role
from talentpipe.schemas.candidate import CandidateOut, WorkloadItemOut
from talentpipe.schemas.interview import (
    InterviewBook,
    InterviewCancel,
    InterviewOut,
    InterviewOutcomeRequest,
    InterviewReschedule,
)
from talentpipe.schemas.stage import StageOut
from talentpipe.schemas.user import UserContext
from talentpipe.services.interview_store import InterviewStore
from talentpipe.services.pipeline import PipelineEngine
from talentpipe.services.scheduler import Scheduler

router = APIRouter(prefix="/interviews", tags=["interviews"])


@router.post("", response_model=InterviewOut, status_code=status.HTTP_201_CREATED)
async def book_interview(
    payload: InterviewBook,
    scheduler: Scheduler = Depends(deps.get_scheduler),
    user: UserContext = Depends(require_roles([Role.HR_MANAGER])),
):
    return await scheduler.book_interview(
        payload.stage_id,
        payload.interviewer_id,
        payload.scheduled_at,
        payload.duration,
        meeting_link=payload.meeting_link,
        performed_by=user.user_id,
    )


@router.get("", response_model=list[InterviewOut])
async def list_interviews(
    interviewer_id: int = Query(...),
    upcoming: bool = Query(default=False),
    session: AsyncSession = Depends(deps.get_db_session),
    _user: UserContext = Depends(deps.get_user),
):
    return await InterviewStore(session).list_for_interviewer(
        interviewer_id,
        upcoming_from=utcnow() if upcoming else None,
    )


@router.get("/workload/{interviewer_id}", response_model=list[WorkloadItemOut])
async def interviewer_workload(
    interviewer_id: int,
    engine: PipelineEngine = Depends(deps.get_pipeline),
    _user: UserContext = Depends(deps.get_user),
):
    rows = await engine.interviewer_workload(interviewer_id)
    return [
        WorkloadItemOut(candidate=CandidateOut.model_validate(candidate), stage=StageOut.model_validate(stage))
        for candidate, stage in rows
    ]


@router.post("/{interview_id}/reschedule", response_model=InterviewOut)
async def reschedule_interview(
    interview_id: int,
    payload: InterviewReschedule,
    scheduler: Scheduler = Depends(deps.get_scheduler),
    user: UserContext = Depends(require_roles([Role.HR_MANAGER])),
):
    return await scheduler.reschedule_interview(interview_id, payload.new_date_time, performed_by=user.user_id)


@router.post("/{interview_id}/cancel", response_model=InterviewOut)
async def cancel_interview(
    interview_id: int,
    payload: InterviewCancel,
    scheduler: Scheduler = Depends(deps.get_scheduler),
    user: UserContext = Depends(require_roles([Role.HR_MANAGER])),
):
    return await scheduler.cancel_interview(interview_id, reason=payload.reason, performed_by=user.user_id)


@router.post("/{interview_id}/outcome", response_model=InterviewOut)
async def record_interview_outcome(
    interview_id: int,
    payload: InterviewOutcomeRequest,
    engine: PipelineEngine = Depends(deps.get_pipeline),
    user: UserContext = Depends(deps.get_user),
):
    return await engine.record_interview_outcome(
        interview_id,
        payload.outcome,
        payload.notes,
        performed_by=user.user_id,
    )

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from talentpipe.api import deps
from talentpipe.core.auth import require_admin, require_roles
from talentpipe.core.roles import Role
from talentpipe.models.candidate import Candidate
from talentpipe.models.stage import Stage
from talentpipe.schemas.candidate import (
    CandidateCreate,
    CandidateDetailOut,
    CandidateOut,
    DismissRequest,
    StageChainUpdate,
)
from talentpipe.schemas.event import PipelineEventOut
from talentpipe.schemas.interview import InterviewOut
from talentpipe.schemas.stage import StageOut
from talentpipe.schemas.user import UserContext
from talentpipe.services.candidate_store import CandidateStore
from talentpipe.services.events import decode_meta, list_candidate_events
from talentpipe.services.interview_store import InterviewStore
from talentpipe.services.pipeline import PipelineEngine

router = APIRouter(prefix="/candidates", tags=["candidates"])

HR_ROLES = [Role.HR_MANAGER]


def _detail(candidate: Candidate, stages: List[Stage]) -> CandidateDetailOut:
    base = CandidateOut.model_validate(candidate).model_dump()
    return CandidateDetailOut(**base, stages=[StageOut.model_validate(stage) for stage in stages])


@router.post("", response_model=CandidateDetailOut, status_code=status.HTTP_201_CREATED)
async def create_candidate(
    payload: CandidateCreate,
    engine: PipelineEngine = Depends(deps.get_pipeline),
    user: UserContext = Depends(require_roles(HR_ROLES)),
):
    candidate = await engine.create_candidate(payload, created_by=user.user_id)
    return _detail(*await engine.candidate_detail(candidate.candidate_id))


@router.get("", response_model=list[CandidateOut])
async def list_candidates(
    status_filter: Optional[List[str]] = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    session: AsyncSession = Depends(deps.get_db_session),
    _user: UserContext = Depends(require_roles(HR_ROLES)),
):
    return await CandidateStore(session).list_by_status(status_filter, limit=limit, offset=offset)


@router.get("/{candidate_id}", response_model=CandidateDetailOut)
async def get_candidate(
    candidate_id: int,
    engine: PipelineEngine = Depends(deps.get_pipeline),
    _user: UserContext = Depends(deps.get_user),
):
    return _detail(*await engine.candidate_detail(candidate_id))


@router.delete("/{candidate_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_candidate(
    candidate_id: int,
    engine: PipelineEngine = Depends(deps.get_pipeline),
    user: UserContext = Depends(require_admin()),
):
    await engine.delete_candidate(candidate_id, performed_by=user.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{candidate_id}/stages", response_model=list[StageOut])
async def list_candidate_stages(
    candidate_id: int,
    engine: PipelineEngine = Depends(deps.get_pipeline),
    _user: UserContext = Depends(deps.get_user),
):
    _candidate, stages = await engine.candidate_detail(candidate_id)
    return stages


@router.put("/{candidate_id}/stage-chain", response_model=list[StageOut])
async def replace_stage_chain(
    candidate_id: int,
    payload: StageChainUpdate,
    engine: PipelineEngine = Depends(deps.get_pipeline),
    user: UserContext = Depends(require_roles(HR_ROLES)),
):
    return await engine.replace_stage_chain(candidate_id, payload.interview_stage_chain, performed_by=user.user_id)


@router.post("/{candidate_id}/activate-stage", response_model=StageOut)
async def activate_stage(
    candidate_id: int,
    engine: PipelineEngine = Depends(deps.get_pipeline),
    user: UserContext = Depends(require_roles(HR_ROLES)),
):
    return await engine.activate_stage(candidate_id, performed_by=user.user_id)


@router.post("/{candidate_id}/move-to-documentation", response_model=CandidateOut)
async def move_to_documentation(
    candidate_id: int,
    engine: PipelineEngine = Depends(deps.get_pipeline),
    user: UserContext = Depends(require_roles(HR_ROLES)),
):
    return await engine.move_to_documentation(candidate_id, performed_by=user.user_id)


@router.post("/{candidate_id}/complete-documentation", response_model=CandidateOut)
async def complete_documentation(
    candidate_id: int,
    engine: PipelineEngine = Depends(deps.get_pipeline),
    user: UserContext = Depends(require_roles(HR_ROLES)),
):
    return await engine.complete_documentation(candidate_id, performed_by=user.user_id)


@router.post("/{candidate_id}/dismiss", response_model=CandidateOut)
async def dismiss_candidate(
    candidate_id: int,
    payload: DismissRequest,
    engine: PipelineEngine = Depends(deps.get_pipeline),
    user: UserContext = Depends(require_admin()),
):
    return await engine.dismiss(
        candidate_id,
        payload.dismissal_reason,
        payload.dismissal_date,
        performed_by=user.user_id,
    )


@router.get("/{candidate_id}/interviews", response_model=list[InterviewOut])
async def list_candidate_interviews(
    candidate_id: int,
    session: AsyncSession = Depends(deps.get_db_session),
    _user: UserContext = Depends(deps.get_user),
):
    await CandidateStore(session).require(candidate_id)
    return await InterviewStore(session).list_for_candidate(candidate_id)


@router.get("/{candidate_id}/events", response_model=list[PipelineEventOut])
async def list_events(
    candidate_id: int,
    session: AsyncSession = Depends(deps.get_db_session),
    _user: UserContext = Depends(require_roles(HR_ROLES)),
):
    await CandidateStore(session).require(candidate_id)
    rows = await list_candidate_events(session, candidate_id=candidate_id)
    return [
        PipelineEventOut(
            event_id=row.event_id,
            candidate_id=row.candidate_id,
            related_entity_type=row.related_entity_type,
            related_entity_id=row.related_entity_id,
            action_type=row.action_type,
            from_status=row.from_status,
            to_status=row.to_status,
            performed_by=row.performed_by,
            meta_json=decode_meta(row),
            created_at=row.created_at,
        )
        for row in rows
    ]

from fastapi import APIRouter, Depends

from talentpipe.api import deps
from talentpipe.schemas.stage import StageCommentsUpdate, StageOut, StageOutcomeRequest
from talentpipe.schemas.user import UserContext
from talentpipe.services.pipeline import PipelineEngine

router = APIRouter(prefix="/stages", tags=["stages"])


@router.post("/{stage_id}/outcome", response_model=StageOut)
async def record_stage_outcome(
    stage_id: int,
    payload: StageOutcomeRequest,
    engine: PipelineEngine = Depends(deps.get_pipeline),
    user: UserContext = Depends(deps.get_user),
):
    return await engine.record_outcome(
        stage_id,
        payload.status,
        payload.comments,
        payload.completed_at,
        rating=payload.rating,
        performed_by=user.user_id,
    )


@router.patch("/{stage_id}/comments", response_model=StageOut)
async def update_stage_comments(
    stage_id: int,
    payload: StageCommentsUpdate,
    engine: PipelineEngine = Depends(deps.get_pipeline),
    user: UserContext = Depends(deps.get_user),
):
    return await engine.update_stage_comments(stage_id, payload.comments, actor=user)

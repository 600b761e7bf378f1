"""Persistence for candidates."""

from __future__ import annotations

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from talentpipe.core.errors import NotFoundError
from talentpipe.core.stage_machine import ACTIVE_STAGE_STATUSES
from talentpipe.models.candidate import Candidate
from talentpipe.models.stage import Stage
from talentpipe.services.stage_store import StageStore


class CandidateStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, candidate_id: int) -> Optional[Candidate]:
        return await self.session.get(Candidate, candidate_id)

    async def require(self, candidate_id: int) -> Candidate:
        candidate = await self.get(candidate_id)
        if not candidate:
            raise NotFoundError("Candidate not found", details={"candidate_id": candidate_id})
        return candidate

    async def get_for_update(self, candidate_id: int) -> Candidate:
        """Reload the candidate row so state read under a pipeline lock is current."""
        candidate = (
            await self.session.execute(
                select(Candidate)
                .where(Candidate.candidate_id == candidate_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
        ).scalars().first()
        if not candidate:
            raise NotFoundError("Candidate not found", details={"candidate_id": candidate_id})
        return candidate

    async def list_by_status(self, statuses: list[str] | None = None, *, limit: int = 50, offset: int = 0) -> List[Candidate]:
        query = select(Candidate)
        if statuses:
            query = query.where(Candidate.status.in_(statuses))
        query = query.order_by(Candidate.updated_at.desc(), Candidate.candidate_id.desc()).limit(limit).offset(offset)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def with_active_stage_for_interviewer(self, interviewer_id: int) -> List[tuple[Candidate, Stage]]:
        """Candidates whose active stage is assigned to ``interviewer_id``."""
        result = await self.session.execute(
            select(Candidate, Stage)
            .join(Stage, Stage.candidate_id == Candidate.candidate_id)
            .where(
                Stage.interviewer_id == interviewer_id,
                Stage.status.in_(list(ACTIVE_STAGE_STATUSES)),
            )
            .order_by(Candidate.created_at.desc())
        )
        return [(candidate, stage) for candidate, stage in result.all()]

    async def add(self, candidate: Candidate) -> Candidate:
        self.session.add(candidate)
        await self.session.flush()
        return candidate

    async def delete(self, candidate: Candidate) -> None:
        await StageStore(self.session).delete_for_candidate(candidate.candidate_id)
        await self.session.delete(candidate)
        await self.session.flush()

"""Persistence for per-candidate stage rows."""

from __future__ import annotations

from typing import Any, Iterable, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from talentpipe.core.errors import NotFoundError
from talentpipe.core.stage_machine import initial_stage_status
from talentpipe.models.interview import Interview
from talentpipe.models.stage import Stage
from talentpipe.schemas.stage_chain import parse_stage_chain


class StageStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, stage_id: int) -> Optional[Stage]:
        return await self.session.get(Stage, stage_id)

    async def require(self, stage_id: int) -> Stage:
        stage = await self.get(stage_id)
        if not stage:
            raise NotFoundError("Interview stage not found", details={"stage_id": stage_id})
        return stage

    async def get_for_update(self, stage_id: int) -> Stage:
        """Reload a stage row, locking it for the rest of the transaction where the backend supports it."""
        stage = (
            await self.session.execute(
                select(Stage)
                .where(Stage.stage_id == stage_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
        ).scalars().first()
        if not stage:
            raise NotFoundError("Interview stage not found", details={"stage_id": stage_id})
        return stage

    async def candidate_id_of(self, stage_id: int) -> int:
        candidate_id = (
            await self.session.execute(select(Stage.candidate_id).where(Stage.stage_id == stage_id))
        ).scalar_one_or_none()
        if candidate_id is None:
            raise NotFoundError("Interview stage not found", details={"stage_id": stage_id})
        return candidate_id

    async def list_for_candidate(self, candidate_id: int) -> List[Stage]:
        result = await self.session.execute(
            select(Stage)
            .where(Stage.candidate_id == candidate_id)
            .order_by(Stage.stage_index.asc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def get_by_index(self, candidate_id: int, stage_index: int) -> Optional[Stage]:
        result = await self.session.execute(
            select(Stage)
            .where(Stage.candidate_id == candidate_id, Stage.stage_index == stage_index)
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def materialize(self, candidate_id: int, chain: Iterable[Any]) -> List[Stage]:
        """Replace every stage (and its bookings) of a candidate with rows built from ``chain``.

        Index 0 starts ``pending``; the rest start ``waiting``. Raises ``ValidationError``
        before touching any row when the chain is empty or an entry is incomplete.
        """
        entries = parse_stage_chain(chain)

        await self.delete_for_candidate(candidate_id)

        stages = [
            Stage(
                candidate_id=candidate_id,
                stage_index=index,
                stage_name=entry.stage_name,
                interviewer_id=entry.interviewer_id,
                status=initial_stage_status(index),
            )
            for index, entry in enumerate(entries)
        ]
        self.session.add_all(stages)
        await self.session.flush()
        return stages

    async def delete_for_candidate(self, candidate_id: int) -> None:
        # Bookings reference stages, so they go first.
        await self.session.execute(delete(Interview).where(Interview.candidate_id == candidate_id))
        await self.session.execute(delete(Stage).where(Stage.candidate_id == candidate_id))
        await self.session.flush()

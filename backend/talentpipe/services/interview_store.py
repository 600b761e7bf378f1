"""Persistence for concrete interview bookings."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from talentpipe.core.errors import NotFoundError
from talentpipe.core.stage_machine import CANCELLED, SCHEDULED
from talentpipe.models.interview import Interview


class InterviewStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, interview_id: int) -> Optional[Interview]:
        return await self.session.get(Interview, interview_id)

    async def require(self, interview_id: int) -> Interview:
        interview = await self.get(interview_id)
        if not interview:
            raise NotFoundError("Interview not found", details={"interview_id": interview_id})
        return interview

    async def get_for_update(self, interview_id: int) -> Interview:
        interview = (
            await self.session.execute(
                select(Interview)
                .where(Interview.interview_id == interview_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
        ).scalars().first()
        if not interview:
            raise NotFoundError("Interview not found", details={"interview_id": interview_id})
        return interview

    async def owners_of(self, interview_id: int) -> tuple[int, int, int]:
        """``(candidate_id, interviewer_id, stage_id)`` of a booking, without loading the row."""
        row = (
            await self.session.execute(
                select(Interview.candidate_id, Interview.interviewer_id, Interview.stage_id).where(
                    Interview.interview_id == interview_id
                )
            )
        ).first()
        if row is None:
            raise NotFoundError("Interview not found", details={"interview_id": interview_id})
        return row.candidate_id, row.interviewer_id, row.stage_id

    async def scheduled_for_interviewer(
        self,
        interviewer_id: int,
        *,
        exclude_interview_id: int | None = None,
    ) -> List[Interview]:
        query = select(Interview).where(
            Interview.interviewer_id == interviewer_id,
            Interview.status == SCHEDULED,
        )
        if exclude_interview_id is not None:
            query = query.where(Interview.interview_id != exclude_interview_id)
        result = await self.session.execute(
            query.order_by(Interview.scheduled_at.asc()).execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def for_stage(self, stage_id: int, *, include_cancelled: bool = False) -> List[Interview]:
        query = select(Interview).where(Interview.stage_id == stage_id)
        if not include_cancelled:
            query = query.where(Interview.status != CANCELLED)
        result = await self.session.execute(
            query.order_by(Interview.interview_id.asc()).execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def list_for_interviewer(self, interviewer_id: int, *, upcoming_from: datetime | None = None) -> List[Interview]:
        query = select(Interview).where(Interview.interviewer_id == interviewer_id)
        if upcoming_from is not None:
            query = query.where(Interview.scheduled_at >= upcoming_from)
        result = await self.session.execute(query.order_by(Interview.scheduled_at.asc(), Interview.interview_id.asc()))
        return list(result.scalars().all())

    async def list_for_candidate(self, candidate_id: int) -> List[Interview]:
        result = await self.session.execute(
            select(Interview)
            .where(Interview.candidate_id == candidate_id)
            .order_by(Interview.scheduled_at.asc(), Interview.interview_id.asc())
        )
        return list(result.scalars().all())

    async def scheduled_before(self, cutoff: datetime) -> List[Interview]:
        """Scheduled bookings that started before ``cutoff`` and still have no outcome."""
        result = await self.session.execute(
            select(Interview)
            .where(
                Interview.status == SCHEDULED,
                Interview.outcome.is_(None),
                Interview.scheduled_at < cutoff,
            )
            .order_by(Interview.scheduled_at.asc())
        )
        return list(result.scalars().all())

    async def add(
        self,
        *,
        stage_id: int,
        candidate_id: int,
        interviewer_id: int,
        scheduled_at: datetime,
        duration: int,
        meeting_link: str | None = None,
    ) -> Interview:
        interview = Interview(
            stage_id=stage_id,
            candidate_id=candidate_id,
            interviewer_id=interviewer_id,
            scheduled_at=scheduled_at,
            duration=duration,
            status=SCHEDULED,
            meeting_link=meeting_link,
        )
        self.session.add(interview)
        await self.session.flush()
        return interview

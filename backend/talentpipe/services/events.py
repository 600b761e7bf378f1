from __future__ import annotations

import json
from typing import Any, Dict, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from talentpipe.models.event import PipelineEventRecord


async def log_event(
    session: AsyncSession,
    *,
    candidate_id: int,
    action_type: str,
    related_entity_type: str = "candidate",
    related_entity_id: int | None = None,
    from_status: str | None = None,
    to_status: str | None = None,
    performed_by: int | None = None,
    meta_json: Dict[str, Any] | None = None,
) -> PipelineEventRecord:
    meta_text: Optional[str] = None
    if meta_json is not None:
        meta_text = json.dumps(meta_json, ensure_ascii=False, separators=(",", ":"), default=str)

    event = PipelineEventRecord(
        candidate_id=candidate_id,
        related_entity_type=related_entity_type,
        related_entity_id=related_entity_id,
        action_type=action_type,
        from_status=from_status,
        to_status=to_status,
        performed_by=performed_by,
        meta_json=meta_text,
    )
    session.add(event)
    await session.flush()
    return event


async def event_exists(
    session: AsyncSession,
    *,
    candidate_id: int,
    action_type: str,
    related_entity_type: str,
    related_entity_id: int | None,
) -> bool:
    count = (
        await session.execute(
            select(func.count())
            .select_from(PipelineEventRecord)
            .where(
                PipelineEventRecord.candidate_id == candidate_id,
                PipelineEventRecord.action_type == action_type,
                PipelineEventRecord.related_entity_type == related_entity_type,
                PipelineEventRecord.related_entity_id == related_entity_id,
            )
        )
    ).scalar_one()
    return bool(count)


async def list_candidate_events(session: AsyncSession, *, candidate_id: int) -> list[PipelineEventRecord]:
    return list(
        (
            await session.execute(
                select(PipelineEventRecord)
                .where(PipelineEventRecord.candidate_id == candidate_id)
                .order_by(PipelineEventRecord.created_at.asc(), PipelineEventRecord.event_id.asc())
            )
        )
        .scalars()
        .all()
    )


def decode_meta(event: PipelineEventRecord) -> Dict[str, Any]:
    if not event.meta_json:
        return {}
    try:
        data = json.loads(event.meta_json)
    except json.JSONDecodeError:
        return {}
    return data if isinstance(data, dict) else {}

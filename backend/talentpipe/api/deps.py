from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from talentpipe.core.auth import get_current_user
from talentpipe.db.session import get_session
from talentpipe.schemas.user import UserContext
from talentpipe.services.event_bus import EventBus
from talentpipe.services.locks import PipelineLocks
from talentpipe.services.notifications import NotificationHook
from talentpipe.services.pipeline import PipelineEngine
from talentpipe.services.scheduler import Scheduler


async def get_db_session() -> AsyncSession:
    async for session in get_session():
        yield session


async def get_user(user: UserContext = Depends(get_current_user)) -> UserContext:
    return user


def get_event_bus(request: Request) -> EventBus:
    return request.app.state.event_bus


def get_notifier(request: Request) -> NotificationHook:
    return request.app.state.notifier


def get_locks(request: Request) -> PipelineLocks:
    return request.app.state.pipeline_locks


async def get_pipeline(
    session: AsyncSession = Depends(get_db_session),
    notifier: NotificationHook = Depends(get_notifier),
    locks: PipelineLocks = Depends(get_locks),
) -> PipelineEngine:
    return PipelineEngine(session, locks=locks, notifier=notifier)


async def get_scheduler(
    session: AsyncSession = Depends(get_db_session),
    notifier: NotificationHook = Depends(get_notifier),
    locks: PipelineLocks = Depends(get_locks),
) -> Scheduler:
    return Scheduler(session, locks=locks, notifier=notifier)

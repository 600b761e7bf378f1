import os

os.environ.setdefault("TP_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("TP_ENVIRONMENT", "test")
os.environ.setdefault("TP_ENABLE_GMAIL", "false")
os.environ.setdefault("TP_ENABLE_SCHEDULER", "false")
os.environ.setdefault("TP_DISPLAY_TIMEZONE", "UTC")

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

import talentpipe.models  # noqa: F401
from talentpipe.db.base import Base
from talentpipe.models.candidate import Candidate
from talentpipe.models.stage import Stage
from talentpipe.models.user import User
from talentpipe.schemas.candidate import CandidateCreate
from talentpipe.services.locks import PipelineLocks
from talentpipe.services.notifications import NotificationHook
from talentpipe.services.pipeline import PipelineEngine
from talentpipe.services.scheduler import Scheduler

HR_SCREENER_ID = 1
TECH_LEAD_ID = 2
FORMER_STAFF_ID = 3

TWO_STAGE_CHAIN = [
    {"stageName": "HR Screen", "interviewerId": HR_SCREENER_ID},
    {"stageName": "Tech", "interviewerId": TECH_LEAD_ID},
]


class RecordingNotificationHook(NotificationHook):
    def __init__(self) -> None:
        self.events = []

    async def _deliver(self, event) -> None:
        self.events.append(event)

    def of_type(self, event_type):
        return [event for event in self.events if event.event_type == event_type]


@pytest.fixture()
async def async_engine(tmp_path):
    # File-backed so separate sessions see each other's commits.
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'talentpipe.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(async_engine):
    return async_sessionmaker(bind=async_engine, expire_on_commit=False, autoflush=False)


@pytest.fixture()
async def directory(session_factory):
    async with session_factory() as session:
        session.add_all(
            [
                User(user_id=HR_SCREENER_ID, email="hana.screener@example.com", full_name="Hana Screener"),
                User(user_id=TECH_LEAD_ID, email="tomas.lead@example.com", full_name="Tomas Lead"),
                User(
                    user_id=FORMER_STAFF_ID,
                    email="former@example.com",
                    full_name="Former Staff",
                    is_active=False,
                ),
            ]
        )
        await session.commit()


@pytest.fixture()
async def db_session(session_factory, directory):
    async with session_factory() as session:
        yield session


@pytest.fixture()
def notifier():
    return RecordingNotificationHook()


@pytest.fixture()
def locks():
    return PipelineLocks()


@pytest.fixture()
def pipeline(db_session, notifier, locks):
    return PipelineEngine(db_session, locks=locks, notifier=notifier)


@pytest.fixture()
def scheduler(db_session, notifier, locks):
    return Scheduler(db_session, locks=locks, notifier=notifier)


@pytest.fixture()
def make_candidate(pipeline):
    async def _make(full_name: str = "Ada Candidate", chain=None) -> Candidate:
        payload = CandidateCreate(
            full_name=full_name,
            email="ada@example.com",
            interview_stage_chain=chain or TWO_STAGE_CHAIN,
        )
        return await pipeline.create_candidate(payload, created_by=HR_SCREENER_ID)

    return _make


async def load_stages(session, candidate_id: int) -> list[Stage]:
    result = await session.execute(
        select(Stage).where(Stage.candidate_id == candidate_id).order_by(Stage.stage_index.asc())
    )
    stages = list(result.scalars().all())
    for stage in stages:
        await session.refresh(stage)
    return stages

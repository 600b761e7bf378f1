from fastapi import APIRouter

from talentpipe.api.routes import candidates
from talentpipe.api.routes import events
from talentpipe.api.routes import interviews
from talentpipe.api.routes import stages

api_router = APIRouter()
api_router.include_router(candidates.router)
api_router.include_router(stages.router)
api_router.include_router(interviews.router)
api_router.include_router(events.router)

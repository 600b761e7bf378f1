import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from talentpipe.api.router import api_router
from talentpipe.core.config import settings
from talentpipe.core.errors import PipelineError
from talentpipe.db.session import init_models
from talentpipe.jobs.scheduler import start_scheduler
from talentpipe.middleware.logging import RequestLoggingMiddleware
from talentpipe.services.event_bus import EventBus
from talentpipe.services.locks import PipelineLocks
from talentpipe.services.notifications import build_default_hook

logging.basicConfig(level=logging.INFO)
logging.getLogger("apscheduler").setLevel(logging.WARNING)
logging.getLogger("apscheduler.scheduler").setLevel(logging.WARNING)

logger = logging.getLogger("talentpipe")

app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(RequestLoggingMiddleware)


@app.exception_handler(PipelineError)
async def _pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("pipeline_error", extra={"code": exc.code, "path": request.url.path})
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.get("/health")
async def health_check():
    return {"status": "ok", "environment": settings.environment}


app.include_router(api_router)


@app.on_event("startup")
async def _startup() -> None:
    await init_models()
    app.state.event_bus = EventBus(redis_url=settings.redis_url, channel=settings.event_channel)
    app.state.notifier = build_default_hook(app.state.event_bus)
    app.state.pipeline_locks = PipelineLocks()
    app.state.scheduler = start_scheduler(app.state.notifier) if settings.enable_scheduler else None


@app.on_event("shutdown")
async def _shutdown() -> None:
    scheduler = getattr(app.state, "scheduler", None)
    if scheduler:
        scheduler.shutdown()
    notifier = getattr(app.state, "notifier", None)
    if notifier:
        await notifier.close()
    bus = getattr(app.state, "event_bus", None)
    if bus:
        await bus.close()

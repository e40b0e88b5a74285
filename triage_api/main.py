import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from triage_api.api.v1.router import api_router
from triage_api.core.config import settings
from triage_api.core.deps import get_call_intake
from triage_api.services.call_scheduler import AsyncioTaskScheduler

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s — %(levelname)s — %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    intake = get_call_intake()
    logger.info("Vapi triage API starting (env=%s)", settings.APP_ENV)
    logger.info("API key protection: %s", "enabled" if settings.VAPI_API_KEY else "disabled")
    yield
    # Shutdown: drop queued retry wakes; tracked calls are lost on restart anyway
    if len(intake.registry):
        logger.warning("Shutting down with %d pending calls", len(intake.registry))
    task_scheduler = intake.scheduler.task_scheduler
    if isinstance(task_scheduler, AsyncioTaskScheduler):
        await task_scheduler.shutdown()


app = FastAPI(
    title="Vapi Triage API",
    description="Vapi webhook receiver and prescreening call reconciliation",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "x-api-key"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log method, path and status. Bodies are never logged (patient data)."""
    logger.info("%s %s - User-Agent: %s", request.method, request.url.path, request.headers.get("user-agent", "Unknown"))
    response = await call_next(request)
    if response.status_code >= 400:
        logger.warning("%s %s - Response: %d", request.method, request.url.path, response.status_code)
    else:
        logger.info("%s %s - Response: %d", request.method, request.url.path, response.status_code)
    return response


app.include_router(api_router, prefix="/api/v1")


@app.get("/")
async def root():
    return {
        "message": "Vapi Triage API",
        "version": "1.0.0",
        "status": "running",
        "endpoints": [
            "POST /api/v1/webhooks/vapi",
            "GET /api/v1/webhooks/vapi/pending",
            "POST /api/v1/vapi/verifyIdentity",
            "POST /api/v1/vapi/getAppointmentDetails",
            "GET /api/v1/vapi/prescreening-status/{patient_id}",
            "GET /api/v1/vapi/call-analysis/{call_id}",
            "GET /api/v1/vapi/health",
        ],
    }


@app.get("/health")
async def health():
    return {"status": "ok", "service": "vapi-triage-api", "version": "1.0.0"}

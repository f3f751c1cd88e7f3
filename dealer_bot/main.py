"""
Dealer SMS Agent - Main FastAPI Application
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from dealer_bot.api.routes import router as api_router
from dealer_bot.core.config import settings
from dealer_bot.core.logging import setup_logging, get_logger
from dealer_bot.core.middleware import setup_middleware, setup_exception_handlers
from dealer_bot.core.redis_client import close_redis
from dealer_bot.db.database import engine, Base
from dealer_bot.domain.services.health_service import check_readiness
from dealer_bot.domain.services.staff_notification_service import drain_background_tasks

# Setup logging before anything else
setup_logging(
    level="DEBUG" if settings.DEBUG else "INFO",
    json_format=not settings.DEBUG,
    app_name=settings.APP_NAME
)

logger = get_logger(__name__)


def _parse_allowed_origins(raw: str) -> list[str]:
    """Parse comma-separated CORS origins string into a clean list."""
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


_OPENAPI_TAGS = [
    {"name": "webhooks", "description": "Twilio inbound SMS and voice keypress webhooks."},
    {"name": "conversations", "description": "Lead conversations: start, reply, history, delete."},
    {"name": "bulk", "description": "Bulk SMS campaigns and drain control."},
    {"name": "voice", "description": "Voice drops with press-1 forwarding."},
    {"name": "analytics", "description": "Funnel metrics and dashboard totals."},
    {"name": "Health", "description": "Liveness and readiness probes."},
]


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="SMS sales assistant for a car dealership, driven by Twilio webhooks.",
    openapi_tags=_OPENAPI_TAGS,
)

# Setup middleware (rate limit, request logging, correlation ID)
setup_middleware(app)
setup_exception_handlers(app)

allowed_origins = _parse_allowed_origins(settings.ALLOWED_ORIGINS)

if not allowed_origins and settings.DEBUG:
    allowed_origins = [
        "http://localhost",
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

if allowed_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "X-Admin-Token", "X-Correlation-ID"],
    )

app.include_router(api_router, prefix="/api")


@app.on_event("startup")
async def startup() -> None:
    """Create tables on startup"""
    logger.info("Starting application", extra_data={"app_name": settings.APP_NAME})
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialized")


@app.on_event("shutdown")
async def shutdown() -> None:
    logger.info("Shutting down application")
    await drain_background_tasks()
    await close_redis()
    await engine.dispose()
    logger.info("Database connections disposed")


@app.get(
    "/health",
    summary="Liveness probe",
    description="The process is up. No dependency checks, so a DB outage does not trigger restarts.",
    tags=["Health"],
)
async def health_check() -> dict[str, str]:
    return {"status": "healthy"}


@app.get(
    "/health/ready",
    summary="Readiness probe",
    description="DB, Redis, Celery broker and Twilio credentials. 503 when any check fails.",
    responses={
        200: {"description": "All dependencies available"},
        503: {"description": "At least one dependency unavailable"},
    },
    tags=["Health"],
)
async def readiness_check() -> JSONResponse:
    result = await check_readiness()
    status_code = 200 if result["status"] == "healthy" else 503
    return JSONResponse(content=result, status_code=status_code)

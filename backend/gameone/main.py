"""
GameOne Registration API - application entry point.

Event registration with payment reconciliation:
- Admission against live capacity, with friends registered as a group
- Bank-transfer pending payments with QR payment instructions
- FIFO waiting list with first-fit promotion when spots free up
- Per-event optimistic locking so concurrent requests never overbook
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from gameone.api.middleware import RequestLoggingMiddleware
from gameone.api.router import api_router
from gameone.core.config import get_settings
from gameone.core.exceptions import GameOneError
from gameone.core.logging import get_logger, setup_logging
from gameone.core.metrics import metrics_endpoint
from gameone.services.cache_service import close_redis, get_cache_stats, get_redis

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()
    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        capacity_unit=settings.CAPACITY_UNIT,
        notification_backend=settings.NOTIFICATION_BACKEND,
    )

    if await get_redis():
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Serving event listings without cache")

    yield

    await close_redis()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Event registration with payment reconciliation and waiting lists",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

app.include_router(api_router)


@app.exception_handler(GameOneError)
async def gameone_error_handler(request: Request, exc: GameOneError) -> JSONResponse:
    log = logger.warning if exc.status_code < 500 else logger.error
    log("engine_error", error=exc.code, detail=exc.message)
    headers = {"Retry-After": "1"} if exc.retryable else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "cache": await get_cache_stats(),
    }


@app.get("/metrics", tags=["Health"], include_in_schema=False)
async def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }

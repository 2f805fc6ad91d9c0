"""
Status Watch backend.

Collects upstream service, cloud, productivity-suite, ISP and attack data on
a schedule, turns it into deduplicated status-change events, and serves the
event log and current status to the dashboard.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from core.container import container
from core.config import Settings
from core.health import get_health_status, set_startup_time
from core.logging import configure_logging, get_logger
from routers import changes, events, status as status_router
from services.collectors import build_service_collectors
from services.scheduler import get_all_jobs, register_monitor_jobs, shutdown_scheduler, start_scheduler

# Initialize settings and logging
settings = Settings()
configure_logging(settings)
logger = get_logger(__name__)


async def load_service_checks() -> int:
    """(Re)build the ``checks`` group from the service catalog."""
    services = await container.database().get_all_services()
    collectors = build_service_collectors(
        services, container.http_client(), timeout=settings.collector_timeout
    )
    container.monitor().replace_group("checks", collectors)
    return len(collectors)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    # Startup
    logger.info("Starting Status Watch", environment="development" if settings.debug else "production")
    set_startup_time()

    await container.database().startup()
    await container.cache().startup()

    checks = await load_service_checks()
    logger.info("Service checks loaded", count=checks)

    if settings.scheduler_enabled:
        register_monitor_jobs(settings, container.monitor(), container.cleanup())
        start_scheduler()

    logger.info("Services started successfully")
    yield

    # Shutdown
    shutdown_scheduler()
    await container.http_client().aclose()
    await container.cache().shutdown()
    await container.database().shutdown()
    logger.info("Services shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="Status Watch",
    version="1.0.0",
    description="Status-change detection and event log for the MSP status dashboard",
    lifespan=lifespan,
    default_response_class=ORJSONResponse
)


class CatchAllExceptionsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error("Unhandled exception", path=request.url.path,
                         error=f"{type(e).__name__}: {e}", exc_info=True)
            return ORJSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "error": "Internal server error",
                    "message": f"{type(e).__name__}: {e}",
                }
            )


# Exception middleware first, CORS after it
app.add_middleware(CatchAllExceptionsMiddleware)

logger.info("Configuring CORS middleware",
            origins_count=len(settings.cors_origins),
            origins=settings.cors_origins)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "OPTIONS"],
    allow_headers=["*"],
)

# Include routers
app.include_router(events.router)
app.include_router(status_router.router)
app.include_router(changes.router)


@app.get("/health")
async def health_check():
    """Detailed health check."""
    return await get_health_status(
        container.database(),
        container.cache(),
        container.settings(),
        jobs=len(get_all_jobs()),
    )


if __name__ == "__main__":
    import uvicorn
    logger.info("Starting Status Watch",
                host=settings.host, port=settings.port, debug=settings.debug)
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        reload_dirs=["."] if settings.debug else None,
        reload_excludes=["*.pyc", "__pycache__", "*.log", "*.db"] if settings.debug else None,
        workers=1 if settings.debug else settings.workers
    )

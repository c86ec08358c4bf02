"""Content Sync - FastAPI Entry Point."""
import sys

# asyncpg is incompatible with Windows ProactorEventLoop (default on Windows).
# Must be set before any asyncio usage.
if sys.platform == "win32":
    import asyncio
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

import structlog
from fastapi import FastAPI

from content_sync.config import settings
from content_sync.database import engine
from content_sync.middleware.error_handler import setup_error_handlers
from content_sync.middleware.logging_middleware import LoggingMiddleware
from content_sync.middleware.metrics import MetricsMiddleware, setup_metrics
from content_sync.api.v1 import auth as auth_router
from content_sync.api.v1 import bulk_sync as bulk_sync_router
from content_sync.api.v1 import content_queue as content_queue_router
from content_sync.api.v1 import contents as contents_router
from content_sync.api.v1 import ingress as ingress_router
from content_sync.api.v1 import sites as sites_router
from content_sync.api.v1 import sync_logs as sync_logs_router

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    logger.info("startup", env=settings.APP_ENV)
    # Sentry init
    if settings.SENTRY_DSN:
        import sentry_sdk
        from sentry_sdk.integrations.fastapi import FastApiIntegration

        sentry_sdk.init(
            dsn=settings.SENTRY_DSN,
            integrations=[FastApiIntegration()],
            traces_sample_rate=0.1 if settings.APP_ENV == "production" else 1.0,
            environment=settings.APP_ENV,
        )

    yield

    # Shutdown: close Redis, dispose DB engine
    from content_sync.utils.redis_client import close_redis
    await close_redis()
    await engine.dispose()
    logger.info("shutdown")


def create_app() -> FastAPI:
    application = FastAPI(
        title="Content Sync API",
        description="Central-to-subsite content replication with approval workflow",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Middleware (order matters: last added = first executed)
    setup_error_handlers(application)
    application.add_middleware(LoggingMiddleware)
    application.add_middleware(MetricsMiddleware)

    # Prometheus metrics endpoint
    setup_metrics(application)

    # API Routers
    application.include_router(auth_router.router, prefix="/api/v1/auth", tags=["Auth"])
    application.include_router(sites_router.router, prefix="/api/v1/sites", tags=["Sites"])
    application.include_router(ingress_router.router, prefix="/api/v1/sites", tags=["Replication"])
    application.include_router(content_queue_router.router, prefix="/api/v1/sites", tags=["Content Queue"])
    application.include_router(contents_router.router, prefix="/api/v1/contents", tags=["Contents"])
    application.include_router(bulk_sync_router.router, prefix="/api/v1/bulk-sync", tags=["Bulk Sync"])
    application.include_router(sync_logs_router.router, prefix="/api/v1/sync-logs", tags=["Sync Logs"])

    # Health check
    @application.get("/health", tags=["health"])
    async def health_check() -> dict[str, str]:
        return {"status": "ok"}

    return application


app = create_app()

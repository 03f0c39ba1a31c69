"""FastAPI application factory for hubsync."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from hubsync.common.config import get_settings
from hubsync.common.exceptions import HubSyncError
from hubsync.common.logging import setup_logging
from hubsync.common.schemas import ErrorResponse, HealthResponse

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        from hubsync.deps import get_db
        db = get_db()
        await db.init()
        await db.create_all()
        logger.info("hubsync %s started", settings.api_version)
        yield
        # Shutdown
        await db.close()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(HubSyncError)
    async def hubsync_error_handler(request: Request, exc: HubSyncError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        body = ErrorResponse(error=exc.message, code=exc.code, status=exc.status_code)
        return JSONResponse(body.model_dump(), status_code=exc.status_code)

    @app.get("/health", response_model=HealthResponse)
    async def health():
        return HealthResponse(version=settings.api_version)

    # Mount routers
    from hubsync.hubs.router import router as hubs_router
    from hubsync.reads.router import router as reads_router
    from hubsync.sync.router import router as sync_router
    from hubsync.webhooks.router import router as webhook_router

    prefix = settings.api_prefix
    app.include_router(hubs_router, prefix=prefix, tags=["hubs"])
    app.include_router(reads_router, prefix=prefix, tags=["hub-reads"])
    app.include_router(sync_router, prefix=prefix, tags=["sync"])
    app.include_router(webhook_router, prefix=prefix, tags=["webhooks"])

    return app

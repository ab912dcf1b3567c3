"""
FastAPI application setup.

Run with:
    uvicorn app.main:app --app-dir backend
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from app.apis.ai import router as ai_router
from app.apis.ai_undo import router as ai_undo_router
from app.apis.indexing import router as indexing_router
from app.libs.config import Settings
from app.libs.data_gateway import DataGateway, PostgresGateway
from app.libs.database import create_db_pool
from app.libs.logging_config import setup_logging
from app.middleware import RequestLoggingMiddleware

logger = logging.getLogger(__name__)

API_TITLE = "Trak AI API"
API_VERSION = "1.0.0"


async def http_error_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


def create_app(settings: Optional[Settings] = None, gateway: Optional[DataGateway] = None) -> FastAPI:
    """Build the application.

    Args:
        settings: Defaults to Settings.from_env()
        gateway: Data access to use; when omitted a Postgres pool is opened on startup
    """
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings.log_level)
        app.state.settings = settings
        if gateway is not None:
            app.state.gateway = gateway
            yield
            return

        pool = await create_db_pool(settings)
        app.state.gateway = PostgresGateway(pool)
        logger.info("Database pool ready (provider: %s)", settings.provider() or "none")
        try:
            yield
        finally:
            await pool.close()

    app = FastAPI(title=API_TITLE, version=API_VERSION, lifespan=lifespan)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_exception_handler(HTTPException, http_error_handler)

    app.include_router(ai_router)
    app.include_router(ai_undo_router)
    app.include_router(indexing_router)
    return app


app = create_app()

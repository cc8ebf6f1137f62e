"""FastAPI application factory"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from card_advisor.api.middleware import RequestIDMiddleware, MetricsMiddleware
from card_advisor.api.v1 import sessions
from card_advisor.bootstrap import build_service, prepare_database
from card_advisor.config import Settings, settings as default_settings
from card_advisor.infrastructure.database.session import Database
from card_advisor.infrastructure.observability.logging import setup_logging
from card_advisor.services.processing import ProcessingService

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    service: Optional[ProcessingService] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Without an injected service the app owns its Database: tables and the card
    catalog are prepared at startup and the engine is disposed on shutdown.
    """
    settings = settings or default_settings
    setup_logging(settings.log_level, settings.service_name)

    owns_database = service is None and database is None
    if service is None:
        database = database or Database(settings.database_url)
        service = build_service(database, settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if owns_database:
            prepare_database(database, settings)
            removed = service.cleanup_expired_sessions()
            logger.info("Startup cleanup finished", extra={"expired_sessions_removed": removed})
        yield
        if owns_database:
            database.dispose()

    app = FastAPI(
        title="Card Advisor",
        description="Statement extraction and credit card recommendation service",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.service = service

    # Last added runs first
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(sessions.router, prefix="/v1", tags=["sessions"])

    return app


app = create_app()

from __future__ import annotations

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, HTTPException

from citetally.api.errors import register_api_exception_handlers
from citetally.api.router import router as api_router
from citetally.db.session import check_database, close_engine, create_schema, get_session_factory
from citetally.http.middleware import RequestLoggingMiddleware, parse_skip_paths
from citetally.logging_config import configure_logging, parse_redact_fields
from citetally.services.citations.orchestrator import CitationOrchestrator
from citetally.services.connectivity import HttpHostEnvironment
from citetally.services.store.sql import SqlPreferenceStore, SqlRecordStore
from citetally.settings import settings

logger = logging.getLogger(__name__)

configure_logging(
    level=settings.log_level,
    log_format=settings.log_format,
    redact_fields=parse_redact_fields(settings.log_redact_fields),
    include_uvicorn_access=settings.log_uvicorn_access,
)


def build_orchestrator() -> CitationOrchestrator:
    session_factory = get_session_factory()
    return CitationOrchestrator(
        record_store=SqlRecordStore(session_factory),
        preference_store=SqlPreferenceStore(session_factory),
        environment=HttpHostEnvironment(
            check_url=settings.connectivity_check_url,
            timeout_seconds=settings.connectivity_check_timeout_seconds,
            enabled=settings.connectivity_check_enabled,
        ),
        app_settings=settings,
    )


@asynccontextmanager
async def lifespan(application: FastAPI):
    logger.info(
        "app.startup",
        extra={
            "event": "app.startup",
            "orchestrator_enabled": settings.orchestrator_enabled,
            "log_format": settings.log_format,
        },
    )
    if settings.database_create_schema:
        await create_schema()
    orchestrator: CitationOrchestrator | None = None
    if settings.orchestrator_enabled:
        orchestrator = build_orchestrator()
        await orchestrator.start()
    application.state.orchestrator = orchestrator
    try:
        yield
    finally:
        if orchestrator is not None:
            await orchestrator.stop()
        application.state.orchestrator = None
        await close_engine()


def create_app() -> FastAPI:
    application = FastAPI(title=settings.app_name, lifespan=lifespan)
    application.state.orchestrator = None
    register_api_exception_handlers(application)
    application.add_middleware(
        RequestLoggingMiddleware,
        log_requests=settings.log_requests,
        skip_paths=parse_skip_paths(settings.log_request_skip_paths),
    )
    application.include_router(api_router)

    @application.get("/healthz")
    async def healthz() -> dict[str, str]:
        if await check_database():
            return {"status": "ok"}
        raise HTTPException(status_code=500, detail="database unavailable")

    return application


app = create_app()

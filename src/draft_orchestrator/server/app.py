"""FastAPI app factory.

Endpoints are thin wrappers over :class:`WorkflowEngine`; engine errors are
mapped to HTTP status codes here, in one place.

Run with: ``uvicorn draft_orchestrator.server.app:create_app --factory``
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from draft_orchestrator import __version__
from draft_orchestrator.orchestrator.config import OrchestratorSettings
from draft_orchestrator.orchestrator.logging import configure_logging
from draft_orchestrator.orchestrator.workflow.engine import WorkflowEngine
from draft_orchestrator.orchestrator.workflow.errors import (
    PayloadTooLargeError,
    PersistenceError,
    RunConflictError,
    RunNotFoundError,
    WorkflowError,
    WorkflowValidationError,
)
from draft_orchestrator.orchestrator.workflow.sweeper import RunSweeper
from draft_orchestrator.server.config import ServerSettings
from draft_orchestrator.server.workflow_router import router as workflow_router

logger = logging.getLogger(__name__)

# Most specific first.
_STATUS_BY_ERROR: tuple[tuple[type[WorkflowError], int], ...] = (
    (PayloadTooLargeError, 413),
    (WorkflowValidationError, 400),
    (RunNotFoundError, 404),
    (RunConflictError, 409),
    (PersistenceError, 500),
)


def status_for(error: WorkflowError) -> int:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status
    return 500


def create_app(
    engine: WorkflowEngine | None = None,
    *,
    settings: ServerSettings | None = None,
) -> FastAPI:
    settings = settings or ServerSettings()
    if engine is None:
        orchestrator_settings = OrchestratorSettings()
        configure_logging(orchestrator_settings.log_level)
        engine = WorkflowEngine.from_settings(orchestrator_settings)

    sweeper = RunSweeper(engine.store, interval_seconds=settings.sweep_interval_seconds)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        if settings.sweeper_enabled:
            sweeper.start()
        try:
            yield
        finally:
            sweeper.stop()

    app = FastAPI(
        title="Draft Orchestrator",
        version=__version__,
        description="REST API over the resumable drafting workflow engine.",
        openapi_url="/api/openapi.json",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=lifespan,
    )

    # Expose settings and the engine for request handlers.
    app.state.settings = settings
    app.state.engine = engine
    app.state.sweeper = sweeper

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.parsed_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(WorkflowError)
    async def _workflow_error(request: Request, exc: WorkflowError) -> JSONResponse:
        status = status_for(exc)
        if status >= 500:
            logger.error(
                "Workflow request failed",
                extra={"path": request.url.path, "reason": exc.reason},
            )
        return JSONResponse(
            status_code=status, content={"detail": exc.message, "reason": exc.reason}
        )

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(
        _request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = exc.errors()
        first = errors[0] if errors else {}
        loc = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        msg = first.get("msg", "Invalid request")
        return JSONResponse(
            status_code=400,
            content={"detail": f"{loc}: {msg}" if loc else msg, "reason": "validation"},
        )

    app.include_router(workflow_router, prefix="/api")
    return app

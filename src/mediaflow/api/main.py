"""FastAPI application."""
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from mediaflow import __version__
from mediaflow.api.routes import health, runs, uploads, workflows
from mediaflow.config import Settings, get_settings
from mediaflow.errors import (
    AccessDeniedError,
    AuthenticationRequiredError,
    ConfigurationError,
    GraphCycleError,
    InvalidEdgeError,
    InvalidWorkflowError,
    PersistenceError,
    WorkflowError,
    WorkflowNotFoundError,
)
from mediaflow.observability import get_logger, setup_logging
from mediaflow.services import WorkflowService
from mediaflow.storage import WorkflowRepository

logger = get_logger(__name__)

ERROR_STATUS = {
    AuthenticationRequiredError: 401,
    AccessDeniedError: 403,
    WorkflowNotFoundError: 404,
    GraphCycleError: 409,
    InvalidEdgeError: 422,
    InvalidWorkflowError: 422,
    ConfigurationError: 500,
    PersistenceError: 503,
}


async def workflow_error_handler(request: Request, exc: WorkflowError) -> JSONResponse:
    status_code = next(
        (code for error_cls, code in ERROR_STATUS.items() if isinstance(exc, error_cls)),
        500,
    )
    body = {"detail": str(exc)}
    if isinstance(exc, GraphCycleError):
        body["nodes"] = exc.nodes
    if status_code >= 500:
        logger.error(f"{exc.__class__.__name__}: {exc}")
    return JSONResponse(status_code=status_code, content=body)


def create_app(
    settings: Optional[Settings] = None,
    repository: Optional[WorkflowRepository] = None,
) -> FastAPI:
    """
    Build the application.

    The repository is opened on startup and closed on shutdown.
    """
    settings = settings or get_settings()
    repository = repository or WorkflowRepository(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await repository.open()
        try:
            yield
        finally:
            await repository.close()

    app = FastAPI(
        title="mediaflow",
        description="Node-graph workflows over text, images and video",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.repository = repository
    app.state.service = WorkflowService(repository)

    app.add_exception_handler(WorkflowError, workflow_error_handler)

    app.include_router(health.router, tags=["health"])
    app.include_router(workflows.router, tags=["workflows"])
    app.include_router(runs.router, tags=["runs"])
    app.include_router(uploads.router, tags=["uploads"])

    @app.get("/")
    def root() -> dict:
        """Root endpoint."""
        return {
            "service": "mediaflow",
            "version": __version__,
            "docs": "/docs",
        }

    return app


def main() -> None:
    """Serve the API with uvicorn."""
    import uvicorn

    setup_logging()
    uvicorn.run(create_app(), host="0.0.0.0", port=8000)

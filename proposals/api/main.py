from typing import Dict, Optional, Type

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from proposals import __version__
from proposals.api.routers import health, proposals, users
from proposals.api.schemas.common import ErrorResponse
from proposals.common.logger import setup_logger
from proposals.core.config import Settings, get_settings
from proposals.core.errors import (
    ConflictError,
    InvalidTransitionError,
    ProposalNotFoundError,
    ProposalValidationError,
    TerminalStateError,
    UnauthorizedError,
    WorkflowError,
)

# HTTP status for each workflow failure
ERROR_STATUS_CODES: Dict[Type[WorkflowError], int] = {
    ProposalNotFoundError: 404,
    UnauthorizedError: 403,
    InvalidTransitionError: 409,
    ProposalValidationError: 422,
    ConflictError: 409,
    TerminalStateError: 409,
}


async def workflow_error_handler(request: Request, exc: WorkflowError) -> JSONResponse:
    status_code = ERROR_STATUS_CODES.get(type(exc), 400)
    body = ErrorResponse(error=type(exc).__name__, detail=exc.message, code=exc.code)
    return JSONResponse(status_code=status_code, content=body.model_dump())


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    setup_logger(settings)

    app = FastAPI(
        title=settings.app_name,
        description="Multi-stage proposal approval workflow",
        version=__version__,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(WorkflowError, workflow_error_handler)

    app.include_router(health.router)
    app.include_router(proposals.router, prefix="/api")
    app.include_router(users.router, prefix="/api")

    @app.get("/")
    async def root():
        return {
            "name": settings.app_name,
            "version": __version__,
            "docs": "/docs" if settings.debug else None,
        }

    return app


app = create_app()

"""
IC Portal - Main Application

FastAPI backend with:
- Application lifecycle engine (select / accept / decline / cancel with vacancy accounting)
- Pluggable storage: in-memory, MongoDB, or SQL (PostgreSQL)
- JWT verification for tokens issued by the identity provider
- Notification badges derived from application view flags

Run: uvicorn ic_portal.main:app --reload
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ic_portal.api.routes import api_router
from ic_portal.core.config import Settings, get_settings
from ic_portal.core.errors import PortalError
from ic_portal.core.logging import setup_logging
from ic_portal.schemas.schemas import ErrorResponse
from ic_portal.services.lifecycle_service import ProjectLocks
from ic_portal.services.storage import StorageGateway
from ic_portal.services.storage_factory import build_storage

logger = logging.getLogger(__name__)


def create_app(settings: Settings = None, storage: StorageGateway = None) -> FastAPI:
    """
    Build the FastAPI app.

    Args:
        settings: Defaults to get_settings()
        storage: Pre-built gateway (tests); otherwise built from settings.storage_backend
    """
    settings = settings or get_settings()
    setup_logging(settings.log_level)

    app = FastAPI(
        title="IC Portal",
        description="""
    Matching portal between undergraduate students and professors
    offering Scientific Initiation (IC) projects.

    ## Features
    - **Profiles**: student or professor, fixed at creation; students keep one resume
    - **Projects**: professors post projects with a number of vacancies
    - **Applications**: pending -> selected -> accepted / declined, or not_selected
    - **Notifications**: unread badge per user
    """,
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        debug=settings.debug,
    )

    app.state.storage = storage or build_storage(settings)
    app.state.project_locks = ProjectLocks()

    # CORS middleware (allow all for development)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(PortalError)
    async def portal_error_handler(request: Request, exc: PortalError):
        if exc.status_code >= 500:
            logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(detail=exc.message, error=type(exc).__name__).model_dump(),
        )

    # Include API routes
    app.include_router(api_router, prefix="/api")

    @app.get("/health", tags=["Health"])
    async def health_check():
        """Storage connectivity check."""
        connected = app.state.storage.ping()
        return {
            "status": "healthy" if connected else "degraded",
            "storage": app.state.storage.name,
            "connected": connected,
        }

    logger.info("IC Portal ready (storage backend: %s)", settings.storage_backend)
    return app


app = create_app()

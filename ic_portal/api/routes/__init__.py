"""
API Routes - Combines all route modules into single router.
"""

from fastapi import APIRouter

from ic_portal.api.routes.user_routes import router as user_router
from ic_portal.api.routes.project_routes import router as project_router
from ic_portal.api.routes.application_routes import router as application_router
from ic_portal.api.routes.notification_routes import router as notification_router

# Main API router
api_router = APIRouter()

# Include all sub-routers
api_router.include_router(user_router)
api_router.include_router(project_router)
api_router.include_router(application_router)
api_router.include_router(notification_router)

"""
API module - FastAPI routers and request dependencies.

Usage:
    from ic_portal.api.routes import api_router
    app.include_router(api_router, prefix="/api")
"""

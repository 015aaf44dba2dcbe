"""
API Module
FastAPI routers for the AdherenceEngine application
"""

from config import settings
from api.adherence import router as adherence_router
from api.reminders import router as reminders_router

from api.deps import (
    get_db,
    get_current_user_id,
    pagination_params,
    to_http_exception,
    services,
)


__all__ = [
    # Routers
    "adherence_router",
    "reminders_router",
    # Dependencies
    "get_db",
    "get_current_user_id",
    "pagination_params",
    "to_http_exception",
    "services",
]


def include_routers(app):
    """
    Include all API routers in the FastAPI app

    The adherence router shares the /medication-reminders prefix and is
    registered first so its fixed paths are matched before /{reminder_id}.

    Usage:
        from api import include_routers
        include_routers(app)
    """
    app.include_router(adherence_router, prefix=settings.API_PREFIX)
    app.include_router(reminders_router, prefix=settings.API_PREFIX)

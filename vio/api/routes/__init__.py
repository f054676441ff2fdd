"""
API Routes Package
==================

REST API route definitions.
"""

from vio.api.routes.health import router as health_router
from vio.api.routes.sessions import router as sessions_router

__all__ = [
    "health_router",
    "sessions_router",
]

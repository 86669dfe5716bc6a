"""
API route modules.

Each module defines routes for one area.
"""

from routes.webhooks import router as webhooks_router
from routes.mapping import router as mapping_router
from routes.jobs import router as jobs_router

__all__ = [
    "webhooks_router",
    "mapping_router",
    "jobs_router",
]

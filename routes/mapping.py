"""
Mapping reporting and admin routes.
"""

from fastapi import APIRouter
from fastapi.responses import JSONResponse
import structlog

from models.mapping import MappingReloadResponse
from services.engine import get_sync_engine
from exceptions import AppError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/mapping", tags=["Mapping"])


# ===================
# EXCEPTION HANDLER
# ===================

def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


# ===================
# REPORTING ROUTES
# ===================

@router.get("/stats")
async def get_mapping_stats():
    """
    Full mapping statistics.

    Store state plus lookup counters per direction, skipped items per
    context, the last recent errors and uptime.
    """
    try:
        return get_sync_engine().mapper.get_stats().to_wire()

    except Exception as e:
        return handle_error(e)


@router.get("/summary")
async def get_mapping_summary():
    """Compact mapping statistics."""
    try:
        return get_sync_engine().mapper.get_summary().to_wire()

    except Exception as e:
        return handle_error(e)


# ===================
# ADMIN ROUTES
# ===================

@router.post("/reload", response_model=MappingReloadResponse)
async def reload_mappings():
    """
    Reload the mapping document from disk.

    On failure the previous mappings remain in effect.
    """
    try:
        count = await get_sync_engine().reload_mappings()
        return MappingReloadResponse(total_mappings=count)

    except Exception as e:
        return handle_error(e)


@router.post("/metrics/reset")
async def reset_metrics():
    """Reset lookup counters, skipped counters and recent errors."""
    try:
        engine = get_sync_engine()
        engine.metrics.reset()
        stats = engine.product_store.stats()
        if stats.is_loaded:
            engine.metrics.update_mapping_count(stats.total_mappings)
        return {"status": "reset"}

    except Exception as e:
        return handle_error(e)

"""
Scheduler job routes.
"""

from fastapi import APIRouter
from fastapi.responses import JSONResponse
import structlog

from models.jobs import JobStatus, JobRunResponse
from services.engine import get_sync_engine
from exceptions import AppError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/jobs", tags=["Jobs"])


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
# JOB ROUTES
# ===================

@router.get("", response_model=list[JobStatus])
async def list_jobs():
    """Status of every periodic job."""
    try:
        return get_sync_engine().scheduler.get_status()

    except Exception as e:
        return handle_error(e)


@router.post("/{name}/run", response_model=JobRunResponse)
async def run_job(name: str):
    """
    Run a job now and wait for it.

    executed is false when the job was already running (the request is
    skipped, not queued).

    Args:
        name: stock_sync, order_poll or shipment_poll
    """
    try:
        logger.info("job_run_requested", job=name)
        executed = await get_sync_engine().scheduler.trigger(name)
        return JobRunResponse(name=name, executed=executed)

    except Exception as e:
        return handle_error(e)

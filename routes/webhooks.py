"""
Inventory webhook route.

Acknowledges quickly; stock resyncs run in the background.
"""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
import structlog

from models.webhook import WebhookAck, WebhookState
from services.engine import get_sync_engine
from exceptions import AppError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/webhook", tags=["Webhooks"])


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
# WEBHOOK ROUTES
# ===================

@router.post("/inventory", response_model=WebhookAck)
async def inventory_webhook(request: Request):
    """
    Receive inventory change events.

    Returns 200 "accepted" once product resyncs are scheduled, 200
    "ignored" when no event concerns a tracked product, and 400 when the
    body is not a JSON object.
    """
    try:
        body = await request.body()
        result = await get_sync_engine().webhooks.ingest(
            request.headers.get("content-type"), body
        )
        if result.state == WebhookState.IGNORED:
            return WebhookAck(status="ignored")
        return WebhookAck(status="accepted")

    except Exception as e:
        return handle_error(e)

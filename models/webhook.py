"""
Inventory webhook schemas.
"""

from enum import Enum
from typing import Optional

from pydantic import Field

from models.base import BaseSchema


TRACKED_ACTIONS = frozenset({"CREATE", "UPDATE", "DELETE"})


class WebhookState(str, Enum):
    """Processing state of one webhook request."""
    RECEIVED = "received"
    VALIDATED = "validated"
    PARSED = "parsed"
    DISPATCHED = "dispatched"
    REJECTED = "rejected"
    IGNORED = "ignored"


class WebhookEvent(BaseSchema):
    """One change event extracted from a webhook payload."""

    entity_type: str
    action: str
    href: str
    entity_id: str


class WebhookResult(BaseSchema):
    """Outcome of ingesting one webhook request."""

    state: WebhookState
    events: int = 0
    product_ids: list[str] = Field(default_factory=list)
    ignored: int = 0
    reason: Optional[str] = None


class WebhookAck(BaseSchema):
    """Response body returned to the webhook sender."""

    status: str = "accepted"

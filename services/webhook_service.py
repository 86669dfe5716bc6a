"""
Inventory webhook ingest.

RECEIVED -> VALIDATED -> PARSED -> DISPATCHED, or REJECTED at a gate, or
IGNORED when nothing in the payload concerns tracked products.

Payload shape:
    {"events": [{"meta": {"type": "product", "href": ".../entity/product/<id>"},
                 "action": "UPDATE"}]}

A legacy top-level {"meta": {...}, "action": "..."} form is accepted.
Each dispatched product id is resynced in a background task; delivery is
at-least-once, duplicates within one payload are dispatched once.
"""

import asyncio
import json
from typing import Any, Optional

import structlog

from exceptions import WebhookError
from models.webhook import TRACKED_ACTIONS, WebhookEvent, WebhookResult, WebhookState
from services.metrics_service import MetricsRecorder
from services.stock_service import StockService

logger = structlog.get_logger(__name__)


def entity_id_from_href(href: str) -> Optional[str]:
    """Last path segment of an entity href, query string removed."""
    path = href.split("?", 1)[0].rstrip("/")
    entity_id = path.rsplit("/", 1)[-1] if path else ""
    return entity_id or None


class WebhookService:
    """Validates inventory webhooks and dispatches stock resyncs."""

    def __init__(
        self,
        stock_service: StockService,
        metrics: MetricsRecorder,
        entity_type: str = "product"
    ):
        self.stock_service = stock_service
        self.metrics = metrics
        self.entity_type = entity_type
        self._tasks: set[asyncio.Task] = set()

    # ===================
    # PIPELINE
    # ===================

    async def ingest(self, content_type: Optional[str], body: bytes) -> WebhookResult:
        """
        Run one webhook request through the pipeline.

        Raises:
            WebhookError: Request rejected (not JSON, or not an object)
        """
        logger.debug("webhook_state", state=WebhookState.RECEIVED.value, size=len(body))
        try:
            payload = self.validate(content_type, body)
        except WebhookError as e:
            logger.error(
                "webhook_rejected",
                error_type="WEBHOOK_ERROR",
                state=WebhookState.REJECTED.value,
                reason=e.message,
            )
            self.metrics.record_error("WEBHOOK_ERROR", e.message)
            raise

        events, ignored = self.parse(payload)
        product_ids = list(dict.fromkeys(event.entity_id for event in events))

        if not product_ids:
            logger.info(
                "webhook_ignored",
                state=WebhookState.IGNORED.value,
                ignored_events=ignored,
            )
            return WebhookResult(state=WebhookState.IGNORED, ignored=ignored, reason="no tracked events")

        self.dispatch(product_ids)
        logger.info(
            "webhook_dispatched",
            state=WebhookState.DISPATCHED.value,
            product_ids=product_ids,
            events=len(events),
            ignored_events=ignored,
        )
        return WebhookResult(
            state=WebhookState.DISPATCHED,
            events=len(events),
            product_ids=product_ids,
            ignored=ignored,
        )

    def validate(self, content_type: Optional[str], body: bytes) -> dict:
        """
        Check content type and decode the body.

        Returns:
            Decoded JSON object

        Raises:
            WebhookError: Wrong content type, empty or invalid JSON, or non-object body
        """
        if not content_type or "application/json" not in content_type.lower():
            raise WebhookError(
                "Webhook content type must be application/json",
                details={"content_type": content_type},
            )
        if not body:
            raise WebhookError("Webhook body is empty")
        try:
            payload = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise WebhookError("Webhook body is not valid JSON")
        if not isinstance(payload, dict):
            raise WebhookError("Webhook body must be a JSON object")

        logger.debug("webhook_state", state=WebhookState.VALIDATED.value)
        return payload

    def parse(self, payload: dict) -> tuple[list[WebhookEvent], int]:
        """
        Extract tracked events.

        Returns:
            (events for the tracked entity type, number of ignored events)

        Raises:
            WebhookError: If events is present but not a list
        """
        if "events" in payload:
            raw_events = payload["events"]
            if not isinstance(raw_events, list):
                raise WebhookError("Webhook events must be a list")
        elif isinstance(payload.get("meta"), dict):
            raw_events = [{
                "meta": {"type": payload.get("entityType"), **payload["meta"]},
                "action": payload.get("action"),
            }]
        else:
            raw_events = []

        events: list[WebhookEvent] = []
        ignored = 0
        for raw in raw_events:
            event = self._parse_event(raw)
            if event is None:
                ignored += 1
            else:
                events.append(event)

        logger.debug("webhook_state", state=WebhookState.PARSED.value, events=len(events), ignored=ignored)
        return events, ignored

    def _parse_event(self, raw: Any) -> Optional[WebhookEvent]:
        if not isinstance(raw, dict):
            return None
        meta = raw.get("meta") if isinstance(raw.get("meta"), dict) else {}
        entity_type = meta.get("type")
        action = str(raw.get("action") or "").upper()
        href = meta.get("href")

        if entity_type != self.entity_type:
            logger.debug("webhook_event_untracked_type", entity_type=entity_type)
            return None
        if action not in TRACKED_ACTIONS:
            logger.debug("webhook_event_untracked_action", action=action)
            return None
        if not isinstance(href, str) or not href:
            logger.warning("webhook_event_missing_href", entity_type=entity_type, action=action)
            return None

        entity_id = entity_id_from_href(href)
        if entity_id is None:
            logger.warning("webhook_event_bad_href", href=href)
            return None
        return WebhookEvent(entity_type=entity_type, action=action, href=href, entity_id=entity_id)

    # ===================
    # DISPATCH
    # ===================

    def dispatch(self, product_ids: list[str]) -> None:
        """Schedule one stock resync per product id."""
        for product_id in product_ids:
            task = asyncio.create_task(
                self.stock_service.sync_from_webhook_event(product_id),
                name=f"webhook-sync:{product_id}",
            )
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def wait_idle(self) -> None:
        """Wait for dispatched resyncs to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

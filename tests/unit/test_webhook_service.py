"""
Unit tests for WebhookService.

Run: pytest tests/unit/test_webhook_service.py -v
"""

import json
import pytest
from unittest.mock import AsyncMock, MagicMock

from services.webhook_service import WebhookService, entity_id_from_href
from models.webhook import WebhookState
from exceptions import WebhookError
from tests.conftest import INVENTORY_BASE


JSON = "application/json"


def product_event(product_id: str, action: str = "UPDATE") -> dict:
    return {
        "meta": {"type": "product", "href": f"{INVENTORY_BASE}/entity/product/{product_id}"},
        "action": action,
    }


def body(payload) -> bytes:
    return json.dumps(payload).encode("utf-8")


# ===================
# FIXTURES
# ===================

@pytest.fixture
def stock_service():
    service = MagicMock()
    service.sync_from_webhook_event = AsyncMock()
    return service


@pytest.fixture
def webhooks(stock_service, metrics) -> WebhookService:
    return WebhookService(stock_service, metrics)


# ===================
# VALIDATION TESTS
# ===================

class TestValidation:
    """Tests for request gates."""

    @pytest.mark.asyncio
    async def test_wrong_content_type(self, webhooks, metrics):
        """Should reject non-JSON content types and record WEBHOOK_ERROR."""
        with pytest.raises(WebhookError):
            await webhooks.ingest("text/plain", body({"events": []}))

        assert metrics.get_stats().recent_errors[-1].type == "WEBHOOK_ERROR"

    @pytest.mark.asyncio
    async def test_invalid_json(self, webhooks):
        """Should reject a body that is not JSON."""
        with pytest.raises(WebhookError):
            await webhooks.ingest(JSON, b"{not json")

    @pytest.mark.asyncio
    async def test_non_object_body(self, webhooks):
        """Should reject a JSON array body."""
        with pytest.raises(WebhookError):
            await webhooks.ingest(JSON, body([product_event("p-1")]))

    @pytest.mark.asyncio
    async def test_empty_object_ignored(self, webhooks, stock_service):
        """Should acknowledge an empty JSON object as ignored."""
        result = await webhooks.ingest(JSON, body({}))

        assert result.state == WebhookState.IGNORED
        stock_service.sync_from_webhook_event.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_body_rejected(self, webhooks):
        """Should reject a request without a body."""
        with pytest.raises(WebhookError):
            await webhooks.ingest(JSON, b"")

    @pytest.mark.asyncio
    async def test_charset_suffix_accepted(self, webhooks, stock_service):
        """Should accept a content type with a charset parameter."""
        result = await webhooks.ingest("application/json; charset=utf-8", body({"events": [product_event("p-1")]}))
        await webhooks.wait_idle()

        assert result.state == WebhookState.DISPATCHED


# ===================
# PARSING TESTS
# ===================

class TestParsing:
    """Tests for event filtering."""

    @pytest.mark.asyncio
    async def test_dispatches_product_events(self, webhooks, stock_service):
        """Should resync each product once, even if repeated in the payload."""
        payload = {"events": [product_event("p-1"), product_event("p-2", "CREATE"), product_event("p-1")]}

        result = await webhooks.ingest(JSON, body(payload))
        await webhooks.wait_idle()

        assert result.state == WebhookState.DISPATCHED
        assert result.product_ids == ["p-1", "p-2"]
        called = sorted(c.args[0] for c in stock_service.sync_from_webhook_event.await_args_list)
        assert called == ["p-1", "p-2"]

    @pytest.mark.asyncio
    async def test_other_entity_ignored(self, webhooks, stock_service):
        """Should ignore counterparty events without dispatching."""
        payload = {"events": [{
            "meta": {"type": "counterparty", "href": f"{INVENTORY_BASE}/entity/counterparty/c-1"},
            "action": "UPDATE",
        }]}

        result = await webhooks.ingest(JSON, body(payload))

        assert result.state == WebhookState.IGNORED
        assert result.ignored == 1
        stock_service.sync_from_webhook_event.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_untracked_action_ignored(self, webhooks):
        """Should ignore actions other than CREATE, UPDATE and DELETE."""
        result = await webhooks.ingest(JSON, body({"events": [product_event("p-1", "PROCESSED")]}))

        assert result.state == WebhookState.IGNORED

    @pytest.mark.asyncio
    async def test_lowercase_action_accepted(self, webhooks):
        """Should compare actions case-insensitively."""
        result = await webhooks.ingest(JSON, body({"events": [product_event("p-1", "update")]}))
        await webhooks.wait_idle()

        assert result.product_ids == ["p-1"]

    @pytest.mark.asyncio
    async def test_legacy_format(self, webhooks):
        """Should accept a top-level meta/action payload."""
        payload = product_event("p-9")

        result = await webhooks.ingest(JSON, body(payload))
        await webhooks.wait_idle()

        assert result.product_ids == ["p-9"]

    @pytest.mark.asyncio
    async def test_events_not_a_list(self, webhooks):
        """Should reject events that is not a list."""
        with pytest.raises(WebhookError):
            await webhooks.ingest(JSON, body({"events": {"meta": {}}}))

    @pytest.mark.asyncio
    async def test_missing_href_ignored(self, webhooks):
        """Should ignore product events without an href."""
        payload = {"events": [{"meta": {"type": "product"}, "action": "UPDATE"}]}

        result = await webhooks.ingest(JSON, body(payload))

        assert result.state == WebhookState.IGNORED


class TestEntityIdFromHref:
    """Tests for entity_id_from_href()."""

    def test_strips_query(self):
        """Should drop the query string."""
        assert entity_id_from_href(f"{INVENTORY_BASE}/entity/product/abc?expand=x") == "abc"

    def test_trailing_slash(self):
        """Should tolerate a trailing slash."""
        assert entity_id_from_href("https://x/entity/product/abc/") == "abc"

    def test_empty(self):
        """Should return None for an empty href."""
        assert entity_id_from_href("") is None

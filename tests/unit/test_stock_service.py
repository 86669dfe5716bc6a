"""
Unit tests for StockService.

Run: pytest tests/unit/test_stock_service.py -v
"""

import pytest

from services.stock_service import StockService
from models.stock import StockFigure, StockSyncOutcome, StockUpdate
from exceptions import SyncError


# ===================
# FIXTURES
# ===================

@pytest.fixture
def stock_service(mapper, inventory, marketplace, metrics) -> StockService:
    return StockService(mapper, inventory, marketplace, metrics)


def figure(product_id: str, stock: float, reserve: float) -> StockFigure:
    return StockFigure(product_id=product_id, total_stock=stock, total_reserve=reserve)


# ===================
# STOCK FIGURE TESTS
# ===================

class TestStockFigure:
    """Tests for available stock arithmetic."""

    def test_available_is_stock_minus_reserve(self):
        """Should subtract reserve from stock."""
        assert figure("p", 10, 3).available_stock == 7

    def test_available_clamped_at_zero(self):
        """Should never be negative."""
        f = figure("p", 2, 5)
        assert f.available_stock == 0
        assert f.is_inconsistent is True


# ===================
# SYNC ONE TESTS
# ===================

class TestSyncOne:
    """Tests for sync_one()."""

    @pytest.mark.asyncio
    async def test_synced(self, stock_service, mapper, inventory, marketplace):
        """Should push available stock under the offer code."""
        await mapper.load_mappings()
        inventory.get_product_stock.return_value = figure("prod-uuid-1", 10, 4)

        outcome = await stock_service.sync_one("prod-uuid-1")

        assert outcome == StockSyncOutcome.SYNCED
        marketplace.update_stocks.assert_awaited_once_with(
            [StockUpdate(offer_id="SKU-001", count=6)]
        )

    @pytest.mark.asyncio
    async def test_unmapped_skipped_without_push(self, stock_service, mapper, inventory, marketplace, metrics):
        """Should count exactly one stock skip and make no external calls."""
        await mapper.load_mappings()

        outcome = await stock_service.sync_one("not-mapped")

        assert outcome == StockSyncOutcome.SKIPPED
        assert metrics.get_stats().skipped.stock == 1
        inventory.get_product_stock.assert_not_awaited()
        marketplace.update_stocks.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failure_returns_failed(self, stock_service, mapper, inventory, marketplace, metrics):
        """Should return FAILED and record SYNC_ERROR instead of raising."""
        await mapper.load_mappings()
        inventory.get_product_stock.return_value = figure("prod-uuid-1", 5, 0)
        marketplace.update_stocks.side_effect = SyncError(
            service="marketplace", message="server error 503", status=503, transient=True
        )

        outcome = await stock_service.sync_one("prod-uuid-1")

        assert outcome == StockSyncOutcome.FAILED
        error = metrics.get_stats().recent_errors[-1]
        assert error.type == "SYNC_ERROR"
        assert error.details["offer_id"] == "SKU-001"

    @pytest.mark.asyncio
    async def test_webhook_context(self, stock_service, mapper, metrics):
        """Should tag skips from webhooks with the webhook context."""
        await mapper.load_mappings()

        outcome = await stock_service.sync_from_webhook_event("not-mapped")

        assert outcome == StockSyncOutcome.SKIPPED
        assert metrics.get_stats().skipped.webhook == 1
        assert metrics.get_stats().skipped.stock == 0


# ===================
# SYNC ALL TESTS
# ===================

class TestSyncAll:
    """Tests for sync_all()."""

    @pytest.mark.asyncio
    async def test_batch_continues_after_failure(self, stock_service, mapper, inventory, marketplace):
        """Should count per-item outcomes and never abort."""
        await mapper.load_mappings()

        async def stock_for(product_id):
            if product_id == "prod-uuid-2":
                raise SyncError(service="inventory", message="timeout", transient=True)
            return figure(product_id, 3, 1)

        inventory.get_product_stock.side_effect = stock_for

        result = await stock_service.sync_all()

        assert result.total == 3
        assert result.synced == 2
        assert result.failed == 1
        assert result.errors == [{"product_id": "prod-uuid-2"}]
        assert marketplace.update_stocks.await_count == 2

    @pytest.mark.asyncio
    async def test_nothing_loaded(self, stock_service):
        """Should return an empty result when no mappings are loaded."""
        result = await stock_service.sync_all()

        assert result.total == 0
        assert result.synced == 0

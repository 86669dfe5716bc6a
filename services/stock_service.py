"""
Stock synchronizer: inventory stock -> marketplace stock.

Each product is synced independently. A failure on one product is logged
and counted; it never aborts the batch and never escapes sync_one().
"""

import time
from datetime import datetime, timezone

import structlog

from exceptions import SyncError
from integrations.inventory_client import InventoryClient
from integrations.marketplace_client import MarketplaceClient
from models.mapping import SyncContext
from models.stock import StockSyncOutcome, StockSyncResult, StockUpdate
from services.mapper_service import MapperService
from services.metrics_service import MetricsRecorder

logger = structlog.get_logger(__name__)


class StockService:
    """Pushes available stock of mapped products to the marketplace."""

    def __init__(
        self,
        mapper: MapperService,
        inventory: InventoryClient,
        marketplace: MarketplaceClient,
        metrics: MetricsRecorder,
    ):
        self.mapper = mapper
        self.inventory = inventory
        self.marketplace = marketplace
        self.metrics = metrics

    async def sync_one(
        self,
        product_id: str,
        context: SyncContext = SyncContext.STOCK
    ) -> StockSyncOutcome:
        """
        Sync the stock of a single product.

        Args:
            product_id: Inventory product id
            context: Caller, used to tag a skipped item

        Returns:
            SYNCED, SKIPPED (unmapped, no external calls) or FAILED
        """
        lookup = self.mapper.product_id_to_offer_id(product_id, context)
        if lookup.is_unmapped:
            self.metrics.record_skipped_item(context, product_id or "")
            return StockSyncOutcome.SKIPPED

        offer_id = lookup.target
        try:
            figure = await self.inventory.get_product_stock(product_id)
            if figure.is_inconsistent:
                logger.warning(
                    "stock_reserve_exceeds_stock",
                    product_id=product_id,
                    offer_id=offer_id,
                    total_stock=figure.total_stock,
                    total_reserve=figure.total_reserve,
                )
            await self.marketplace.update_stocks(
                [StockUpdate(offer_id=offer_id, count=figure.available_stock)]
            )
        except SyncError as e:
            self._record_failure(product_id, offer_id, context, e.message)
            return StockSyncOutcome.FAILED
        except Exception as e:
            logger.exception("stock_sync_unexpected_error", product_id=product_id, offer_id=offer_id)
            self._record_failure(product_id, offer_id, context, str(e))
            return StockSyncOutcome.FAILED

        logger.info(
            "stock_synced",
            product_id=product_id,
            offer_id=offer_id,
            available_stock=figure.available_stock,
            context=context.value,
        )
        return StockSyncOutcome.SYNCED

    async def sync_from_webhook_event(self, product_id: str) -> StockSyncOutcome:
        return await self.sync_one(product_id, context=SyncContext.WEBHOOK)

    async def sync_all(self) -> StockSyncResult:
        """Sync every mapped product, collecting per-item outcomes."""
        started_at = datetime.now(timezone.utc)
        started = time.monotonic()
        product_ids = self.mapper.all_product_ids()
        result = StockSyncResult(total=len(product_ids), started_at=started_at)

        logger.info("stock_sync_started", total=len(product_ids))
        for product_id in product_ids:
            outcome = await self.sync_one(product_id, SyncContext.STOCK)
            if outcome == StockSyncOutcome.SYNCED:
                result.synced += 1
            elif outcome == StockSyncOutcome.SKIPPED:
                result.skipped += 1
            else:
                result.failed += 1
                result.errors.append({"product_id": product_id})

        result.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "stock_sync_completed",
            total=result.total,
            synced=result.synced,
            skipped=result.skipped,
            failed=result.failed,
            duration_ms=result.duration_ms,
        )
        return result

    def _record_failure(self, product_id: str, offer_id: str, context: SyncContext, message: str) -> None:
        logger.error(
            "stock_sync_failed",
            error_type="SYNC_ERROR",
            product_id=product_id,
            offer_id=offer_id,
            context=context.value,
            error=message,
        )
        self.metrics.record_error(
            "SYNC_ERROR", message, product_id=product_id, offer_id=offer_id, context=context.value
        )

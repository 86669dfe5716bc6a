"""
Sync engine: builds and owns every component for one process.

One MetricsRecorder, one pair of stores and one pair of API clients are
shared by the synchronizers, the webhook ingest and the scheduler.
"""

from typing import Optional

import httpx
import structlog

from config.settings import Settings, get_settings
from exceptions import MappingLoadError
from integrations.inventory_client import InventoryClient
from integrations.marketplace_client import MarketplaceClient
from services.mapper_service import MapperService
from services.metrics_service import MetricsRecorder
from services.order_service import OrderService
from services.scheduler_service import JobScheduler
from services.stock_service import StockService
from services.webhook_service import WebhookService
from storage.order_mapping_store import OrderMappingStore
from storage.product_mapping_store import ProductMappingStore

logger = structlog.get_logger(__name__)

STOCK_SYNC_JOB = "stock_sync"
ORDER_POLL_JOB = "order_poll"
SHIPMENT_POLL_JOB = "shipment_poll"


class SyncEngine:
    """Wiring and lifecycle of the synchronization components."""

    def __init__(
        self,
        settings: Settings,
        inventory_transport: Optional[httpx.AsyncBaseTransport] = None,
        marketplace_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings
        self.metrics = MetricsRecorder(recent_errors_limit=settings.recent_errors_limit)

        self.product_store = ProductMappingStore(settings.product_mapping_file)
        self.order_store = OrderMappingStore(settings.order_mapping_file)

        self.inventory = InventoryClient(settings, transport=inventory_transport)
        self.marketplace = MarketplaceClient(settings, transport=marketplace_transport)

        self.mapper = MapperService(self.product_store, self.metrics)
        self.stock = StockService(self.mapper, self.inventory, self.marketplace, self.metrics)
        self.orders = OrderService(
            self.mapper,
            self.inventory,
            self.marketplace,
            self.order_store,
            self.metrics,
            settings,
        )
        self.webhooks = WebhookService(
            self.stock, self.metrics, entity_type=settings.webhook_entity_type
        )

        self.scheduler = JobScheduler()
        self.scheduler.add_job(
            STOCK_SYNC_JOB, settings.stock_sync_interval_minutes * 60, self.stock.sync_all
        )
        self.scheduler.add_job(
            ORDER_POLL_JOB, settings.order_poll_interval_minutes * 60, self.orders.poll_and_process_orders
        )
        self.scheduler.add_job(
            SHIPMENT_POLL_JOB,
            settings.effective_shipment_poll_interval_minutes * 60,
            self.orders.process_shipped_orders,
        )

    async def start(self, run_scheduler: Optional[bool] = None) -> None:
        """
        Load persisted state and start the scheduler.

        A missing or invalid mapping document does not stop startup: the
        engine runs with no mappings (every item is skipped) until a
        successful reload, unless configured to create an empty document.
        """
        await self.load_product_mappings()
        await self.order_store.load()

        if run_scheduler is None:
            run_scheduler = self.settings.scheduler_enabled
        if run_scheduler:
            self.scheduler.start()
        logger.info("sync_engine_started", scheduler=run_scheduler)

    async def load_product_mappings(self) -> int:
        try:
            return await self.mapper.load_mappings()
        except MappingLoadError as e:
            missing = not self.product_store.file_path.exists()
            if missing and self.settings.create_missing_mapping_file:
                await self.mapper.create_empty_mappings()
                return 0
            logger.error(
                "mappings_unavailable_at_startup",
                error_type="MAPPING_ERROR",
                error=e.message,
                file_path=str(self.product_store.file_path),
            )
            return 0

    async def reload_mappings(self) -> int:
        """
        Explicit reload.

        Raises:
            MappingLoadError: The previous mappings stay in effect
        """
        return await self.mapper.load_mappings()

    async def stop(self) -> None:
        """Stop firing jobs, let in-flight work finish, close HTTP clients."""
        await self.scheduler.stop_all()
        await self.scheduler.wait_idle()
        await self.webhooks.wait_idle()
        await self.inventory.close()
        await self.marketplace.close()
        logger.info("sync_engine_stopped")


# Singleton instance
_sync_engine: Optional[SyncEngine] = None


def get_sync_engine() -> SyncEngine:
    """Get or create the process-wide engine."""
    global _sync_engine
    if _sync_engine is None:
        _sync_engine = SyncEngine(get_settings())
    return _sync_engine


def set_sync_engine(engine: Optional[SyncEngine]) -> None:
    global _sync_engine
    _sync_engine = engine

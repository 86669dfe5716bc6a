"""
Mapper service: identity translation between the two systems.

A miss is a normal outcome. Lookups return a MappingLookup whose target
is None when unmapped; they never raise.
"""

from typing import Optional

import structlog

from exceptions import MappingLoadError
from models.mapping import (
    LookupDirection,
    MappingDocument,
    MappingLookup,
    SyncContext,
)
from models.metrics import MapperStats, MetricsSummary
from services.metrics_service import MetricsRecorder
from storage.product_mapping_store import ProductMappingStore

logger = structlog.get_logger(__name__)


class MapperService:
    """Translates productId <-> offerId and reports mapping metrics."""

    def __init__(self, store: ProductMappingStore, metrics: MetricsRecorder):
        self.store = store
        self.metrics = metrics

    # ===================
    # LOAD / SAVE
    # ===================

    async def load_mappings(self) -> int:
        """
        Load the mapping document and publish the count.

        Raises:
            MappingLoadError: Propagated from the store
        """
        logger.info("loading_mappings", file_path=str(self.store.file_path))
        count = await self.store.load()
        self.metrics.update_mapping_count(count)
        return count

    async def save_mappings(self, mappings: dict[str, str]) -> int:
        """
        Replace the whole mapping document.

        Args:
            mappings: productId -> offerId

        Returns:
            Number of saved mappings

        Raises:
            MappingWriteError: Propagated from the store
        """
        document = MappingDocument.from_pairs(mappings)
        await self.store.save(document)
        self.metrics.update_mapping_count(len(document.mappings))
        return len(document.mappings)

    async def create_empty_mappings(self) -> None:
        await self.store.create_empty()
        self.metrics.update_mapping_count(0)

    # ===================
    # LOOKUPS
    # ===================

    def product_id_to_offer_id(
        self,
        product_id: Optional[str],
        context: SyncContext = SyncContext.STOCK
    ) -> MappingLookup:
        return self._lookup(LookupDirection.PRODUCT_TO_OFFER, product_id, context)

    def offer_id_to_product_id(
        self,
        offer_id: Optional[str],
        context: SyncContext = SyncContext.ORDER
    ) -> MappingLookup:
        return self._lookup(LookupDirection.OFFER_TO_PRODUCT, offer_id, context)

    def _lookup(
        self,
        direction: LookupDirection,
        identifier: Optional[str],
        context: SyncContext
    ) -> MappingLookup:
        if not identifier or not identifier.strip():
            logger.warning("empty_identifier_lookup", direction=direction.value, context=context.value)
            return MappingLookup(direction=direction, source=identifier)

        try:
            if direction == LookupDirection.PRODUCT_TO_OFFER:
                target = self.store.lookup_by_product_id(identifier)
            else:
                target = self.store.lookup_by_offer_id(identifier)
        except MappingLoadError as e:
            self.metrics.record_lookup_error(direction, identifier, e, context)
            return MappingLookup(direction=direction, source=identifier)

        if target is None:
            self.metrics.record_not_found(direction, identifier, context)
            return MappingLookup(direction=direction, source=identifier)

        self.metrics.record_lookup_success(direction)
        return MappingLookup(direction=direction, source=identifier, target=target)

    def all_product_ids(self) -> list[str]:
        """Mapped product ids; empty when nothing is loaded."""
        try:
            return self.store.all_product_ids()
        except MappingLoadError as e:
            logger.error("mappings_not_loaded", error_type="MAPPING_ERROR", error=e.message)
            return []

    # ===================
    # REPORTING
    # ===================

    def get_stats(self) -> MapperStats:
        store_stats = self.store.stats()
        return MapperStats(
            file_path=store_stats.file_path,
            store_loaded=store_stats.is_loaded,
            store_last_loaded=store_stats.last_loaded,
            store_total_mappings=store_stats.total_mappings,
            metrics=self.metrics.get_stats(),
        )

    def get_summary(self) -> MetricsSummary:
        return self.metrics.get_summary()

"""
Mapping metrics recorder.

Counts lookup outcomes per direction, items skipped for lack of a mapping
per calling context, and keeps a bounded ring buffer of recent errors.
One instance per engine, injected into every consumer. Counters change
only through the record_* methods and reset().
"""

from collections import deque
from datetime import datetime, timezone
from typing import Any, Optional

import structlog

from models.mapping import LookupDirection, SyncContext
from models.metrics import (
    LookupCounters,
    LookupStats,
    MappingInfo,
    MetricsStats,
    MetricsSummary,
    RecentError,
    SkippedCounters,
    Uptime,
)

logger = structlog.get_logger(__name__)

# Entries exposed by get_stats()
STATS_RECENT_ERRORS = 10


class MetricsRecorder:
    """Mapping and sync metrics."""

    def __init__(self, recent_errors_limit: int = 100):
        self.recent_errors_limit = recent_errors_limit
        self._reset_state()

    def _reset_state(self) -> None:
        self.total_mappings = 0
        self.last_loaded: Optional[datetime] = None
        self.is_loaded = False
        self.lookups: dict[LookupDirection, dict[str, int]] = {
            direction: {"success": 0, "not_found": 0, "errors": 0}
            for direction in LookupDirection
        }
        self.skipped: dict[SyncContext, int] = {context: 0 for context in SyncContext}
        self.recent_errors: deque[RecentError] = deque(maxlen=self.recent_errors_limit)
        self.start_time = datetime.now(timezone.utc)

    # ===================
    # RECORDING
    # ===================

    def update_mapping_count(self, count: int) -> None:
        self.total_mappings = count
        self.last_loaded = datetime.now(timezone.utc)
        self.is_loaded = True
        logger.info("mapping_metrics_updated", total_mappings=count)

    def record_lookup_success(self, direction: LookupDirection) -> None:
        self.lookups[direction]["success"] += 1

    def record_not_found(
        self,
        direction: LookupDirection,
        identifier: str,
        context: SyncContext
    ) -> None:
        self.lookups[direction]["not_found"] += 1
        self._push(RecentError(
            type="NOT_FOUND",
            timestamp=datetime.now(timezone.utc),
            direction=direction.value,
            identifier=identifier,
            context=context.value,
        ))
        logger.warning(
            "mapping_not_found",
            direction=direction.value,
            identifier=identifier,
            context=context.value,
        )

    def record_lookup_error(
        self,
        direction: LookupDirection,
        identifier: str,
        error: Exception,
        context: SyncContext
    ) -> None:
        self.lookups[direction]["errors"] += 1
        self._push(RecentError(
            type="ERROR",
            timestamp=datetime.now(timezone.utc),
            direction=direction.value,
            identifier=identifier,
            context=context.value,
            error=str(error),
        ))
        logger.error(
            "mapping_lookup_failed",
            error_type="MAPPING_ERROR",
            direction=direction.value,
            identifier=identifier,
            context=context.value,
            error=str(error),
        )

    def record_skipped_item(self, context: SyncContext, identifier: str) -> None:
        self.skipped[context] += 1
        logger.info(
            "item_skipped_unmapped",
            context=context.value,
            identifier=identifier,
            total_skipped=self.skipped[context],
        )

    def record_error(self, tag: str, message: str, **identifiers: Any) -> None:
        """
        Record a sync or webhook failure in the recent error buffer.

        Args:
            tag: Error type tag (SYNC_ERROR, ORDER_ERROR, WEBHOOK_ERROR, ...)
            message: Short description
            **identifiers: Acting ids (product_id, offer_id, order_id, ...)
        """
        self._push(RecentError(
            type=tag,
            timestamp=datetime.now(timezone.utc),
            error=message,
            details={k: v for k, v in identifiers.items() if v is not None},
        ))

    def _push(self, entry: RecentError) -> None:
        self.recent_errors.append(entry)

    # ===================
    # REPORTING
    # ===================

    def get_stats(self) -> MetricsStats:
        elapsed = datetime.now(timezone.utc) - self.start_time
        return MetricsStats(
            mappings=MappingInfo(
                total=self.total_mappings,
                last_loaded=self.last_loaded,
                is_loaded=self.is_loaded,
            ),
            lookups=LookupStats(
                product_id_to_offer_id=LookupCounters(**self.lookups[LookupDirection.PRODUCT_TO_OFFER]),
                offer_id_to_product_id=LookupCounters(**self.lookups[LookupDirection.OFFER_TO_PRODUCT]),
            ),
            skipped=SkippedCounters(**{c.value: n for c, n in self.skipped.items()}),
            recent_errors=list(self.recent_errors)[-STATS_RECENT_ERRORS:],
            uptime=Uptime.from_milliseconds(int(elapsed.total_seconds() * 1000)),
            start_time=self.start_time,
        )

    def get_summary(self) -> MetricsSummary:
        """Compact view; totals are sums of the per-direction counters in get_stats()."""
        stats = self.get_stats()
        forward = stats.lookups.product_id_to_offer_id
        reverse = stats.lookups.offer_id_to_product_id
        return MetricsSummary(
            total_mappings=stats.mappings.total,
            is_loaded=stats.mappings.is_loaded,
            last_loaded=stats.mappings.last_loaded,
            total_lookups=forward.total + reverse.total,
            successful_lookups=forward.success + reverse.success,
            not_found_lookups=forward.not_found + reverse.not_found,
            error_lookups=forward.errors + reverse.errors,
            total_skipped=stats.skipped.total,
            uptime_hours=stats.uptime.hours,
        )

    def reset(self) -> None:
        self._reset_state()
        logger.info("mapping_metrics_reset")

"""
Mapping metrics schemas.

Reporting payloads served by /api/mapping/stats and /api/mapping/summary.
"""

from datetime import datetime
from typing import Optional

from pydantic import Field, computed_field

from models.base import CamelSchema


class LookupCounters(CamelSchema):
    """Lookup counters for one direction."""

    success: int = 0
    not_found: int = 0
    errors: int = 0

    @computed_field
    @property
    def total(self) -> int:
        return self.success + self.not_found + self.errors

    @computed_field
    @property
    def success_rate(self) -> str:
        """Share of successful lookups, formatted like '97.50%'."""
        if self.total == 0:
            return "0%"
        return f"{self.success / self.total * 100:.2f}%"


class LookupStats(CamelSchema):
    product_id_to_offer_id: LookupCounters = Field(default_factory=LookupCounters)
    offer_id_to_product_id: LookupCounters = Field(default_factory=LookupCounters)


class SkippedCounters(CamelSchema):
    """Items skipped for lack of a mapping, per calling context."""

    stock: int = 0
    order: int = 0
    webhook: int = 0

    @computed_field
    @property
    def total(self) -> int:
        return self.stock + self.order + self.webhook


class MappingInfo(CamelSchema):
    total: int = 0
    last_loaded: Optional[datetime] = None
    is_loaded: bool = False


class Uptime(CamelSchema):
    milliseconds: int
    seconds: int
    minutes: int
    hours: int

    @classmethod
    def from_milliseconds(cls, ms: int) -> "Uptime":
        return cls(
            milliseconds=ms,
            seconds=ms // 1000,
            minutes=ms // 60_000,
            hours=ms // 3_600_000,
        )


class RecentError(CamelSchema):
    """One entry of the recent error ring buffer."""

    type: str
    timestamp: datetime
    direction: Optional[str] = None
    identifier: Optional[str] = None
    context: Optional[str] = None
    error: Optional[str] = None
    details: dict = Field(default_factory=dict)


class MetricsStats(CamelSchema):
    """Full metrics snapshot."""

    mappings: MappingInfo
    lookups: LookupStats
    skipped: SkippedCounters
    recent_errors: list[RecentError] = Field(default_factory=list)
    uptime: Uptime
    start_time: datetime


class MetricsSummary(CamelSchema):
    """Compact metrics for dashboards."""

    total_mappings: int
    is_loaded: bool
    last_loaded: Optional[datetime] = None
    total_lookups: int
    successful_lookups: int
    not_found_lookups: int
    error_lookups: int
    total_skipped: int
    uptime_hours: int


class MapperStats(CamelSchema):
    """Store state combined with metrics, served by the stats endpoint."""

    file_path: str
    store_loaded: bool
    store_last_loaded: Optional[datetime] = None
    store_total_mappings: int
    metrics: MetricsStats

"""
Stock schemas.

StockFigure is transient: recomputed on every sync pass, never persisted.
"""

import math
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import Field, computed_field

from models.base import BaseSchema


class StockFigure(BaseSchema):
    """Stock of one product summed across all stores."""

    product_id: str
    total_stock: float = 0
    total_reserve: float = 0
    stock_by_store: list[dict] = Field(default_factory=list)

    @property
    def raw_available(self) -> float:
        """Stock minus reserve, before clamping."""
        return self.total_stock - self.total_reserve

    @property
    def is_inconsistent(self) -> bool:
        """Reserve exceeds stock in the upstream report."""
        return self.raw_available < 0

    @computed_field
    @property
    def available_stock(self) -> int:
        """Whole units available for sale, never negative."""
        return max(0, math.floor(self.raw_available))


class StockUpdate(BaseSchema):
    """One stock figure pushed to the marketplace."""

    offer_id: str = Field(..., min_length=1)
    count: int = Field(..., ge=0)


class StockSyncOutcome(str, Enum):
    """Result of syncing a single product."""
    SYNCED = "synced"
    SKIPPED = "skipped"
    FAILED = "failed"


class StockSyncResult(BaseSchema):
    """Outcome of a full (scheduled) stock sync."""

    total: int = 0
    synced: int = 0
    skipped: int = 0
    failed: int = 0
    errors: list[dict] = Field(default_factory=list)
    started_at: Optional[datetime] = None
    duration_ms: Optional[int] = None

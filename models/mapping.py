"""
Identity mapping schemas.

productId (inventory system) <-> offerId (marketplace).
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import Field

from models.base import CamelSchema


MAPPING_DOCUMENT_VERSION = "1.0"


class LookupDirection(str, Enum):
    """Direction of an identity lookup."""
    PRODUCT_TO_OFFER = "productIdToOfferId"
    OFFER_TO_PRODUCT = "offerIdToProductId"


class SyncContext(str, Enum):
    """Calling context, used to tag misses and skipped items."""
    STOCK = "stock"
    ORDER = "order"
    WEBHOOK = "webhook"


class ProductMapping(CamelSchema):
    """One productId <-> offerId pair."""

    product_id: str = Field(..., min_length=1, description="Inventory product id")
    offer_id: str = Field(..., min_length=1, description="Marketplace offer code")


class MappingDocument(CamelSchema):
    """
    Persisted mapping document.

    On disk the mappings are a JSON object productId -> offerId.
    """

    version: str = Field(default=MAPPING_DOCUMENT_VERSION, min_length=1)
    last_updated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    mappings: list[ProductMapping] = Field(default_factory=list)

    @classmethod
    def from_pairs(cls, pairs: dict[str, str], version: str = MAPPING_DOCUMENT_VERSION) -> "MappingDocument":
        """Build a document from a productId -> offerId dict."""
        return cls(
            version=version,
            mappings=[
                ProductMapping(product_id=product_id, offer_id=offer_id)
                for product_id, offer_id in pairs.items()
            ],
        )

    def as_pairs(self) -> dict[str, str]:
        return {m.product_id: m.offer_id for m in self.mappings}

    def to_file_dict(self) -> dict:
        """Serialize in the on-disk format."""
        return {
            "version": self.version,
            "lastUpdated": self.last_updated.isoformat(),
            "mappings": self.as_pairs(),
        }


@dataclass(frozen=True)
class MappingLookup:
    """
    Result of an identity lookup.

    A miss is an expected outcome, represented by target=None.
    """
    direction: LookupDirection
    source: Optional[str]
    target: Optional[str] = None

    @property
    def is_mapped(self) -> bool:
        return self.target is not None

    @property
    def is_unmapped(self) -> bool:
        return self.target is None


class MappingStoreStats(CamelSchema):
    """State of the in-memory mapping index."""

    total_mappings: int = 0
    last_loaded: Optional[datetime] = None
    is_loaded: bool = False
    file_path: str


class MappingReloadResponse(CamelSchema):
    """Response of an explicit mapping reload."""

    status: str = "reloaded"
    total_mappings: int

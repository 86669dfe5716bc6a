"""
Order schemas: marketplace orders, order mappings, and poll results.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import Field, field_validator

from models.base import BaseSchema, CamelSchema


ORDER_DOCUMENT_VERSION = "1.0"


class OrderStatus(str, Enum):
    """Lifecycle of an order mapping."""
    CREATED = "created"
    SHIPPED = "shipped"


# ===================
# ORDER MAPPINGS
# ===================

class OrderMapping(CamelSchema):
    """Correlation between a marketplace order and the internal sales document."""

    marketplace_order_id: str = Field(..., min_length=1)
    internal_order_id: str = Field(..., min_length=1)
    status: OrderStatus = OrderStatus.CREATED
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: Optional[datetime] = None


class OrderMappingDocument(CamelSchema):
    """Persisted order mapping document (append-only history)."""

    version: str = ORDER_DOCUMENT_VERSION
    last_updated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    mappings: list[OrderMapping] = Field(default_factory=list)


# ===================
# MARKETPLACE ORDERS
# ===================

class MarketplaceOrderItem(CamelSchema):
    """Line item of a marketplace order."""

    offer_id: Optional[str] = None
    offer_name: Optional[str] = None
    count: int = Field(default=1, ge=0)
    price: float = Field(default=0, ge=0)


class DeliveryAddress(CamelSchema):
    postcode: Optional[str] = None
    city: Optional[str] = None
    street: Optional[str] = None
    house: Optional[str] = None
    building: Optional[str] = None
    apartment: Optional[str] = None


class Recipient(CamelSchema):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None


class Delivery(CamelSchema):
    address: Optional[DeliveryAddress] = None
    recipient: Optional[Recipient] = None


class MarketplaceOrder(CamelSchema):
    """Order as returned by the marketplace order listing."""

    id: str
    status: Optional[str] = None
    substatus: Optional[str] = None
    items: list[MarketplaceOrderItem] = Field(default_factory=list)
    delivery: Optional[Delivery] = None

    @field_validator("id", mode="before")
    @classmethod
    def id_as_string(cls, v: Any) -> Any:
        """Marketplace order ids arrive as integers."""
        return str(v) if isinstance(v, int) else v


class ResolvedOrderItem(BaseSchema):
    """Line item with its inventory product id resolved."""

    offer_id: str
    product_id: str
    count: int
    price: float


# ===================
# POLL RESULTS
# ===================

class OrderSyncResult(BaseSchema):
    """Outcome of one new-order poll."""

    fetched: int = 0
    processed: int = 0
    created: int = 0
    skipped: int = 0
    skipped_items: int = 0
    failed: int = 0
    errors: list[dict] = Field(default_factory=list)


class ShipmentSyncResult(BaseSchema):
    """Outcome of one shipment poll."""

    checked: int = 0
    shipped: int = 0
    pending: int = 0
    failed: int = 0
    errors: list[dict] = Field(default_factory=list)

"""
Pydantic models for request/response validation.
"""

# Base
from models.base import BaseSchema, CamelSchema

# Mappings
from models.mapping import (
    LookupDirection,
    SyncContext,
    ProductMapping,
    MappingDocument,
    MappingLookup,
    MappingStoreStats,
    MappingReloadResponse,
)

# Orders
from models.order import (
    OrderStatus,
    OrderMapping,
    OrderMappingDocument,
    MarketplaceOrderItem,
    MarketplaceOrder,
    ResolvedOrderItem,
    OrderSyncResult,
    ShipmentSyncResult,
)

# Stock
from models.stock import (
    StockFigure,
    StockUpdate,
    StockSyncOutcome,
    StockSyncResult,
)

# Metrics
from models.metrics import (
    LookupCounters,
    MetricsStats,
    MetricsSummary,
    MapperStats,
)

# Webhooks
from models.webhook import WebhookState, WebhookEvent, WebhookResult, WebhookAck

# Jobs
from models.jobs import JobStatus, JobRunResponse

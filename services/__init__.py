"""
Business logic services.

Each service handles one part of the synchronization.
"""

from services.metrics_service import MetricsRecorder
from services.mapper_service import MapperService
from services.stock_service import StockService
from services.order_service import OrderService
from services.scheduler_service import JobScheduler
from services.webhook_service import WebhookService
from services.engine import SyncEngine, get_sync_engine, set_sync_engine

__all__ = [
    "MetricsRecorder",
    "MapperService",
    "StockService",
    "OrderService",
    "JobScheduler",
    "WebhookService",
    "SyncEngine",
    "get_sync_engine",
    "set_sync_engine",
]

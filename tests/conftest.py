"""
Shared test fixtures.

Run: pytest tests -v
"""

import sys
from pathlib import Path

# Add project root to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

import json
import pytest
import httpx
from unittest.mock import AsyncMock

from config.settings import Settings
from integrations.inventory_client import InventoryClient
from integrations.marketplace_client import MarketplaceClient
from services.metrics_service import MetricsRecorder
from services.mapper_service import MapperService
from storage.product_mapping_store import ProductMappingStore
from storage.order_mapping_store import OrderMappingStore


INVENTORY_BASE = "https://inventory.test/api/remap/1.2"
MARKETPLACE_BASE = "https://marketplace.test"


# ===================
# SAMPLE DATA
# ===================

SAMPLE_MAPPINGS = {
    "prod-uuid-1": "SKU-001",
    "prod-uuid-2": "SKU-002",
    "prod-uuid-3": "SKU-003",
}


def write_mapping_file(path: Path, mappings, version: str = "1.0") -> Path:
    """Write a mapping document in the on-disk format."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps({
            "version": version,
            "lastUpdated": "2025-01-15T08:00:00+00:00",
            "mappings": mappings,
        }),
        encoding="utf-8",
    )
    return path


def failing_transport() -> httpx.MockTransport:
    """Transport that fails the test if a real request is attempted."""
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError(f"Unexpected HTTP call: {request.method} {request.url}")
    return httpx.MockTransport(handler)


# ===================
# SETTINGS
# ===================

def make_settings(tmp_path: Path, **overrides) -> Settings:
    values = dict(
        inventory_base_url=INVENTORY_BASE,
        inventory_token="inventory-test-token",
        marketplace_base_url=MARKETPLACE_BASE,
        marketplace_token="marketplace-test-token",
        marketplace_campaign_id="12345",
        product_mapping_file=str(tmp_path / "product-mappings.json"),
        order_mapping_file=str(tmp_path / "order-mappings.json"),
        retry_max_attempts=3,
        retry_base_delay_seconds=0,
        scheduler_enabled=False,
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings pointing at temp files, with no retry delay."""
    return make_settings(tmp_path)


# ===================
# CORE COMPONENTS
# ===================

@pytest.fixture
def metrics() -> MetricsRecorder:
    return MetricsRecorder(recent_errors_limit=100)


@pytest.fixture
def mapping_file(settings) -> Path:
    """Mapping document with SAMPLE_MAPPINGS."""
    return write_mapping_file(Path(settings.product_mapping_file), SAMPLE_MAPPINGS)


@pytest.fixture
def product_store(settings, mapping_file) -> ProductMappingStore:
    """Store over SAMPLE_MAPPINGS (not yet loaded)."""
    return ProductMappingStore(settings.product_mapping_file)


@pytest.fixture
def order_store(settings) -> OrderMappingStore:
    return OrderMappingStore(settings.order_mapping_file)


@pytest.fixture
def mapper(product_store, metrics) -> MapperService:
    return MapperService(product_store, metrics)


# ===================
# API CLIENT DOUBLES
# ===================

@pytest.fixture
def inventory(settings) -> InventoryClient:
    """
    Inventory client whose network methods are AsyncMocks.

    entity_href/entity_meta keep their real behaviour.
    """
    client = InventoryClient(settings, transport=failing_transport())
    client.get_product_stock = AsyncMock()
    client.create_customer_order = AsyncMock()
    client.get_customer_order = AsyncMock()
    return client


@pytest.fixture
def marketplace(settings) -> MarketplaceClient:
    """Marketplace client whose network methods are AsyncMocks."""
    client = MarketplaceClient(settings, transport=failing_transport())
    client.get_orders = AsyncMock(return_value=[])
    client.update_stocks = AsyncMock(return_value=1)
    client.notify_shipment = AsyncMock(return_value={})
    return client

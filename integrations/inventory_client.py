"""
Inventory system (M1) REST client.

Products, per-store stock report and customer orders (sales documents).
List endpoints page with limit/offset and report the total in meta.size.
"""

from typing import Any, AsyncIterator, Optional

import httpx
import structlog

from config.settings import Settings
from integrations.base_client import ApiClient
from models.stock import StockFigure

logger = structlog.get_logger(__name__)


class InventoryClient(ApiClient):
    """Client for the inventory system API."""

    service_name = "inventory"

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(
            base_url=settings.inventory_base_url,
            token=settings.inventory_token,
            timeout_seconds=settings.http_timeout_seconds,
            max_attempts=settings.retry_max_attempts,
            base_delay_seconds=settings.retry_base_delay_seconds,
            max_delay_seconds=settings.retry_max_delay_seconds,
            transport=transport,
            extra_headers={"Accept-Encoding": "gzip"},
        )
        self.page_size = settings.inventory_page_size

    def entity_href(self, entity: str, entity_id: str) -> str:
        """Absolute href of an entity, as used in filters and meta references."""
        return f"{self.base_url}/entity/{entity}/{entity_id}"

    def entity_meta(self, entity: str, entity_id: str) -> dict:
        return {
            "meta": {
                "href": self.entity_href(entity, entity_id),
                "type": entity,
                "mediaType": "application/json",
            }
        }

    async def iterate_rows(self, path: str, params: Optional[dict[str, Any]] = None) -> AsyncIterator[dict]:
        """
        Yield rows of a paginated list endpoint.

        Stops when meta.size is reached or a page comes back short.
        """
        offset = 0
        while True:
            page_params = {**(params or {}), "limit": self.page_size, "offset": offset}
            data = await self.request("GET", path, params=page_params)
            rows = data.get("rows") or []
            for row in rows:
                yield row

            offset += len(rows)
            total = (data.get("meta") or {}).get("size")
            if not rows or len(rows) < self.page_size:
                break
            if total is not None and offset >= total:
                break

    # ===================
    # PRODUCTS
    # ===================

    async def get_products(self, filters: Optional[dict[str, Any]] = None) -> list[dict]:
        products = [row async for row in self.iterate_rows("/entity/product", filters)]
        logger.info("inventory_products_fetched", count=len(products))
        return products

    async def get_product(self, product_id: str) -> dict:
        return await self.request("GET", f"/entity/product/{product_id}")

    async def get_product_stock(self, product_id: str) -> StockFigure:
        """
        Stock of one product summed over every store.

        Raises:
            SyncError: If the report cannot be fetched
        """
        params = {"filter": f"product={self.entity_href('product', product_id)}"}
        rows = [row async for row in self.iterate_rows("/report/stock/bystore", params)]

        # The report nests per-store figures under stockByStore on each row
        stores: list[dict] = []
        for row in rows:
            if isinstance(row.get("stockByStore"), list):
                stores.extend(row["stockByStore"])
            else:
                stores.append(row)

        figure = StockFigure(
            product_id=product_id,
            total_stock=sum(float(s.get("stock") or 0) for s in stores),
            total_reserve=sum(float(s.get("reserve") or 0) for s in stores),
            stock_by_store=stores,
        )
        logger.debug(
            "inventory_stock_fetched",
            product_id=product_id,
            total_stock=figure.total_stock,
            total_reserve=figure.total_reserve,
            available_stock=figure.available_stock,
        )
        return figure

    # ===================
    # CUSTOMER ORDERS
    # ===================

    async def create_customer_order(self, payload: dict) -> dict:
        order = await self.request("POST", "/entity/customerorder", json=payload)
        logger.info(
            "customer_order_created",
            internal_order_id=order.get("id"),
            name=order.get("name"),
            positions=len(payload.get("positions", [])),
        )
        return order

    async def get_customer_order(self, order_id: str) -> dict:
        """Customer order with its state expanded (state.name)."""
        return await self.request(
            "GET", f"/entity/customerorder/{order_id}", params={"expand": "state"}
        )

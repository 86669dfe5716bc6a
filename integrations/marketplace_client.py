"""
Marketplace (M2) REST client.

Campaign-scoped endpoints: order listing, stock push and order status.
"""

from datetime import datetime, timezone
from typing import Any, Optional

import httpx
import structlog

from config.settings import Settings
from integrations.base_client import ApiClient
from models.stock import StockUpdate

logger = structlog.get_logger(__name__)

# Marketplace limit on skus per stock update request
MAX_SKUS_PER_REQUEST = 2000


class MarketplaceClient(ApiClient):
    """Client for the marketplace partner API."""

    service_name = "marketplace"

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(
            base_url=settings.marketplace_base_url,
            token=settings.marketplace_token,
            timeout_seconds=settings.http_timeout_seconds,
            max_attempts=settings.retry_max_attempts,
            base_delay_seconds=settings.retry_base_delay_seconds,
            max_delay_seconds=settings.retry_max_delay_seconds,
            transport=transport,
        )
        self.campaign_id = settings.marketplace_campaign_id
        self.warehouse_id = settings.marketplace_warehouse_id

    @property
    def campaign_path(self) -> str:
        return f"/campaigns/{self.campaign_id}"

    # ===================
    # ORDERS
    # ===================

    async def get_orders(self, status: str, substatus: Optional[str] = None) -> list[dict]:
        """
        All orders with the given status, across every page.

        Orders are returned as received; callers validate each one so a
        malformed order does not hide the rest of the page.

        Raises:
            SyncError: If any page cannot be fetched
        """
        orders: list[dict] = []
        page = 1
        while True:
            params: dict[str, Any] = {"status": status, "page": page}
            if substatus:
                params["substatus"] = substatus
            data = await self.request("GET", f"{self.campaign_path}/orders", params=params)

            orders.extend(data.get("orders") or [])

            pages_count = (data.get("pager") or {}).get("pagesCount") or 1
            if page >= pages_count:
                break
            page += 1

        logger.info("marketplace_orders_fetched", status=status, count=len(orders))
        return orders

    async def update_order_status(
        self,
        order_id: str,
        status: str,
        substatus: Optional[str] = None
    ) -> dict:
        order: dict[str, str] = {"status": status}
        if substatus:
            order["substatus"] = substatus
        data = await self.request(
            "PUT",
            f"{self.campaign_path}/orders/{order_id}/status",
            json={"order": order},
        )
        logger.info(
            "marketplace_order_status_updated",
            marketplace_order_id=order_id,
            status=status,
            substatus=substatus,
        )
        return data

    async def notify_shipment(self, order_id: str) -> dict:
        """Report an order as shipped (status PROCESSING, substatus SHIPPED)."""
        return await self.update_order_status(order_id, "PROCESSING", "SHIPPED")

    # ===================
    # STOCKS
    # ===================

    def _stock_body(self, updates: list[StockUpdate]) -> dict:
        updated_at = datetime.now(timezone.utc).isoformat()
        return {
            "skus": [
                {
                    "sku": update.offer_id,
                    "warehouseId": self.warehouse_id,
                    "items": [
                        {"count": update.count, "type": "FIT", "updatedAt": updated_at}
                    ],
                }
                for update in updates
            ]
        }

    async def update_stocks(self, updates: list[StockUpdate]) -> int:
        """
        Push stock figures, chunked to the per-request sku limit.

        Returns:
            Number of requests sent

        Raises:
            SyncError: On the first failing chunk
        """
        requests_sent = 0
        for start in range(0, len(updates), MAX_SKUS_PER_REQUEST):
            chunk = updates[start:start + MAX_SKUS_PER_REQUEST]
            await self.request(
                "PUT", f"{self.campaign_path}/offers/stocks", json=self._stock_body(chunk)
            )
            requests_sent += 1
            logger.info("marketplace_stocks_updated", count=len(chunk))
        return requests_sent

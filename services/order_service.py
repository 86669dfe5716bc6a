"""
Order synchronizer.

New orders: marketplace -> inventory sales documents.
Shipments: inventory shipment state -> marketplace order status.

Order creation is serialized per marketplace order id; the order mapping
store rejects a second record for the same order as a backstop.
"""

import asyncio
from typing import Any, Optional

import structlog
from pydantic import ValidationError as PydanticValidationError

from config.settings import Settings
from exceptions import (
    DuplicateOrderError,
    MappingWriteError,
    OrderNotFoundError,
    SyncError,
)
from integrations.inventory_client import InventoryClient
from integrations.marketplace_client import MarketplaceClient
from models.mapping import SyncContext
from models.order import (
    DeliveryAddress,
    MarketplaceOrder,
    OrderMapping,
    OrderStatus,
    OrderSyncResult,
    Recipient,
    ResolvedOrderItem,
    ShipmentSyncResult,
)
from services.mapper_service import MapperService
from services.metrics_service import MetricsRecorder
from storage.order_mapping_store import OrderMappingStore

logger = structlog.get_logger(__name__)

ORDER_NAME_PREFIX = "M2-"


def format_address(address: DeliveryAddress) -> str:
    parts = [address.postcode, address.city, address.street]
    if address.house:
        parts.append(f"house {address.house}")
    if address.building:
        parts.append(f"bldg {address.building}")
    if address.apartment:
        parts.append(f"apt {address.apartment}")
    return ", ".join(p for p in parts if p)


def format_recipient(recipient: Recipient) -> str:
    parts = [recipient.first_name, recipient.last_name]
    if recipient.phone:
        parts.append(f"tel: {recipient.phone}")
    return " ".join(p for p in parts if p)


class OrderService:
    """Creates internal orders for marketplace orders and reports shipments back."""

    def __init__(
        self,
        mapper: MapperService,
        inventory: InventoryClient,
        marketplace: MarketplaceClient,
        order_store: OrderMappingStore,
        metrics: MetricsRecorder,
        settings: Settings,
    ):
        self.mapper = mapper
        self.inventory = inventory
        self.marketplace = marketplace
        self.order_store = order_store
        self.metrics = metrics
        self.settings = settings
        self._order_locks: dict[str, asyncio.Lock] = {}
        # Created internally but not yet recorded: marketplace id -> internal id
        self._unrecorded: dict[str, str] = {}

    # ===================
    # NEW ORDERS
    # ===================

    async def poll_and_process_orders(self) -> OrderSyncResult:
        """
        Fetch new marketplace orders and create the missing internal ones.

        A failed fetch returns an empty result; the next poll retries.
        """
        status = self.settings.new_order_status
        logger.info("order_poll_started", status=status)
        try:
            orders = await self.marketplace.get_orders(status=status)
        except SyncError as e:
            logger.error(
                "order_poll_failed",
                error_type="API_ERROR",
                status=status,
                error=e.message,
            )
            self.metrics.record_error("API_ERROR", e.message, operation="get_orders")
            return OrderSyncResult(errors=[{"type": "polling_error", "error": e.message}])

        result = OrderSyncResult(fetched=len(orders))
        for raw in orders:
            order = self.parse_order(raw, result)
            if order is not None:
                await self.process_order(order, result)

        self._prune_locks()
        logger.info(
            "order_poll_completed",
            fetched=result.fetched,
            processed=result.processed,
            created=result.created,
            skipped=result.skipped,
            skipped_items=result.skipped_items,
            failed=result.failed,
        )
        return result

    def parse_order(self, raw: Any, result: OrderSyncResult) -> Optional[MarketplaceOrder]:
        """
        Validate one marketplace order.

        Returns:
            The order, or None (counted as failed) when it is malformed
        """
        try:
            return MarketplaceOrder.model_validate(raw)
        except PydanticValidationError as e:
            raw_id = raw.get("id") if isinstance(raw, dict) else None
            logger.error(
                "marketplace_order_invalid",
                error_type="ORDER_ERROR",
                marketplace_order_id=raw_id,
                errors=e.error_count(),
                error=str(e),
            )
            self._fail(result, str(raw_id) if raw_id is not None else None, "Invalid marketplace order")
            return None

    async def process_order(self, order: MarketplaceOrder, result: Optional[OrderSyncResult] = None) -> Optional[str]:
        """
        Create the internal order for one marketplace order.

        An order created earlier whose record could not be written is not
        created again; only its record is retried.

        Returns:
            Internal order id, or None if nothing was created
        """
        result = result if result is not None else OrderSyncResult(fetched=1)
        lock = self._order_locks.setdefault(order.id, asyncio.Lock())
        async with lock:
            if self.order_store.has_order(order.id):
                logger.debug("order_already_processed", marketplace_order_id=order.id)
                result.skipped += 1
                return None

            pending_id = self._unrecorded.get(order.id)
            if pending_id is not None:
                try:
                    await self._record(order.id, pending_id)
                except MappingWriteError as e:
                    self._fail(result, order.id, e.message)
                    return pending_id
                result.skipped += 1
                logger.info(
                    "order_mapping_recovered",
                    marketplace_order_id=order.id,
                    internal_order_id=pending_id,
                )
                return pending_id

            result.processed += 1
            resolved, skipped = self.resolve_items(order)
            result.skipped_items += skipped

            if not resolved:
                message = "Order has no mapped items"
                logger.error(
                    "order_has_no_mapped_items",
                    error_type="ORDER_ERROR",
                    marketplace_order_id=order.id,
                    offer_ids=[item.offer_id for item in order.items],
                )
                self._fail(result, order.id, message)
                return None

            payload = self.build_order_payload(order, resolved)
            try:
                created = await self.inventory.create_customer_order(payload)
            except SyncError as e:
                logger.error(
                    "customer_order_create_failed",
                    error_type="ORDER_ERROR",
                    marketplace_order_id=order.id,
                    status=e.status,
                    error=e.message,
                )
                self._fail(result, order.id, e.message)
                return None

            internal_order_id = created.get("id")
            if not internal_order_id:
                logger.error(
                    "customer_order_missing_id",
                    error_type="ORDER_ERROR",
                    marketplace_order_id=order.id,
                )
                self._fail(result, order.id, "Created order has no id")
                return None

            try:
                recorded = await self._record(order.id, internal_order_id)
            except MappingWriteError as e:
                self._fail(result, order.id, e.message)
                return internal_order_id

            if not recorded:
                result.skipped += 1
                return internal_order_id

            result.created += 1
            logger.info(
                "order_created",
                marketplace_order_id=order.id,
                internal_order_id=internal_order_id,
                positions=len(resolved),
                skipped_items=skipped,
            )
            return internal_order_id

    async def _record(self, marketplace_order_id: str, internal_order_id: str) -> bool:
        """
        Record a created order, remembering it in memory if the write fails.

        Returns:
            False if the order was already recorded

        Raises:
            MappingWriteError: The record is kept pending for the next poll
        """
        try:
            await self.order_store.record_order(marketplace_order_id, internal_order_id)
        except DuplicateOrderError:
            self._unrecorded.pop(marketplace_order_id, None)
            logger.warning(
                "order_mapping_already_recorded",
                marketplace_order_id=marketplace_order_id,
                internal_order_id=internal_order_id,
            )
            return False
        except MappingWriteError as e:
            # The internal order exists; only the record is missing
            self._unrecorded[marketplace_order_id] = internal_order_id
            logger.error(
                "order_mapping_not_recorded",
                error_type="FILE_ERROR",
                marketplace_order_id=marketplace_order_id,
                internal_order_id=internal_order_id,
                error=e.message,
            )
            raise

        self._unrecorded.pop(marketplace_order_id, None)
        return True

    def resolve_items(self, order: MarketplaceOrder) -> tuple[list[ResolvedOrderItem], int]:
        """
        Map line items to inventory products.

        Returns:
            (resolved items, number of unmapped items)
        """
        resolved: list[ResolvedOrderItem] = []
        skipped = 0
        for item in order.items:
            lookup = self.mapper.offer_id_to_product_id(item.offer_id, SyncContext.ORDER)
            if lookup.is_unmapped:
                skipped += 1
                self.metrics.record_skipped_item(SyncContext.ORDER, item.offer_id or "")
                logger.warning(
                    "order_item_unmapped",
                    marketplace_order_id=order.id,
                    offer_id=item.offer_id,
                    offer_name=item.offer_name,
                )
                continue
            resolved.append(ResolvedOrderItem(
                offer_id=item.offer_id,
                product_id=lookup.target,
                count=item.count,
                price=item.price,
            ))
        return resolved, skipped

    def build_order_payload(self, order: MarketplaceOrder, items: list[ResolvedOrderItem]) -> dict:
        """Sales document body for the inventory system."""
        description = f"Marketplace order M2, ID: {order.id}"
        if order.delivery:
            if order.delivery.address:
                description += f"\nDelivery address: {format_address(order.delivery.address)}"
            if order.delivery.recipient:
                description += f"\nRecipient: {format_recipient(order.delivery.recipient)}"

        payload: dict = {
            "name": f"{ORDER_NAME_PREFIX}{order.id}",
            "description": description,
            "positions": [
                {
                    "assortment": self.inventory.entity_meta("product", item.product_id),
                    "quantity": item.count,
                    # Minor currency units
                    "price": int(round(item.price * 100)),
                    "reserve": item.count,
                }
                for item in items
            ],
        }
        if self.settings.inventory_organization_id:
            payload["organization"] = self.inventory.entity_meta(
                "organization", self.settings.inventory_organization_id
            )
        if self.settings.inventory_counterparty_id:
            payload["agent"] = self.inventory.entity_meta(
                "counterparty", self.settings.inventory_counterparty_id
            )
        if self.settings.inventory_store_id:
            payload["store"] = self.inventory.entity_meta("store", self.settings.inventory_store_id)
        return payload

    def _fail(self, result: OrderSyncResult, order_id: Optional[str], message: str) -> None:
        result.failed += 1
        result.errors.append({"order_id": order_id, "error": message})
        self.metrics.record_error("ORDER_ERROR", message, order_id=order_id)

    def _prune_locks(self) -> None:
        for order_id, lock in list(self._order_locks.items()):
            if not lock.locked():
                del self._order_locks[order_id]

    # ===================
    # SHIPMENTS
    # ===================

    def is_shipped(self, internal_order: dict) -> bool:
        """Fully shipped by amount, or in one of the configured shipped states."""
        total = internal_order.get("sum") or 0
        shipped_sum = internal_order.get("shippedSum") or 0
        if total > 0 and shipped_sum >= total:
            return True
        state_name = (internal_order.get("state") or {}).get("name")
        return state_name in self.settings.shipped_state_names

    async def process_shipped_orders(self) -> ShipmentSyncResult:
        """Report shipped internal orders to the marketplace."""
        pending = self.order_store.list_by_status(OrderStatus.CREATED)
        result = ShipmentSyncResult()
        logger.info("shipment_poll_started", candidates=len(pending))

        for mapping in pending:
            result.checked += 1
            try:
                shipped = await self._sync_shipment(mapping)
            except (SyncError, OrderNotFoundError, MappingWriteError) as e:
                result.failed += 1
                result.errors.append({"order_id": mapping.marketplace_order_id, "error": e.message})
                logger.error(
                    "shipment_sync_failed",
                    error_type="ORDER_ERROR",
                    marketplace_order_id=mapping.marketplace_order_id,
                    internal_order_id=mapping.internal_order_id,
                    error=e.message,
                )
                self.metrics.record_error(
                    "ORDER_ERROR",
                    e.message,
                    order_id=mapping.marketplace_order_id,
                    internal_order_id=mapping.internal_order_id,
                )
                continue

            if shipped:
                result.shipped += 1
            else:
                result.pending += 1

        logger.info(
            "shipment_poll_completed",
            checked=result.checked,
            shipped=result.shipped,
            pending=result.pending,
            failed=result.failed,
        )
        return result

    async def _sync_shipment(self, mapping: OrderMapping) -> bool:
        internal_order = await self.inventory.get_customer_order(mapping.internal_order_id)
        if not self.is_shipped(internal_order):
            return False

        await self.marketplace.notify_shipment(mapping.marketplace_order_id)
        await self.order_store.mark_shipped(mapping.marketplace_order_id)
        logger.info(
            "order_shipped",
            marketplace_order_id=mapping.marketplace_order_id,
            internal_order_id=mapping.internal_order_id,
        )
        return True

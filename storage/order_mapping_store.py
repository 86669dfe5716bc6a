"""
Order mapping store: marketplace order id -> internal sales document id.

Append-only history. Entries move from "created" to "shipped" and are
never deleted. At most one entry per marketplace order id.
"""

import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import structlog
from pydantic import ValidationError as PydanticValidationError

from exceptions import (
    DuplicateOrderError,
    MappingLoadError,
    MappingWriteError,
    OrderNotFoundError,
)
from models.order import OrderMapping, OrderMappingDocument, OrderStatus
from utils.file_utils import read_text, write_json_atomic

logger = structlog.get_logger(__name__)

# Field names written by earlier releases
LEGACY_KEYS = {
    "m2OrderId": "marketplaceOrderId",
    "moySkladOrderId": "internalOrderId",
}


def _normalize_entry(raw: dict) -> dict:
    entry = {LEGACY_KEYS.get(k, k): v for k, v in raw.items()}
    if "marketplaceOrderId" in entry:
        entry["marketplaceOrderId"] = str(entry["marketplaceOrderId"])
    return entry


class OrderMappingStore:
    """Repository for order mappings, kept in memory and persisted on each change."""

    def __init__(self, file_path: str):
        self.file_path = Path(file_path).resolve()
        self._lock = asyncio.Lock()
        self._entries: dict[str, OrderMapping] = {}
        self._version = "1.0"

    async def load(self) -> int:
        """
        Read the persisted document into memory.

        A missing file is an empty store.

        Returns:
            Number of loaded order mappings

        Raises:
            MappingLoadError: If the file is unreadable or malformed
        """
        async with self._lock:
            try:
                text = await asyncio.to_thread(read_text, self.file_path)
            except FileNotFoundError:
                self._entries = {}
                logger.info("order_mapping_file_missing", file_path=str(self.file_path))
                return 0
            except OSError as e:
                raise MappingLoadError(
                    f"Order mapping file unreadable: {e}", file_path=str(self.file_path)
                )

            try:
                data = json.loads(text)
                raw_entries = data.get("mappings", []) if isinstance(data, dict) else None
                if not isinstance(raw_entries, list):
                    raise MappingLoadError(
                        "Invalid order mapping document: mappings must be a list",
                        file_path=str(self.file_path),
                    )
                entries = [
                    OrderMapping.model_validate(_normalize_entry(raw))
                    for raw in raw_entries
                    if isinstance(raw, dict)
                ]
            except (json.JSONDecodeError, PydanticValidationError) as e:
                logger.error(
                    "order_mapping_file_invalid",
                    error_type="FILE_ERROR",
                    file_path=str(self.file_path),
                    error=str(e),
                )
                raise MappingLoadError(
                    f"Invalid order mapping document: {e}", file_path=str(self.file_path)
                )

            loaded: dict[str, OrderMapping] = {}
            for entry in entries:
                if entry.marketplace_order_id in loaded:
                    logger.warning(
                        "duplicate_order_mapping_in_file",
                        marketplace_order_id=entry.marketplace_order_id,
                    )
                loaded[entry.marketplace_order_id] = entry
            self._entries = loaded
            if isinstance(data.get("version"), str):
                self._version = data["version"]

        logger.info("order_mappings_loaded", count=len(loaded), file_path=str(self.file_path))
        return len(loaded)

    # ===================
    # MUTATIONS
    # ===================

    async def record_order(self, marketplace_order_id: str, internal_order_id: str) -> OrderMapping:
        """
        Record a newly created internal order.

        Raises:
            DuplicateOrderError: If the marketplace order is already recorded
            MappingWriteError: If persisting fails (nothing is recorded)
        """
        async with self._lock:
            if marketplace_order_id in self._entries:
                raise DuplicateOrderError(marketplace_order_id)

            mapping = OrderMapping(
                marketplace_order_id=marketplace_order_id,
                internal_order_id=internal_order_id,
            )
            self._entries[marketplace_order_id] = mapping
            try:
                await self._persist()
            except MappingWriteError:
                del self._entries[marketplace_order_id]
                raise

        logger.info(
            "order_mapping_recorded",
            marketplace_order_id=marketplace_order_id,
            internal_order_id=internal_order_id,
        )
        return mapping

    async def mark_shipped(
        self,
        marketplace_order_id: str,
        status: OrderStatus = OrderStatus.SHIPPED
    ) -> OrderMapping:
        """
        Move an order mapping to a new status.

        Raises:
            OrderNotFoundError: If the marketplace order is not recorded
            MappingWriteError: If persisting fails (status is rolled back)
        """
        async with self._lock:
            previous = self._entries.get(marketplace_order_id)
            if previous is None:
                raise OrderNotFoundError(marketplace_order_id)

            updated = previous.model_copy(
                update={"status": status, "updated_at": datetime.now(timezone.utc)}
            )
            self._entries[marketplace_order_id] = updated
            try:
                await self._persist()
            except MappingWriteError:
                self._entries[marketplace_order_id] = previous
                raise

        logger.info(
            "order_mapping_status_updated",
            marketplace_order_id=marketplace_order_id,
            status=status.value,
        )
        return updated

    async def _persist(self) -> None:
        document = OrderMappingDocument(
            version=self._version,
            mappings=list(self._entries.values()),
        )
        try:
            await asyncio.to_thread(write_json_atomic, self.file_path, document.to_wire())
        except OSError as e:
            logger.error(
                "order_mapping_write_failed",
                error_type="FILE_ERROR",
                file_path=str(self.file_path),
                error=str(e),
            )
            raise MappingWriteError(
                f"Failed to write order mapping file: {e}", file_path=str(self.file_path)
            )

    # ===================
    # READS
    # ===================

    def has_order(self, marketplace_order_id: str) -> bool:
        return marketplace_order_id in self._entries

    def get(self, marketplace_order_id: str) -> Optional[OrderMapping]:
        return self._entries.get(marketplace_order_id)

    def list_by_status(self, status: OrderStatus) -> list[OrderMapping]:
        return [m for m in self._entries.values() if m.status == status]

    def count(self) -> int:
        return len(self._entries)

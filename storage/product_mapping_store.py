"""
Identity mapping store: productId <-> offerId.

Owns the persisted mapping document. The in-memory index is an immutable
snapshot swapped by reference, so lookups never block and never observe a
half-loaded state. load() and save() share one asyncio.Lock.

Document format:
    {
        "version": "1.0",
        "lastUpdated": "2025-01-15T08:00:00+00:00",
        "mappings": {"<productId>": "<offerId>", ...}
    }

A list of {"productId": ..., "offerId": ...} objects is accepted on load.
"""

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional

import structlog

from exceptions import MappingLoadError, MappingWriteError
from models.mapping import MappingDocument, MappingStoreStats
from utils.file_utils import backup_file, parse_json_strict, read_text, write_json_atomic

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class _MappingIndex:
    document: MappingDocument
    product_to_offer: Mapping[str, str] = field(default_factory=dict)
    offer_to_product: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def build(cls, document: MappingDocument) -> "_MappingIndex":
        pairs = document.as_pairs()
        return cls(
            document=document,
            product_to_offer=MappingProxyType(dict(pairs)),
            offer_to_product=MappingProxyType({o: p for p, o in pairs.items()}),
        )


def _find_duplicates(values: list[str]) -> list[str]:
    seen: set[str] = set()
    duplicates: list[str] = []
    for value in values:
        if value in seen and value not in duplicates:
            duplicates.append(value)
        seen.add(value)
    return duplicates


class ProductMappingStore:
    """Repository for the productId <-> offerId mapping document."""

    def __init__(self, file_path: str):
        self.file_path = Path(file_path).resolve()
        self.backup_dir = self.file_path.parent / "backups"
        self._lock = asyncio.Lock()
        self._index: Optional[_MappingIndex] = None
        self._last_loaded: Optional[datetime] = None

    # ===================
    # LOAD
    # ===================

    async def load(self) -> int:
        """
        Load the document and swap the in-memory index.

        Returns:
            Number of loaded mappings

        Raises:
            MappingLoadError: Missing, unreadable, malformed or non-unique
                document. The previous index is retained.
        """
        async with self._lock:
            try:
                text = await asyncio.to_thread(read_text, self.file_path)
            except FileNotFoundError:
                self._log_file_error("load", "file not found")
                raise MappingLoadError(
                    "Mapping file not found", file_path=str(self.file_path)
                )
            except OSError as e:
                self._log_file_error("load", str(e))
                raise MappingLoadError(
                    f"Mapping file unreadable: {e}", file_path=str(self.file_path)
                )

            document = self._parse(text)
            self._swap(document)

        logger.info(
            "mappings_loaded",
            count=len(document.mappings),
            file_path=str(self.file_path),
        )
        return len(document.mappings)

    def _parse(self, text: str) -> MappingDocument:
        try:
            data, duplicate_keys = parse_json_strict(text)
        except json.JSONDecodeError as e:
            self._log_file_error("load", f"invalid JSON: {e}")
            raise MappingLoadError(
                f"Invalid JSON in mapping file: {e}", file_path=str(self.file_path)
            )

        if not isinstance(data, dict):
            raise MappingLoadError(
                "Invalid document: top level must be an object",
                file_path=str(self.file_path),
            )
        version = data.get("version")
        if not version or not isinstance(version, str):
            raise MappingLoadError(
                "Invalid document: missing version", file_path=str(self.file_path)
            )

        raw = data.get("mappings")
        if isinstance(raw, dict):
            entries = list(raw.items())
        elif isinstance(raw, list):
            entries = [
                (item.get("productId"), item.get("offerId")) if isinstance(item, dict) else (None, None)
                for item in raw
            ]
        else:
            raise MappingLoadError(
                "Invalid document: mappings must be an object or a list",
                file_path=str(self.file_path),
            )

        if duplicate_keys:
            raise MappingLoadError(
                "Duplicate productId in mapping file",
                file_path=str(self.file_path),
                details={"duplicate_product_ids": duplicate_keys},
            )

        valid: list[tuple[str, str]] = []
        invalid: list[dict[str, Any]] = []
        for product_id, offer_id in entries:
            if not isinstance(product_id, str) or not product_id.strip():
                invalid.append({"product_id": product_id, "reason": "invalid productId"})
                continue
            if not isinstance(offer_id, str) or not offer_id.strip():
                invalid.append({"product_id": product_id, "reason": "invalid offerId"})
                continue
            valid.append((product_id.strip(), offer_id.strip()))

        if invalid:
            logger.warning(
                "invalid_mappings_skipped",
                count=len(invalid),
                invalid=invalid[:20],
                file_path=str(self.file_path),
            )

        duplicate_products = _find_duplicates([p for p, _ in valid])
        duplicate_offers = _find_duplicates([o for _, o in valid])
        if duplicate_products or duplicate_offers:
            logger.error(
                "mapping_uniqueness_violated",
                error_type="MAPPING_ERROR",
                duplicate_product_ids=duplicate_products,
                duplicate_offer_ids=duplicate_offers,
            )
            raise MappingLoadError(
                "Mapping file is not one-to-one",
                file_path=str(self.file_path),
                details={
                    "duplicate_product_ids": duplicate_products,
                    "duplicate_offer_ids": duplicate_offers,
                },
            )

        last_updated = data.get("lastUpdated")
        document = MappingDocument.from_pairs(dict(valid), version=version)
        if isinstance(last_updated, str):
            try:
                document.last_updated = datetime.fromisoformat(last_updated.replace("Z", "+00:00"))
            except ValueError:
                logger.warning("invalid_last_updated", value=last_updated)
        return document

    def _swap(self, document: MappingDocument) -> None:
        self._index = _MappingIndex.build(document)
        self._last_loaded = datetime.now(timezone.utc)

    # ===================
    # SAVE
    # ===================

    async def save(self, document: MappingDocument) -> None:
        """
        Replace the persisted document.

        Backs up the current file into backups/, writes to a temp file in
        the same directory and atomically replaces. The index is swapped
        only after a successful write.

        Raises:
            MappingWriteError: Non-unique document or I/O failure
        """
        duplicate_products = _find_duplicates([m.product_id for m in document.mappings])
        duplicate_offers = _find_duplicates([m.offer_id for m in document.mappings])
        if duplicate_products or duplicate_offers:
            raise MappingWriteError(
                "Refusing to save a mapping document that is not one-to-one",
                file_path=str(self.file_path),
                details={
                    "duplicate_product_ids": duplicate_products,
                    "duplicate_offer_ids": duplicate_offers,
                },
            )

        document = document.model_copy(update={"last_updated": datetime.now(timezone.utc)})

        async with self._lock:
            try:
                backup = await asyncio.to_thread(backup_file, self.file_path, self.backup_dir)
                await asyncio.to_thread(write_json_atomic, self.file_path, document.to_file_dict())
            except OSError as e:
                self._log_file_error("save", str(e))
                raise MappingWriteError(
                    f"Failed to write mapping file: {e}", file_path=str(self.file_path)
                )
            self._swap(document)

        logger.info(
            "mappings_saved",
            count=len(document.mappings),
            file_path=str(self.file_path),
            backup=str(backup) if backup else None,
        )

    async def create_empty(self) -> None:
        """Write an empty, valid document (no backup: there is nothing to keep)."""
        document = MappingDocument()
        async with self._lock:
            try:
                await asyncio.to_thread(write_json_atomic, self.file_path, document.to_file_dict())
            except OSError as e:
                self._log_file_error("create", str(e))
                raise MappingWriteError(
                    f"Failed to create mapping file: {e}", file_path=str(self.file_path)
                )
            self._swap(document)
        logger.info("empty_mapping_file_created", file_path=str(self.file_path))

    # ===================
    # LOOKUPS
    # ===================

    def _require_index(self) -> _MappingIndex:
        if self._index is None:
            raise MappingLoadError(
                "Mappings not loaded. Call load() first.",
                file_path=str(self.file_path),
            )
        return self._index

    def lookup_by_product_id(self, product_id: str) -> Optional[str]:
        """Offer code for a product id, or None when unmapped."""
        return self._require_index().product_to_offer.get(product_id)

    def lookup_by_offer_id(self, offer_id: str) -> Optional[str]:
        """Product id for an offer code, or None when unmapped."""
        return self._require_index().offer_to_product.get(offer_id)

    def all_product_ids(self) -> list[str]:
        return list(self._require_index().product_to_offer.keys())

    def all_offer_ids(self) -> list[str]:
        return list(self._require_index().offer_to_product.keys())

    def current_document(self) -> MappingDocument:
        return self._require_index().document.model_copy(deep=True)

    @property
    def is_loaded(self) -> bool:
        return self._index is not None

    def stats(self) -> MappingStoreStats:
        index = self._index
        return MappingStoreStats(
            total_mappings=len(index.product_to_offer) if index else 0,
            last_loaded=self._last_loaded,
            is_loaded=index is not None,
            file_path=str(self.file_path),
        )

    def _log_file_error(self, operation: str, error: str) -> None:
        logger.error(
            "mapping_file_error",
            error_type="FILE_ERROR",
            operation=operation,
            file_path=str(self.file_path),
            error=error,
        )

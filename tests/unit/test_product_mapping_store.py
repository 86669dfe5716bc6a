"""
Unit tests for ProductMappingStore.

Run: pytest tests/unit/test_product_mapping_store.py -v
"""

import json
import pytest
from pathlib import Path
from unittest.mock import patch

from storage.product_mapping_store import ProductMappingStore
from models.mapping import MappingDocument, ProductMapping
from exceptions import MappingLoadError, MappingWriteError
from tests.conftest import SAMPLE_MAPPINGS, write_mapping_file


# ===================
# LOAD TESTS
# ===================

class TestLoad:
    """Tests for loading the mapping document."""

    @pytest.mark.asyncio
    async def test_load_dict_format(self, product_store):
        """Should load every pair of the object form."""
        count = await product_store.load()

        assert count == 3
        assert product_store.lookup_by_product_id("prod-uuid-1") == "SKU-001"
        assert product_store.lookup_by_offer_id("SKU-002") == "prod-uuid-2"

    @pytest.mark.asyncio
    async def test_load_list_format(self, tmp_path):
        """Should accept a list of productId/offerId objects."""
        path = write_mapping_file(tmp_path / "m.json", [
            {"productId": "p-1", "offerId": "o-1"},
            {"productId": "p-2", "offerId": "o-2"},
        ])
        store = ProductMappingStore(str(path))

        assert await store.load() == 2
        assert store.lookup_by_offer_id("o-2") == "p-2"

    @pytest.mark.asyncio
    async def test_missing_file_raises(self, tmp_path):
        """Should raise MappingLoadError when the file does not exist."""
        store = ProductMappingStore(str(tmp_path / "absent.json"))

        with pytest.raises(MappingLoadError):
            await store.load()
        assert store.is_loaded is False

    @pytest.mark.asyncio
    async def test_invalid_json_raises(self, tmp_path):
        """Should raise MappingLoadError on malformed JSON."""
        path = tmp_path / "m.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(MappingLoadError):
            await ProductMappingStore(str(path)).load()

    @pytest.mark.asyncio
    async def test_missing_version_raises(self, tmp_path):
        """Should reject a document without version."""
        path = tmp_path / "m.json"
        path.write_text(json.dumps({"mappings": {"p": "o"}}), encoding="utf-8")

        with pytest.raises(MappingLoadError):
            await ProductMappingStore(str(path)).load()

    @pytest.mark.asyncio
    async def test_invalid_mappings_field_raises(self, tmp_path):
        """Should reject mappings that are neither object nor list."""
        path = tmp_path / "m.json"
        path.write_text(json.dumps({"version": "1.0", "mappings": "nope"}), encoding="utf-8")

        with pytest.raises(MappingLoadError):
            await ProductMappingStore(str(path)).load()

    @pytest.mark.asyncio
    async def test_invalid_entries_skipped(self, tmp_path):
        """Should skip empty or non-string ids without failing the load."""
        path = write_mapping_file(tmp_path / "m.json", {
            "p-1": "o-1",
            "p-2": "",
            "p-3": 42,
        })
        store = ProductMappingStore(str(path))

        assert await store.load() == 1
        assert store.lookup_by_product_id("p-2") is None

    @pytest.mark.asyncio
    async def test_duplicate_offer_id_keeps_previous_index(self, product_store):
        """Should raise and keep the previously loaded mappings."""
        await product_store.load()
        write_mapping_file(product_store.file_path, {"p-1": "DUP", "p-2": "DUP"})

        with pytest.raises(MappingLoadError) as exc_info:
            await product_store.load()

        assert "DUP" in exc_info.value.details["duplicate_offer_ids"]
        assert product_store.lookup_by_product_id("prod-uuid-1") == "SKU-001"
        assert product_store.stats().total_mappings == 3

    @pytest.mark.asyncio
    async def test_duplicate_product_key_detected(self, tmp_path):
        """Should detect a repeated key in the object form."""
        path = tmp_path / "m.json"
        path.write_text(
            '{"version": "1.0", "mappings": {"p-1": "o-1", "p-1": "o-2"}}',
            encoding="utf-8",
        )

        with pytest.raises(MappingLoadError) as exc_info:
            await ProductMappingStore(str(path)).load()

        assert exc_info.value.details["duplicate_product_ids"] == ["p-1"]

    @pytest.mark.asyncio
    async def test_duplicate_product_in_list_detected(self, tmp_path):
        """Should detect a repeated productId in the list form."""
        path = write_mapping_file(tmp_path / "m.json", [
            {"productId": "p-1", "offerId": "o-1"},
            {"productId": "p-1", "offerId": "o-2"},
        ])

        with pytest.raises(MappingLoadError):
            await ProductMappingStore(str(path)).load()


# ===================
# LOOKUP TESTS
# ===================

class TestLookups:
    """Tests for lookups against the loaded index."""

    def test_lookup_before_load_raises(self, product_store):
        """Should raise MappingLoadError if nothing was ever loaded."""
        with pytest.raises(MappingLoadError):
            product_store.lookup_by_product_id("prod-uuid-1")

    @pytest.mark.asyncio
    async def test_round_trip_every_offer(self, product_store):
        """Should map every offerId back to the same offerId."""
        await product_store.load()

        for offer_id in product_store.all_offer_ids():
            product_id = product_store.lookup_by_offer_id(offer_id)
            assert product_store.lookup_by_product_id(product_id) == offer_id

    @pytest.mark.asyncio
    async def test_miss_returns_none(self, product_store):
        """Should return None for an unknown id."""
        await product_store.load()

        assert product_store.lookup_by_product_id("unknown") is None
        assert product_store.lookup_by_offer_id("unknown") is None

    @pytest.mark.asyncio
    async def test_stats(self, product_store):
        """Should report total, load time and path."""
        await product_store.load()
        stats = product_store.stats()

        assert stats.total_mappings == 3
        assert stats.is_loaded is True
        assert stats.last_loaded is not None
        assert stats.file_path == str(product_store.file_path)


# ===================
# SAVE TESTS
# ===================

class TestSave:
    """Tests for replacing the mapping document."""

    @pytest.mark.asyncio
    async def test_save_writes_dict_format_and_backup(self, product_store):
        """Should write the object form and keep a backup of the old file."""
        await product_store.load()
        document = MappingDocument.from_pairs({"p-9": "o-9"})

        await product_store.save(document)

        data = json.loads(product_store.file_path.read_text(encoding="utf-8"))
        assert data["version"] == "1.0"
        assert data["mappings"] == {"p-9": "o-9"}
        backups = list(product_store.backup_dir.iterdir())
        assert len(backups) == 1
        assert json.loads(backups[0].read_text(encoding="utf-8"))["mappings"] == SAMPLE_MAPPINGS

    @pytest.mark.asyncio
    async def test_save_swaps_index(self, product_store):
        """Should serve the new mappings after a successful save."""
        await product_store.load()

        await product_store.save(MappingDocument.from_pairs({"p-9": "o-9"}))

        assert product_store.lookup_by_product_id("p-9") == "o-9"
        assert product_store.lookup_by_product_id("prod-uuid-1") is None

    @pytest.mark.asyncio
    async def test_save_rejects_duplicate_offer(self, product_store):
        """Should refuse a document that is not one-to-one."""
        document = MappingDocument(mappings=[
            ProductMapping(product_id="p-1", offer_id="o-1"),
            ProductMapping(product_id="p-2", offer_id="o-1"),
        ])

        with pytest.raises(MappingWriteError):
            await product_store.save(document)

    @pytest.mark.asyncio
    async def test_write_failure_leaves_file_intact(self, product_store):
        """Should raise MappingWriteError and keep the original file and index."""
        await product_store.load()
        original = product_store.file_path.read_text(encoding="utf-8")

        with patch(
            "storage.product_mapping_store.write_json_atomic",
            side_effect=OSError("disk full"),
        ):
            with pytest.raises(MappingWriteError):
                await product_store.save(MappingDocument.from_pairs({"p-9": "o-9"}))

        assert product_store.file_path.read_text(encoding="utf-8") == original
        assert product_store.lookup_by_product_id("prod-uuid-1") == "SKU-001"

    @pytest.mark.asyncio
    async def test_create_empty(self, tmp_path):
        """Should write a valid empty document that loads."""
        path = tmp_path / "nested" / "m.json"
        store = ProductMappingStore(str(path))

        await store.create_empty()

        assert Path(path).exists()
        assert await store.load() == 0

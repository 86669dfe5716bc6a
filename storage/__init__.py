"""
Persisted document stores.
"""

from storage.product_mapping_store import ProductMappingStore
from storage.order_mapping_store import OrderMappingStore

__all__ = [
    "ProductMappingStore",
    "OrderMappingStore",
]

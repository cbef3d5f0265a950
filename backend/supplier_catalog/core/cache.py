"""
In-memory TTL cache for catalog read results.

The application owns one instance (``app.state.catalog_cache``) and routes
receive it through the ``get_catalog_cache`` dependency, so tests and scripts
can swap or bypass it.
"""
from datetime import datetime, timedelta
from typing import Any, Optional
import logging

from fastapi import Request

logger = logging.getLogger(__name__)


class CatalogCache:
    """In-memory cache with TTL support, size limit and key-family invalidation."""

    SUPPLIER_PREFIX = "catalog:supplier:"
    ITEM_PREFIX = "catalog:item:"

    def __init__(self, ttl_seconds: int = 300, max_entries: int = 10000):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._cache: dict = {}
        self._expiry: dict = {}

    @classmethod
    def supplier_key(cls, supplier_id: int, *parts: Any) -> str:
        suffix = ":".join(str(p) for p in parts)
        return f"{cls.SUPPLIER_PREFIX}{supplier_id}:{suffix}"

    @classmethod
    def item_key(cls, inventory_item_id: int) -> str:
        return f"{cls.ITEM_PREFIX}{inventory_item_id}:"

    def _evict_expired(self):
        """Remove expired entries to reclaim memory."""
        now = datetime.now()
        expired = [k for k, exp in self._expiry.items() if exp <= now]
        for k in expired:
            self._cache.pop(k, None)
            self._expiry.pop(k, None)

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache if not expired."""
        if key in self._cache:
            if datetime.now() < self._expiry.get(key, datetime.min):
                return self._cache[key]
            del self._cache[key]
            del self._expiry[key]
        return None

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None):
        """Set value in cache with TTL."""
        if len(self._cache) >= self.max_entries:
            self._evict_expired()
        # If still at limit after eviction, remove oldest entries
        if len(self._cache) >= self.max_entries:
            oldest_keys = sorted(self._expiry, key=self._expiry.get)[: max(1, self.max_entries // 100)]
            for k in oldest_keys:
                self._cache.pop(k, None)
                self._expiry.pop(k, None)
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        self._cache[key] = value
        self._expiry[key] = datetime.now() + timedelta(seconds=ttl)

    def delete(self, key: str):
        self._cache.pop(key, None)
        self._expiry.pop(key, None)

    def clear_prefix(self, prefix: str) -> int:
        """Clear all keys with given prefix."""
        keys_to_delete = [k for k in self._cache.keys() if k.startswith(prefix)]
        for key in keys_to_delete:
            self.delete(key)
        return len(keys_to_delete)

    def invalidate_supplier(self, supplier_id: int) -> int:
        return self.clear_prefix(f"{self.SUPPLIER_PREFIX}{supplier_id}:")

    def invalidate_item(self, inventory_item_id: int) -> int:
        return self.clear_prefix(self.item_key(inventory_item_id))

    def invalidate_entry(self, supplier_id: int, inventory_item_id: int):
        """Drop every cached read that can contain the given pair."""
        self.invalidate_supplier(supplier_id)
        self.invalidate_item(inventory_item_id)

    def clear(self):
        """Clear entire cache."""
        self._cache.clear()
        self._expiry.clear()
        logger.debug("Catalog cache cleared")

    def stats(self) -> dict:
        """Get cache statistics."""
        now = datetime.now()
        valid = sum(1 for exp in self._expiry.values() if exp > now)
        return {
            "total_keys": len(self._cache),
            "valid_keys": valid,
            "expired_keys": len(self._cache) - valid,
        }


def get_catalog_cache(request: Request) -> CatalogCache:
    """Dependency returning the application-owned catalog cache."""
    return request.app.state.catalog_cache

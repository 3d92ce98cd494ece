"""Catalog module for sellable collections.

Only the lookups the payment flow needs live here: a collection's listed
price and owner.
"""

import logging
from decimal import Decimal
from typing import Any, Dict

from asyncpg.pool import Pool

from database import STORAGE_ERRORS, StorageUnavailableError

logger = logging.getLogger(__name__)

class CatalogError(Exception):
    """Base exception for catalog operations."""
    reason = 'catalog_error'

class CollectionNotFoundError(CatalogError):
    """Raised when a collection does not exist."""
    reason = 'not_found'

class CollectionManager:
    """Reads collection records."""

    def __init__(self, pool: Pool) -> None:
        """Initialize collection manager.

        Args:
            pool: Database connection pool
        """
        self.pool = pool

    async def get_collection(self, collection_id: int) -> Dict[str, Any]:
        """Get a collection with its price and owner.

        Returns:
            Dict with id, title, price (Decimal SOL), created_by

        Raises:
            CollectionNotFoundError: If the collection does not exist
            StorageUnavailableError: If the database cannot be queried
        """
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    '''
                    SELECT id, title, price, created_by
                    FROM collections
                    WHERE id = $1
                    ''',
                    collection_id
                )
        except STORAGE_ERRORS as e:
            logger.error(f"Error fetching collection {collection_id}: {e}")
            raise StorageUnavailableError(f"Failed to fetch collection: {str(e)}") from e

        if not row:
            raise CollectionNotFoundError(f"Collection {collection_id} not found")

        collection = dict(row)
        collection['price'] = Decimal(str(collection['price']))
        return collection

# Export public interface
__all__ = ['CollectionManager', 'CatalogError', 'CollectionNotFoundError']

"""Access grant ledger.

One row in ``purchases`` per (user, collection). The unique index on that
pair is what keeps concurrent confirmations from minting two access keys:
the losing insert does nothing and reads the winner's row.
"""

import logging
import secrets
from typing import Any, Dict, List, Optional
from uuid import UUID

from asyncpg.exceptions import UniqueViolationError
from asyncpg.pool import Pool

from database import STORAGE_ERRORS, StorageUnavailableError
from .exceptions import PaymentMismatchError

logger = logging.getLogger(__name__)

ACCESS_KEY_BYTES = 16
GRANT_COLUMNS = 'user_id, collection_id, access_key, tx_signature, amount_lamports, created_at'

def generate_access_key() -> str:
    """Generate a random 128-bit access key as 32 hex characters."""
    return secrets.token_hex(ACCESS_KEY_BYTES)

class AccessGrantLedger:
    """Records paid access per user and collection."""

    def __init__(self, pool: Pool) -> None:
        """Initialize the ledger.

        Args:
            pool: Database connection pool
        """
        self.pool = pool

    async def get_grant(self, user_id: UUID, collection_id: int) -> Optional[Dict[str, Any]]:
        """Get the grant for a user and collection, if any."""
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f'''
                    SELECT {GRANT_COLUMNS}
                    FROM purchases
                    WHERE user_id = $1 AND collection_id = $2
                    ''',
                    user_id,
                    collection_id
                )
        except STORAGE_ERRORS as e:
            logger.error(f"Error fetching grant for user {user_id}, collection {collection_id}: {e}")
            raise StorageUnavailableError(f"Failed to fetch grant: {str(e)}") from e

        return dict(row) if row else None

    async def has_grant(self, user_id: UUID, collection_id: int) -> bool:
        """Whether a user has paid access to a collection."""
        return await self.get_grant(user_id, collection_id) is not None

    async def get_grant_by_signature(self, tx_signature: str) -> Optional[Dict[str, Any]]:
        """Get the grant a transaction signature was redeemed for, if any."""
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f'''
                    SELECT {GRANT_COLUMNS}
                    FROM purchases
                    WHERE tx_signature = $1
                    ''',
                    tx_signature
                )
        except STORAGE_ERRORS as e:
            logger.error(f"Error fetching grant for signature {tx_signature}: {e}")
            raise StorageUnavailableError(f"Failed to fetch grant: {str(e)}") from e

        return dict(row) if row else None

    async def record_grant(
        self,
        user_id: UUID,
        collection_id: int,
        tx_signature: Optional[str] = None,
        amount_lamports: Optional[int] = None
    ) -> Dict[str, Any]:
        """Record paid access, returning the existing grant if there is one.

        Args:
            user_id: Paying user
            collection_id: Purchased collection
            tx_signature: Transaction that paid for it
            amount_lamports: Realized payment amount

        Returns:
            The grant row plus ``created`` (False when an earlier grant was returned)

        Raises:
            PaymentMismatchError: If tx_signature already paid for a different grant
            StorageUnavailableError: If the database cannot be written
        """
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f'''
                    INSERT INTO purchases (
                        user_id, collection_id, access_key, tx_signature, amount_lamports
                    ) VALUES ($1, $2, $3, $4, $5)
                    ON CONFLICT (user_id, collection_id) DO NOTHING
                    RETURNING {GRANT_COLUMNS}
                    ''',
                    user_id,
                    collection_id,
                    generate_access_key(),
                    tx_signature,
                    amount_lamports
                )
                if row:
                    logger.info(f"Granted user {user_id} access to collection {collection_id}")
                    return {**dict(row), 'created': True}

                row = await conn.fetchrow(
                    f'''
                    SELECT {GRANT_COLUMNS}
                    FROM purchases
                    WHERE user_id = $1 AND collection_id = $2
                    ''',
                    user_id,
                    collection_id
                )
        except UniqueViolationError as e:
            raise PaymentMismatchError(
                "Transaction signature was already redeemed for another purchase"
            ) from e
        except STORAGE_ERRORS as e:
            logger.error(f"Error recording grant for user {user_id}, collection {collection_id}: {e}")
            raise StorageUnavailableError(f"Failed to record grant: {str(e)}") from e

        if not row:
            raise StorageUnavailableError("Grant conflict detected but existing grant not found")

        logger.info(f"User {user_id} already has access to collection {collection_id}")
        return {**dict(row), 'created': False}

    async def list_grants(self, user_id: UUID) -> List[Dict[str, Any]]:
        """List a user's grants with collection details, newest first."""
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(
                    '''
                    SELECT
                        p.collection_id,
                        p.access_key,
                        p.tx_signature,
                        p.created_at,
                        c.title,
                        c.price
                    FROM purchases p
                    JOIN collections c ON c.id = p.collection_id
                    WHERE p.user_id = $1
                    ORDER BY p.created_at DESC
                    ''',
                    user_id
                )
        except STORAGE_ERRORS as e:
            logger.error(f"Error listing grants for user {user_id}: {e}")
            raise StorageUnavailableError(f"Failed to list grants: {str(e)}") from e

        return [dict(row) for row in rows]

__all__ = ['AccessGrantLedger', 'generate_access_key']

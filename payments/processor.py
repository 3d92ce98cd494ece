"""Purchase orchestration.

Ties the catalog, transaction builder, confirmation watcher and grant
ledger together for the two purchase calls an authenticated buyer makes:
asking for an unsigned transaction and reporting the submitted signature.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional, Union
from uuid import UUID

from catalog import CollectionManager
from .builder import TransactionBuilder, sol_to_lamports
from .exceptions import InvalidAmountError, PaymentMismatchError
from .ledger import AccessGrantLedger
from .watcher import ConfirmationWatcher, parse_signature

logger = logging.getLogger(__name__)

class PurchaseProcessor:
    """Runs purchase requests and payment checks for a buyer."""

    def __init__(
        self,
        catalog: CollectionManager,
        builder: TransactionBuilder,
        watcher: ConfirmationWatcher,
        ledger: AccessGrantLedger
    ):
        self.catalog = catalog
        self.builder = builder
        self.watcher = watcher
        self.ledger = ledger

    @staticmethod
    def _user_id(claims: Dict[str, Any]) -> UUID:
        return UUID(str(claims['sub']))

    async def create_purchase(
        self,
        claims: Dict[str, Any],
        collection_id: int,
        amount: Optional[Union[Decimal, str, float]],
        buyer_wallet: str
    ) -> Dict[str, Any]:
        """Build the unsigned transfer paying for a collection.

        The transfer amount always comes from the listed price. A client
        amount, when sent, must agree with it. A buyer who already holds the
        collection gets the existing access key and no transaction.

        Args:
            claims: Verified session claims of the buyer
            collection_id: Collection being bought
            amount: Price the client displayed, in SOL
            buyer_wallet: Wallet that will sign and pay

        Returns:
            Builder output (transaction, lamports, blockhash, last_valid_block_height)
            plus already_purchased=False, or already_purchased=True and access_key

        Raises:
            CollectionNotFoundError: If the collection does not exist
            InvalidAmountError: If amount differs from the listed price
            InvalidAddressError: If buyer_wallet is not a valid address
            RPCError: If the blockhash cannot be fetched
        """
        collection = await self.catalog.get_collection(collection_id)
        price = collection['price']

        existing = await self.ledger.get_grant(self._user_id(claims), collection_id)
        if existing:
            logger.info(
                f"User {claims['sub']} already holds collection {collection_id}, no transaction built"
            )
            return {'already_purchased': True, 'access_key': existing['access_key']}

        if amount is not None:
            try:
                quoted = Decimal(str(amount))
            except (InvalidOperation, ValueError) as e:
                raise InvalidAmountError(f"Invalid SOL amount: {amount!r}") from e
            if not quoted.is_finite() or sol_to_lamports(quoted) != sol_to_lamports(price):
                raise InvalidAmountError(
                    f"Amount {amount} does not match the listed price {price} SOL"
                )

        result = await self.builder.build_transfer(buyer_wallet, price)
        logger.info(
            f"Purchase of collection {collection_id} started by user {claims['sub']} "
            f"for {result['lamports']} lamports"
        )
        return {**result, 'already_purchased': False}

    async def check_payment(
        self,
        claims: Dict[str, Any],
        collection_id: int,
        signature: str
    ) -> Dict[str, Any]:
        """Verify a submitted payment and grant access.

        Re-checking a signature that already produced the caller's grant
        returns the same grant without touching the network.

        Returns:
            The grant row plus ``created``

        Raises:
            InvalidTransactionSignatureError: If signature is malformed
            PaymentMismatchError: If the payment is wrong or the signature
                already paid for something else
            ConfirmationTimeoutError: If the transaction does not confirm in time
            CollectionNotFoundError: If the collection does not exist
            RPCError: If the node cannot be reached
            StorageUnavailableError: If the grant cannot be read or written
        """
        parse_signature(signature)
        user_id = self._user_id(claims)

        existing = await self.ledger.get_grant(user_id, collection_id)
        if existing:
            logger.info(f"User {user_id} already holds collection {collection_id}, skipping confirmation")
            return {**existing, 'created': False}

        bound = await self.ledger.get_grant_by_signature(signature)
        if bound:
            logger.warning(
                f"Signature {signature} already redeemed for user {bound['user_id']}, "
                f"collection {bound['collection_id']}"
            )
            raise PaymentMismatchError("Transaction signature was already redeemed for another purchase")

        collection = await self.catalog.get_collection(collection_id)
        expected = sol_to_lamports(collection['price'])

        receipt = await self.watcher.confirm_payment(signature, expected, claims.get('wallet'))
        return await self.ledger.record_grant(user_id, collection_id, signature, receipt.lamports)

__all__ = ['PurchaseProcessor']

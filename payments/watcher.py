"""Payment confirmation watcher.

Polls the network for a submitted transaction until it reaches the
configured commitment, then checks its on-chain effects against the sale
terms. Only the recipient address and the recipient's realized balance
delta are checked. The sender is reported but not enforced, so a third
party may pay on a buyer's behalf.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from solders.signature import Signature

from rpc import SolanaRPC, to_pubkey, to_signature
from .exceptions import (
    ConfirmationTimeoutError, InvalidTransactionSignatureError, PaymentMismatchError
)

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 5
DEFAULT_TIMEOUT = 120

@dataclass
class PaymentReceipt:
    """Verified effects of a confirmed payment transaction."""
    signature: str
    sender: str
    recipient: str
    lamports: int
    slot: Optional[int] = None
    block_time: Optional[int] = None

def parse_signature(signature: str) -> Signature:
    """Parse a base58 transaction signature.

    Raises:
        InvalidTransactionSignatureError: If the string is not a signature
    """
    parsed = to_signature(signature)
    if parsed is None:
        raise InvalidTransactionSignatureError(f"Invalid transaction signature: {signature!r}")
    return parsed

def _account_keys(tx: Dict[str, Any]) -> List[str]:
    keys = tx['transaction']['message']['accountKeys']
    # jsonParsed encoding returns objects, json encoding returns strings
    return [key['pubkey'] if isinstance(key, dict) else key for key in keys]

def validate_payment(
    tx: Dict[str, Any],
    signature: str,
    seller: str,
    expected_lamports: int
) -> PaymentReceipt:
    """Check a fetched transaction against the expected sale terms.

    The sender is the first account (fee payer), the recipient the second,
    matching the layout of a single system transfer. The realized amount is
    the recipient's post-balance minus pre-balance.

    Raises:
        PaymentMismatchError: If the transaction failed, pays someone else
            or moves a different amount
    """
    meta = tx.get('meta')
    if not meta:
        raise PaymentMismatchError("Transaction has no status metadata")
    if meta.get('err') is not None:
        raise PaymentMismatchError(f"Transaction failed on-chain: {meta['err']}")

    try:
        keys = _account_keys(tx)
        sender, recipient = keys[0], keys[1]
        realized = int(meta['postBalances'][1]) - int(meta['preBalances'][1])
    except (KeyError, IndexError, TypeError, ValueError) as e:
        raise PaymentMismatchError("Transaction is not a transfer") from e

    if recipient != seller:
        logger.warning(
            f"Payment {signature} rejected: recipient {recipient} is not seller {seller}"
        )
        raise PaymentMismatchError("Transaction recipient is not the seller")

    if realized != expected_lamports:
        logger.warning(
            f"Payment {signature} rejected: expected {expected_lamports} lamports, "
            f"realized {realized}"
        )
        raise PaymentMismatchError(
            f"Transaction moved {realized} lamports, expected {expected_lamports}"
        )

    return PaymentReceipt(
        signature=signature,
        sender=sender,
        recipient=recipient,
        lamports=realized,
        slot=tx.get('slot'),
        block_time=tx.get('blockTime')
    )

class ConfirmationWatcher:
    """Waits for payment transactions to confirm and validates them."""

    def __init__(
        self,
        rpc: SolanaRPC,
        seller_wallet: str,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        timeout: float = DEFAULT_TIMEOUT,
        commitment: str = 'confirmed'
    ):
        """Initialize the confirmation watcher.

        Args:
            rpc: Solana RPC client
            seller_wallet: Address that must receive the payment
            poll_interval: Seconds between polls
            timeout: Seconds before giving up with ConfirmationTimeoutError
            commitment: Minimum commitment (confirmed or finalized)
        """
        self.rpc = rpc
        self.seller = str(to_pubkey(seller_wallet))
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.commitment = commitment

    async def fetch_transaction(self, signature: str) -> Optional[Dict[str, Any]]:
        """Fetch a transaction at the configured commitment, None if not yet there."""
        return await asyncio.to_thread(
            self.rpc.getTransaction,
            signature,
            {
                "commitment": self.commitment,
                "encoding": "json",
                "maxSupportedTransactionVersion": 0
            }
        )

    async def wait_for_transaction(self, signature: str) -> Dict[str, Any]:
        """Poll until the transaction is found or the timeout elapses.

        Raises:
            ConfirmationTimeoutError: If the transaction is not confirmed in time
            RPCError: If the node cannot be reached
        """
        async def poll() -> Dict[str, Any]:
            attempt = 0
            while True:
                tx = await self.fetch_transaction(signature)
                if tx:
                    return tx
                attempt += 1
                logger.debug(f"Transaction {signature} not {self.commitment} yet (poll {attempt})")
                await asyncio.sleep(self.poll_interval)

        try:
            return await asyncio.wait_for(poll(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Transaction {signature} not {self.commitment} after {self.timeout}s")
            raise ConfirmationTimeoutError(
                f"Transaction not {self.commitment} within {self.timeout} seconds"
            )

    async def confirm_payment(
        self,
        signature: str,
        expected_lamports: int,
        buyer_wallet: Optional[str] = None
    ) -> PaymentReceipt:
        """Wait for a payment to confirm and check it pays the seller in full.

        Args:
            signature: Transaction id returned by the network on submission
            expected_lamports: Exact amount the seller must receive
            buyer_wallet: Wallet the buyer claims to have paid from; a different
                sender is logged but accepted

        Returns:
            The verified PaymentReceipt

        Raises:
            InvalidTransactionSignatureError: If signature is malformed
            ConfirmationTimeoutError: If the transaction does not confirm in time
            PaymentMismatchError: If the transaction does not match the sale
            RPCError: If the node cannot be reached
        """
        parse_signature(signature)
        tx = await self.wait_for_transaction(signature)
        receipt = validate_payment(tx, signature, self.seller, expected_lamports)

        if buyer_wallet and receipt.sender != buyer_wallet:
            logger.warning(
                f"Payment {signature} sent by {receipt.sender}, "
                f"not by the buyer's wallet {buyer_wallet}"
            )

        logger.info(f"Payment {signature} confirmed: {receipt.lamports} lamports to {receipt.recipient}")
        return receipt

__all__ = ['ConfirmationWatcher', 'PaymentReceipt', 'validate_payment', 'parse_signature']

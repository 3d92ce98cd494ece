"""Unsigned SOL transfer construction."""

import asyncio
import base64
import logging
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Tuple, Union

from solders.hash import Hash
from solders.message import Message
from solders.system_program import TransferParams, transfer
from solders.transaction import Transaction

from rpc import SolanaRPC, NodeConnectionError, InvalidAddressError, to_pubkey
from .exceptions import InvalidAmountError

logger = logging.getLogger(__name__)

LAMPORTS_PER_SOL = 10 ** 9
MAX_LAMPORTS = 2 ** 64 - 1

def sol_to_lamports(amount: Union[Decimal, str, int, float]) -> int:
    """Convert a SOL amount to integer lamports.

    Uses decimal arithmetic on the string form so 0.1 SOL is exactly
    100000000 lamports. Sub-lamport precision is rounded half up.

    Raises:
        InvalidAmountError: If the amount is not a positive number
    """
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError) as e:
        raise InvalidAmountError(f"Invalid SOL amount: {amount!r}") from e

    if not value.is_finite() or value <= 0:
        raise InvalidAmountError(f"SOL amount must be positive, got {amount!r}")
    try:
        scaled = value * LAMPORTS_PER_SOL
    except ArithmeticError as e:
        raise InvalidAmountError(f"SOL amount {amount!r} is too large") from e
    if scaled > MAX_LAMPORTS:
        raise InvalidAmountError(f"SOL amount {amount!r} is too large")

    lamports = int(scaled.quantize(Decimal('1'), rounding=ROUND_HALF_UP))
    if lamports <= 0:
        raise InvalidAmountError(f"SOL amount {amount!r} is less than one lamport")
    return lamports

def lamports_to_sol(lamports: int) -> Decimal:
    """Convert lamports to SOL."""
    return Decimal(lamports) / Decimal(LAMPORTS_PER_SOL)

class TransactionBuilder:
    """Builds unsigned buyer-to-seller transfers for wallets to sign."""

    def __init__(self, rpc: SolanaRPC, seller_wallet: str, commitment: str = 'confirmed'):
        """Initialize transaction builder.

        Args:
            rpc: Solana RPC client
            seller_wallet: Fixed platform address receiving every sale
            commitment: Commitment level used to fetch the blockhash
        """
        self.rpc = rpc
        self.seller = to_pubkey(seller_wallet)
        self.seller_wallet = str(self.seller)
        self.commitment = commitment

    async def latest_blockhash(self) -> Tuple[Hash, int]:
        """Fetch a recent blockhash and the last block height it is valid for.

        Raises:
            RPCError: If the node cannot be reached or answers garbage
        """
        result = await asyncio.to_thread(
            self.rpc.getLatestBlockhash, {"commitment": self.commitment}
        )
        try:
            value = result['value']
            blockhash = Hash.from_string(value["blockhash"])
            return blockhash, int(value['lastValidBlockHeight'])
        except (KeyError, TypeError, ValueError) as e:
            raise NodeConnectionError(f"Invalid getLatestBlockhash response: {result!r}") from e

    async def build_transfer(self, buyer_wallet: str, amount_sol: Union[Decimal, str]) -> Dict[str, Any]:
        """Build an unsigned transfer of amount_sol from buyer to seller.

        The buyer is the fee payer. The transaction carries a single system
        transfer instruction and an empty signature slot for the buyer.

        Args:
            buyer_wallet: Base58 address of the paying wallet
            amount_sol: Price in SOL

        Returns:
            Dict containing:
                - transaction: base64 wire-format unsigned transaction
                - lamports: exact amount transferred
                - blockhash: blockhash the transaction is bound to
                - last_valid_block_height: height after which it can no longer land

        Raises:
            InvalidAddressError: If buyer_wallet is not a valid address
            InvalidAmountError: If amount_sol is not a positive amount
            RPCError: If the blockhash cannot be fetched
        """
        buyer = to_pubkey(buyer_wallet)
        if buyer == self.seller:
            raise InvalidAddressError("Buyer wallet cannot be the seller wallet")
        lamports = sol_to_lamports(amount_sol)
        blockhash, last_valid_block_height = await self.latest_blockhash()

        instruction = transfer(TransferParams(
            from_pubkey=buyer,
            to_pubkey=self.seller,
            lamports=lamports
        ))
        message = Message.new_with_blockhash([instruction], buyer, blockhash)
        unsigned = bytes(Transaction.new_unsigned(message))

        encoded_blockhash = str(blockhash)
        logger.info(
            f"Built transfer of {lamports} lamports from {buyer_wallet} to {self.seller_wallet} "
            f"(blockhash {encoded_blockhash})"
        )
        return {
            'transaction': base64.b64encode(unsigned).decode('ascii'),
            'lamports': lamports,
            'blockhash': encoded_blockhash,
            'last_valid_block_height': last_valid_block_height
        }

__all__ = ['TransactionBuilder', 'sol_to_lamports', 'lamports_to_sol', 'LAMPORTS_PER_SOL']

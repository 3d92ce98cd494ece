"""Client side of the purchase flow.

Drives the marketplace API the way a browser wallet integration does:
wallet login, purchase request, local signing, submission to the network,
a bounded wait for the network to see the transaction, then check-payment.
Unlike a page script, the presence wait carries a deadline and can be
cancelled, and the session token is refreshed before it runs out.
"""

import asyncio
import base64
import logging
import time
from typing import Any, Dict, Optional

import requests
from jose import jwt, JWTError
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.system_program import ID as SYSTEM_PROGRAM_ID, TransferParams, decode_transfer
from solders.transaction import Transaction

from auth.signature import create_challenge
from rpc import SolanaRPC
from .exceptions import (
    ConfirmationTimeoutError, PaymentMismatchError, PurchaseCancelledError
)

logger = logging.getLogger(__name__)

SEEN_STATUSES = ('confirmed', 'finalized')

def wallet_address(keypair: Keypair) -> str:
    """Base58 address of a keypair."""
    return str(keypair.pubkey())

def transfer_params(message: Message) -> TransferParams:
    """Decode the single system transfer carried by a legacy message.

    Raises:
        PaymentMismatchError: If the instruction is not a system transfer
    """
    compiled = message.instructions[0]
    program_id = message.account_keys[compiled.program_id_index]
    if program_id != SYSTEM_PROGRAM_ID:
        raise PaymentMismatchError(f"Instruction targets {program_id}, not the system program")

    accounts = [
        AccountMeta(message.account_keys[i], message.is_signer(i), message.is_writable(i))
        for i in compiled.accounts
    ]
    try:
        return decode_transfer(Instruction(program_id, bytes(compiled.data), accounts))
    except ValueError as e:
        raise PaymentMismatchError("Instruction is not a system transfer") from e

class ApiError(Exception):
    """Raised when the marketplace API answers with an error status."""

    def __init__(self, status_code: int, reason: str, message: str):
        self.status_code = status_code
        self.reason = reason
        super().__init__(f"[{status_code}] {reason}: {message}")

class PurchaseClient:
    """Buys collections with a local keypair."""

    def __init__(
        self,
        api_url: str,
        rpc: SolanaRPC,
        keypair: Keypair,
        poll_interval: float = 2,
        timeout: float = 120,
        refresh_threshold: float = 300,
        session: Optional[requests.Session] = None
    ):
        """Initialize purchase client.

        Args:
            api_url: Base URL of the marketplace, e.g. http://localhost:8000
            rpc: Solana RPC client used for submission and status polling
            keypair: Buyer wallet
            poll_interval: Seconds between signature status polls
            timeout: Seconds to wait for the network to see a transaction
            refresh_threshold: Remaining token validity (seconds) that triggers a refresh
            session: HTTP session, a new one by default
        """
        self.api_url = api_url.rstrip('/')
        self.rpc = rpc
        self.keypair = keypair
        self.wallet = wallet_address(keypair)
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.refresh_threshold = refresh_threshold
        self.http = session or requests.Session()
        self.token: Optional[str] = None

    def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        headers = {}
        if self.token:
            headers['Authorization'] = f"Bearer {self.token}"

        response = self.http.request(
            method, f"{self.api_url}{path}", json=payload, headers=headers, timeout=30
        )
        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code >= 400:
            detail = body.get('detail') if isinstance(body, dict) else None
            if isinstance(detail, dict):
                raise ApiError(response.status_code, detail.get('reason', 'error'), detail.get('message', ''))
            raise ApiError(response.status_code, 'error', str(detail or response.text))
        return body

    async def _call(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await asyncio.to_thread(self._request, method, path, payload)

    async def login(self) -> str:
        """Sign a fresh login challenge and obtain a session token."""
        message = create_challenge()
        signature = bytes(self.keypair.sign_message(message.encode("utf-8")))
        result = await self._call('POST', '/api/wallet-login', {
            'walletAddress': self.wallet,
            'message': message,
            'signature': base64.b64encode(signature).decode('ascii')
        })
        self.token = result['token']
        logger.info(f"Logged in as {self.wallet}")
        return self.token

    async def ensure_fresh_token(self) -> None:
        """Refresh the session token when it is close to expiry."""
        if not self.token:
            await self.login()
            return

        try:
            exp = jwt.get_unverified_claims(self.token)['exp']
        except (JWTError, KeyError):
            await self.login()
            return

        if exp - time.time() < self.refresh_threshold:
            result = await self._call('GET', '/api/refresh-token')
            self.token = result['newToken']
            logger.info("Session token refreshed")

    async def request_purchase(self, collection_id: int, amount: Optional[str] = None) -> Dict[str, Any]:
        """Ask the server for the unsigned transfer paying for a collection.

        The answer carries ``alreadyPurchased`` and ``accessKey`` instead of a
        transaction when the collection is already owned.
        """
        await self.ensure_fresh_token()
        return await self._call('POST', '/api/sol-purchase', {
            'collectionId': collection_id,
            'amount': amount,
            'buyerWallet': self.wallet
        })

    def sign(self, raw: bytes) -> bytes:
        """Sign an unsigned transfer with the buyer key.

        Refuses anything other than a single transfer paid from this wallet.
        """
        message = Transaction.from_bytes(raw).message
        if len(message.instructions) != 1 or message.header.num_required_signatures != 1:
            raise PaymentMismatchError("Server transaction is not a single transfer")
        params = transfer_params(message)
        payer = self.keypair.pubkey()
        if message.account_keys[0] != payer or params.from_pubkey != payer:
            raise PaymentMismatchError("Server transaction does not pay from this wallet")

        signed = Transaction.populate(message, [self.keypair.sign_message(bytes(message))])
        logger.debug(f"Signed transfer of {params.lamports} lamports to {params.to_pubkey}")
        return bytes(signed)

    async def submit(self, raw: bytes) -> str:
        """Send a signed transaction, returning its signature."""
        encoded = base64.b64encode(raw).decode('ascii')
        signature = await asyncio.to_thread(
            self.rpc.sendTransaction,
            encoded,
            {"encoding": "base64", "preflightCommitment": "processed"}
        )
        logger.info(f"Submitted transaction {signature}")
        return signature

    async def wait_until_seen(self, signature: str, cancel: Optional[asyncio.Event] = None) -> Dict[str, Any]:
        """Wait until the network reports the transaction as confirmed.

        Args:
            signature: Submitted transaction signature
            cancel: Event that aborts the wait when set

        Returns:
            The signature status

        Raises:
            ConfirmationTimeoutError: If the deadline passes first
            PurchaseCancelledError: If cancel is set first
            PaymentMismatchError: If the transaction failed on-chain
        """
        cancel = cancel or asyncio.Event()

        async def poll() -> Dict[str, Any]:
            while True:
                if cancel.is_set():
                    raise PurchaseCancelledError("Purchase wait cancelled")

                result = await asyncio.to_thread(self.rpc.getSignatureStatuses, [signature])
                status = (result.get('value') or [None])[0]
                if status:
                    if status.get('err') is not None:
                        raise PaymentMismatchError(f"Transaction failed on-chain: {status['err']}")
                    if status.get('confirmationStatus') in SEEN_STATUSES:
                        return status

                try:
                    await asyncio.wait_for(cancel.wait(), timeout=self.poll_interval)
                except asyncio.TimeoutError:
                    continue

        try:
            return await asyncio.wait_for(poll(), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise ConfirmationTimeoutError(
                f"Transaction {signature} not seen within {self.timeout} seconds"
            )

    async def check_payment(self, collection_id: int, signature: str) -> str:
        """Report a payment to the server and return the access key."""
        await self.ensure_fresh_token()
        result = await self._call('POST', '/api/check-payment', {
            'collectionId': collection_id,
            'signature': signature
        })
        return result['accessKey']

    async def buy(self, collection_id: int, amount: Optional[str] = None,
                  cancel: Optional[asyncio.Event] = None) -> str:
        """Run the whole purchase and return the access key."""
        purchase = await self.request_purchase(collection_id, amount)
        if purchase.get('alreadyPurchased'):
            logger.info(f"Collection {collection_id} already purchased")
            return purchase['accessKey']

        tx = self.sign(base64.b64decode(purchase['transaction']))
        signature = await self.submit(tx)
        await self.wait_until_seen(signature, cancel)
        access_key = await self.check_payment(collection_id, signature)
        logger.info(f"Purchased collection {collection_id}")
        return access_key

    def close(self) -> None:
        self.http.close()

__all__ = ['PurchaseClient', 'ApiError', 'wallet_address', 'transfer_params']

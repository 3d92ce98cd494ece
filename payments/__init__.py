"""Payments module for SOL purchases.

This module provides:
1. Unsigned buyer-to-seller transfer construction
2. Confirmation polling and on-chain payment validation
3. The access grant ledger
4. Purchase orchestration for the API and a client-side purchase flow
"""

from .builder import TransactionBuilder, sol_to_lamports, lamports_to_sol, LAMPORTS_PER_SOL
from .exceptions import (
    PaymentError,
    InvalidAmountError,
    InvalidTransactionSignatureError,
    PaymentMismatchError,
    ConfirmationTimeoutError,
    PurchaseCancelledError
)
from .ledger import AccessGrantLedger, generate_access_key
from .processor import PurchaseProcessor
from .watcher import ConfirmationWatcher, PaymentReceipt, validate_payment, parse_signature

# Export public interface
__all__ = [
    'TransactionBuilder',
    'ConfirmationWatcher',
    'AccessGrantLedger',
    'PurchaseProcessor',
    'PaymentReceipt',
    'validate_payment',
    'parse_signature',
    'generate_access_key',
    'sol_to_lamports',
    'lamports_to_sol',
    'LAMPORTS_PER_SOL',
    'PaymentError',
    'InvalidAmountError',
    'InvalidTransactionSignatureError',
    'PaymentMismatchError',
    'ConfirmationTimeoutError',
    'PurchaseCancelledError'
]

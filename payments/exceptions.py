"""Payment exception types."""

class PaymentError(Exception):
    """Base exception for payment errors."""
    reason = 'payment_error'

class InvalidAmountError(PaymentError):
    """Raised when a SOL amount is not a positive number of lamports or differs from the listed price."""
    reason = 'invalid_amount'

class InvalidTransactionSignatureError(PaymentError):
    """Raised when a transaction id is not a base58 signature."""
    reason = 'invalid_signature'

class PaymentMismatchError(PaymentError):
    """Raised when an on-chain transaction does not pay the expected amount to the seller.

    A mismatch is final for that transaction signature.
    """
    reason = 'payment_mismatch'

class ConfirmationTimeoutError(PaymentError):
    """Raised when a transaction is not confirmed within the wait budget."""
    reason = 'confirmation_timeout'

class PurchaseCancelledError(PaymentError):
    """Raised when a client-side wait is cancelled by the caller."""
    reason = 'cancelled'

__all__ = [
    'PaymentError',
    'InvalidAmountError',
    'InvalidTransactionSignatureError',
    'PaymentMismatchError',
    'ConfirmationTimeoutError',
    'PurchaseCancelledError'
]

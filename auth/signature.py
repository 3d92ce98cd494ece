"""Wallet signature verification and login challenges.

A wallet proves control of an address by signing a server-formatted login
message with its Ed25519 key. The message embeds a millisecond timestamp so
a captured signature stops working once the challenge ages out.
"""

import base64
import binascii
import re
import time
from typing import Optional

from solders.signature import Signature

from rpc import to_pubkey
from .exceptions import InvalidSignatureError, ChallengeExpiredError, InvalidChallengeError

LOGIN_MESSAGE_PREFIX = "Login to Margo on SOL. Nonce: "
MAX_CLOCK_SKEW_SECONDS = 30
SIGNATURE_LENGTH = 64

_CHALLENGE_RE = re.compile(r'^' + re.escape(LOGIN_MESSAGE_PREFIX) + r'(\d{10,16})$')

def verify_signature(wallet_address: str, message: bytes, signature: bytes) -> bool:
    """Check a detached Ed25519 signature over raw message bytes.

    Args:
        wallet_address: Base58 public key that allegedly signed
        message: Exact bytes that were signed
        signature: 64-byte detached signature

    Returns:
        True if the signature is authentic

    Raises:
        InvalidAddressError: If wallet_address is not a valid public key
    """
    pubkey = to_pubkey(wallet_address)
    if len(signature) != SIGNATURE_LENGTH:
        return False
    return Signature.from_bytes(bytes(signature)).verify(pubkey, bytes(message))

def decode_signature(signature_b64: str) -> bytes:
    """Decode a base64 signature as sent by browser wallets."""
    try:
        return base64.b64decode(signature_b64, validate=True)
    except (binascii.Error, ValueError, TypeError) as e:
        raise InvalidSignatureError("Signature is not valid base64") from e

def create_challenge(now: Optional[float] = None) -> str:
    """Build a login message carrying the current time in milliseconds."""
    now = time.time() if now is None else now
    return f"{LOGIN_MESSAGE_PREFIX}{int(now * 1000)}"

def challenge_timestamp(message: str) -> float:
    """Extract the issue time (seconds) from a login message.

    Raises:
        InvalidChallengeError: If the message is not a login challenge
    """
    match = _CHALLENGE_RE.match(message or '')
    if not match:
        raise InvalidChallengeError("Login message must be a server challenge with a timestamp nonce")
    return int(match.group(1)) / 1000

def check_challenge_freshness(message: str, max_age_seconds: int, now: Optional[float] = None) -> None:
    """Reject challenges older than max_age_seconds or issued in the future.

    Raises:
        InvalidChallengeError: If the message carries no timestamp
        ChallengeExpiredError: If the timestamp is outside the accepted window
    """
    now = time.time() if now is None else now
    issued_at = challenge_timestamp(message)

    if issued_at - now > MAX_CLOCK_SKEW_SECONDS:
        raise ChallengeExpiredError("Challenge timestamp is in the future")
    if now - issued_at > max_age_seconds:
        raise ChallengeExpiredError(
            f"Challenge is older than {max_age_seconds} seconds"
        )

__all__ = [
    'LOGIN_MESSAGE_PREFIX',
    'verify_signature',
    'decode_signature',
    'create_challenge',
    'challenge_timestamp',
    'check_challenge_freshness'
]

"""Tests for wallet signature verification and login challenges."""

import base64

import pytest
from solders.keypair import Keypair

from auth import InvalidSignatureError, ChallengeExpiredError, InvalidChallengeError
from auth.signature import (
    LOGIN_MESSAGE_PREFIX,
    verify_signature,
    decode_signature,
    create_challenge,
    challenge_timestamp,
    check_challenge_freshness
)
from payments.client import wallet_address
from rpc import InvalidAddressError

NOW = 1_700_000_000.0

def flip_bit(data: bytes, index: int) -> bytes:
    mutated = bytearray(data)
    mutated[index // 8] ^= 1 << (index % 8)
    return bytes(mutated)

@pytest.fixture
def signed():
    key = Keypair()
    message = create_challenge(NOW).encode('utf-8')
    return wallet_address(key), message, bytes(key.sign_message(message))

def test_valid_signature(signed):
    """A signature by the wallet's key verifies."""
    wallet, message, signature = signed
    assert verify_signature(wallet, message, signature) is True

@pytest.mark.parametrize("bit", [0, 7, 100, 511])
def test_signature_bit_flip_fails(signed, bit):
    """Any single-bit change to the signature is rejected."""
    wallet, message, signature = signed
    assert verify_signature(wallet, message, flip_bit(signature, bit)) is False

@pytest.mark.parametrize("bit", [0, 13, 64])
def test_message_bit_flip_fails(signed, bit):
    """Any single-bit change to the message is rejected."""
    wallet, message, signature = signed
    assert verify_signature(wallet, flip_bit(message, bit), signature) is False

def test_other_wallet_fails(signed):
    """A signature does not verify against a different wallet."""
    _, message, signature = signed
    other = wallet_address(Keypair())
    assert verify_signature(other, message, signature) is False

def test_wrong_length_signature(signed):
    wallet, message, signature = signed
    assert verify_signature(wallet, message, signature[:63]) is False

@pytest.mark.parametrize("address", ["", "not-base58-0OIl", "abc", "1" * 50])
def test_invalid_address(signed, address):
    """Addresses that do not decode to 32 bytes raise InvalidAddressError."""
    _, message, signature = signed
    with pytest.raises(InvalidAddressError):
        verify_signature(address, message, signature)

def test_decode_signature():
    raw = bytes(range(64))
    assert decode_signature(base64.b64encode(raw).decode()) == raw
    with pytest.raises(InvalidSignatureError):
        decode_signature("***not base64***")

def test_challenge_format():
    message = create_challenge(NOW)
    assert message == f"{LOGIN_MESSAGE_PREFIX}{int(NOW * 1000)}"
    assert challenge_timestamp(message) == NOW

def test_challenge_without_nonce():
    with pytest.raises(InvalidChallengeError):
        challenge_timestamp("Login to Margo on SOL.")
    with pytest.raises(InvalidChallengeError):
        check_challenge_freshness("hello", 120, now=NOW)

def test_challenge_freshness_window():
    message = create_challenge(NOW)
    check_challenge_freshness(message, 120, now=NOW + 119)
    check_challenge_freshness(message, 120, now=NOW - 29)

    with pytest.raises(ChallengeExpiredError):
        check_challenge_freshness(message, 120, now=NOW + 121)
    with pytest.raises(ChallengeExpiredError):
        check_challenge_freshness(message, 120, now=NOW - 31)

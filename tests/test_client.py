"""Tests for the client-side purchase flow."""

import asyncio
import base64
import time
from unittest.mock import MagicMock

import pytest
from jose import jwt
from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.message import Message
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from solders.transaction import Transaction

from payments import ConfirmationTimeoutError, PaymentMismatchError, PurchaseCancelledError
from payments.client import ApiError, PurchaseClient
from auth.signature import verify_signature

BLOCKHASH = Hash(bytes(range(32)))

def http_response(status_code, body):
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = body
    resp.text = str(body)
    return resp

def unsigned(instruction: Instruction, payer: str) -> str:
    message = Message.new_with_blockhash([instruction], Pubkey.from_string(payer), BLOCKHASH)
    return base64.b64encode(bytes(Transaction.new_unsigned(message))).decode()

def unsigned_transfer(payer: str, recipient: str, lamports: int = 500_000_000) -> str:
    return unsigned(transfer(TransferParams(
        from_pubkey=Pubkey.from_string(payer),
        to_pubkey=Pubkey.from_string(recipient),
        lamports=lamports
    )), payer)

def status(confirmation, err=None):
    return {'context': {'slot': 1}, 'value': [
        None if confirmation is None else {'confirmationStatus': confirmation, 'err': err}
    ]}

@pytest.fixture
def rpc():
    return MagicMock()

@pytest.fixture
def http():
    return MagicMock()

@pytest.fixture
def client(rpc, http, buyer_key):
    return PurchaseClient(
        "http://market.test/", rpc, buyer_key,
        poll_interval=0.01, timeout=0.2, session=http
    )

@pytest.mark.asyncio
async def test_wait_until_confirmed(client, rpc):
    rpc.getSignatureStatuses.side_effect = [status(None), status('processed'), status('confirmed')]
    result = await client.wait_until_seen("sig")
    assert result['confirmationStatus'] == 'confirmed'
    assert rpc.getSignatureStatuses.call_count == 3
    rpc.getSignatureStatuses.assert_called_with(["sig"])

@pytest.mark.asyncio
async def test_wait_times_out(client, rpc):
    rpc.getSignatureStatuses.return_value = status(None)
    with pytest.raises(ConfirmationTimeoutError):
        await client.wait_until_seen("sig")

@pytest.mark.asyncio
async def test_wait_cancelled(client, rpc):
    """Setting the cancel event stops the wait before the deadline."""
    rpc.getSignatureStatuses.return_value = status(None)
    client.timeout = 10
    cancel = asyncio.Event()

    async def cancel_soon():
        await asyncio.sleep(0.05)
        cancel.set()

    started = time.monotonic()
    with pytest.raises(PurchaseCancelledError):
        await asyncio.gather(client.wait_until_seen("sig", cancel), cancel_soon())
    assert time.monotonic() - started < 5

@pytest.mark.asyncio
async def test_wait_task_cancellation(client, rpc):
    rpc.getSignatureStatuses.return_value = status(None)
    client.timeout = 10
    task = asyncio.create_task(client.wait_until_seen("sig"))
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

@pytest.mark.asyncio
async def test_failed_transaction(client, rpc):
    rpc.getSignatureStatuses.return_value = status('confirmed', err={'InstructionError': [0, 'Custom']})
    with pytest.raises(PaymentMismatchError):
        await client.wait_until_seen("sig")

def test_sign(client, buyer_key, buyer_wallet, seller_wallet):
    signed = Transaction.from_bytes(
        client.sign(base64.b64decode(unsigned_transfer(buyer_wallet, seller_wallet)))
    )
    signature = signed.signatures[0]
    assert signature.verify(buyer_key.pubkey(), bytes(signed.message))
    assert verify_signature(buyer_wallet, bytes(signed.message), bytes(signature))

def test_sign_refuses_foreign_payer(client, seller_wallet):
    other = "So11111111111111111111111111111111111111112"
    with pytest.raises(PaymentMismatchError):
        client.sign(base64.b64decode(unsigned_transfer(other, seller_wallet)))

def test_sign_refuses_other_program(client, buyer_wallet):
    buyer = Pubkey.from_string(buyer_wallet)
    instruction = Instruction(Pubkey.new_unique(), bytes(12), [AccountMeta(buyer, True, True)])
    with pytest.raises(PaymentMismatchError):
        client.sign(base64.b64decode(unsigned(instruction, buyer_wallet)))

@pytest.mark.asyncio
async def test_refresh_when_close_to_expiry(client, http):
    client.token = jwt.encode({'sub': 'u', 'exp': int(time.time()) + 60}, 'k', algorithm='HS256')
    http.request.return_value = http_response(200, {'success': True, 'newToken': 'fresh'})

    await client.ensure_fresh_token()

    assert client.token == 'fresh'
    method, url = http.request.call_args.args
    assert (method, url) == ('GET', 'http://market.test/api/refresh-token')

@pytest.mark.asyncio
async def test_no_refresh_when_valid(client, http):
    client.token = jwt.encode({'sub': 'u', 'exp': int(time.time()) + 3600}, 'k', algorithm='HS256')
    await client.ensure_fresh_token()
    http.request.assert_not_called()

@pytest.mark.asyncio
async def test_api_error(client, http):
    http.request.return_value = http_response(400, {'detail': {'reason': 'payment_mismatch', 'message': 'short'}})
    client.token = jwt.encode({'sub': 'u', 'exp': int(time.time()) + 3600}, 'k', algorithm='HS256')
    with pytest.raises(ApiError) as exc:
        await client.check_payment(7, "sig")
    assert exc.value.status_code == 400
    assert exc.value.reason == 'payment_mismatch'

@pytest.mark.asyncio
async def test_buy(client, http, rpc, buyer_wallet, seller_wallet):
    """Login, request, sign, submit, wait and check in order."""
    token = jwt.encode({'sub': 'u', 'exp': int(time.time()) + 3600}, 'k', algorithm='HS256')
    responses = {
        '/api/wallet-login': http_response(200, {'success': True, 'token': token}),
        '/api/sol-purchase': http_response(200, {
            'success': True, 'transaction': unsigned_transfer(buyer_wallet, seller_wallet)
        }),
        '/api/check-payment': http_response(200, {'success': True, 'accessKey': 'ab' * 16}),
    }
    http.request.side_effect = lambda method, url, **kwargs: responses[url.replace('http://market.test', '')]

    submitted = {}

    def send_transaction(encoded, options):
        signed = Transaction.from_bytes(base64.b64decode(encoded))
        submitted['signature'] = str(signed.signatures[0])
        return submitted['signature']

    rpc.sendTransaction.side_effect = send_transaction
    rpc.getSignatureStatuses.return_value = status('finalized')

    access_key = await client.buy(7, "0.5")

    assert access_key == 'ab' * 16
    login_payload = http.request.call_args_list[0].kwargs['json']
    assert login_payload['walletAddress'] == buyer_wallet
    check_payload = http.request.call_args_list[-1].kwargs['json']
    assert check_payload == {'collectionId': 7, 'signature': submitted['signature']}
    assert http.request.call_args_list[-1].kwargs['headers'] == {'Authorization': f"Bearer {token}"}

@pytest.mark.asyncio
async def test_buy_already_purchased(client, http, rpc):
    """An owned collection returns its key without signing or submitting."""
    token = jwt.encode({'sub': 'u', 'exp': int(time.time()) + 3600}, 'k', algorithm='HS256')
    responses = {
        '/api/wallet-login': http_response(200, {'success': True, 'token': token}),
        '/api/sol-purchase': http_response(200, {
            'success': True, 'alreadyPurchased': True, 'accessKey': 'cd' * 16
        }),
    }
    http.request.side_effect = lambda method, url, **kwargs: responses[url.replace('http://market.test', '')]

    assert await client.buy(7) == 'cd' * 16
    rpc.sendTransaction.assert_not_called()
    rpc.getSignatureStatuses.assert_not_called()
    assert http.request.call_count == 2

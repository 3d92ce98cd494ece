"""Tests for the access grant ledger."""

import asyncio
import re
import uuid

import pytest

from database import StorageUnavailableError
from payments import AccessGrantLedger, PaymentMismatchError, generate_access_key

HEX_KEY = re.compile(r'^[0-9a-f]{32}$')

@pytest.fixture
def ledger(pool, db):
    db.add_collection(1, "0.5", title="Sunsets")
    db.add_collection(2, "1.25", title="Mountains")
    return AccessGrantLedger(pool)

def test_access_key_format():
    keys = {generate_access_key() for _ in range(50)}
    assert len(keys) == 50
    assert all(HEX_KEY.match(key) for key in keys)

@pytest.mark.asyncio
async def test_record_and_lookup(ledger):
    user_id = uuid.uuid4()
    assert not await ledger.has_grant(user_id, 1)

    grant = await ledger.record_grant(user_id, 1, "sig-1", 500_000_000)
    assert grant['created'] is True
    assert HEX_KEY.match(grant['access_key'])
    assert await ledger.has_grant(user_id, 1)
    assert (await ledger.get_grant_by_signature("sig-1"))['collection_id'] == 1

@pytest.mark.asyncio
async def test_second_record_returns_existing(ledger, db):
    user_id = uuid.uuid4()
    first = await ledger.record_grant(user_id, 1, "sig-1", 500_000_000)
    second = await ledger.record_grant(user_id, 1, "sig-1", 500_000_000)

    assert second['created'] is False
    assert second['access_key'] == first['access_key']
    assert len(db.purchases) == 1

@pytest.mark.asyncio
async def test_concurrent_record_single_row(ledger, db):
    """Concurrent confirmations for one pair store one row and agree on the key."""
    user_id = uuid.uuid4()
    results = await asyncio.gather(*[
        ledger.record_grant(user_id, 1, "sig-1", 500_000_000) for _ in range(5)
    ])

    assert len(db.purchases) == 1
    assert len({result['access_key'] for result in results}) == 1
    assert sum(result['created'] for result in results) == 1

@pytest.mark.asyncio
async def test_signature_reuse_for_other_pair(ledger):
    """One payment cannot unlock two grants."""
    await ledger.record_grant(uuid.uuid4(), 1, "sig-1", 500_000_000)
    with pytest.raises(PaymentMismatchError):
        await ledger.record_grant(uuid.uuid4(), 1, "sig-1", 500_000_000)

@pytest.mark.asyncio
async def test_list_grants(ledger):
    user_id = uuid.uuid4()
    await ledger.record_grant(user_id, 1, "sig-1", 500_000_000)
    await ledger.record_grant(user_id, 2, "sig-2", 1_250_000_000)
    await ledger.record_grant(uuid.uuid4(), 2, "sig-3", 1_250_000_000)

    grants = await ledger.list_grants(user_id)
    assert {grant['title'] for grant in grants} == {"Sunsets", "Mountains"}

@pytest.mark.asyncio
async def test_storage_unavailable(ledger, db):
    db.fail = True
    with pytest.raises(StorageUnavailableError) as exc:
        await ledger.record_grant(uuid.uuid4(), 1, "sig-1", 500_000_000)
    assert exc.value.reason == 'storage_unavailable'
    with pytest.raises(StorageUnavailableError):
        await ledger.has_grant(uuid.uuid4(), 1)

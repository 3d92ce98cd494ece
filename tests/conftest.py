"""Shared fixtures: an in-memory stand-in for the asyncpg pool and test wallets."""

import asyncio
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

import pytest
from asyncpg.exceptions import UniqueViolationError
from solders.keypair import Keypair

from payments.client import wallet_address

USER_COLUMNS = ('id', 'email', 'wallet', 'username', 'created_at')
GRANT_COLUMNS = ('user_id', 'collection_id', 'access_key', 'tx_signature', 'amount_lamports', 'created_at')

def _pick(row: Dict[str, Any], columns) -> Dict[str, Any]:
    return {column: row[column] for column in columns}

class FakeDatabase:
    """Tables as lists of dicts, with the unique constraints of the real schema."""

    def __init__(self):
        self.users: List[Dict[str, Any]] = []
        self.collections: Dict[int, Dict[str, Any]] = {}
        self.purchases: List[Dict[str, Any]] = []
        self.fail = False
        self.queries: List[str] = []

    def add_collection(self, collection_id: int, price: str, title: str = "Collection") -> Dict[str, Any]:
        row = {
            'id': collection_id,
            'title': title,
            'price': Decimal(price),
            'created_by': None
        }
        self.collections[collection_id] = row
        return row

    def _user_where(self, key: str, value: Any) -> Optional[Dict[str, Any]]:
        return next((u for u in self.users if u[key] == value), None)

    def _grant(self, user_id, collection_id) -> Optional[Dict[str, Any]]:
        return next(
            (p for p in self.purchases
             if p['user_id'] == user_id and p['collection_id'] == collection_id),
            None
        )

    def execute(self, query: str, args) -> Any:
        if self.fail:
            raise OSError("connection refused")

        sql = ' '.join(query.split())
        self.queries.append(sql)

        # users
        if sql.startswith('INSERT INTO users (wallet, username)'):
            if self._user_where('wallet', args[0]):
                return None
            return _pick(self._new_user(wallet=args[0], username=args[1]), USER_COLUMNS)
        if sql.startswith('INSERT INTO users (email, password_hash, username)'):
            if self._user_where('email', args[0]):
                return None
            user = self._new_user(email=args[0], password_hash=args[1], username=args[2])
            return _pick(user, USER_COLUMNS)
        if sql.startswith('SELECT id FROM users WHERE wallet = $1 AND id != $2'):
            user = next((u for u in self.users if u['wallet'] == args[0] and u['id'] != args[1]), None)
            return {'id': user['id']} if user else None
        if sql.startswith('UPDATE users SET wallet = $1'):
            user = self._user_where('id', args[1])
            if not user:
                return None
            other = self._user_where('wallet', args[0])
            if other and other is not user:
                raise UniqueViolationError("duplicate key value violates unique constraint")
            user['wallet'] = args[0]
            return _pick(user, USER_COLUMNS)
        if 'password_hash FROM users WHERE email = $1' in sql:
            user = self._user_where('email', args[0])
            return _pick(user, USER_COLUMNS + ('password_hash',)) if user else None
        if sql.startswith('SELECT id, email, wallet, username, created_at FROM users WHERE id = $1'):
            user = self._user_where('id', args[0])
            return _pick(user, USER_COLUMNS) if user else None
        if sql.startswith('SELECT id, email, wallet, username, created_at FROM users WHERE wallet = $1'):
            user = self._user_where('wallet', args[0])
            return _pick(user, USER_COLUMNS) if user else None

        # collections
        if sql.startswith('SELECT id, title, price, created_by FROM collections WHERE id = $1'):
            row = self.collections.get(args[0])
            return dict(row) if row else None

        # purchases
        if sql.startswith('INSERT INTO purchases'):
            user_id, collection_id, access_key, tx_signature, amount = args
            if self._grant(user_id, collection_id):
                return None
            if tx_signature and any(p['tx_signature'] == tx_signature for p in self.purchases):
                raise UniqueViolationError("duplicate key value violates unique constraint")
            row = {
                'user_id': user_id,
                'collection_id': collection_id,
                'access_key': access_key,
                'tx_signature': tx_signature,
                'amount_lamports': amount,
                'created_at': datetime.now(timezone.utc)
            }
            self.purchases.append(row)
            return _pick(row, GRANT_COLUMNS)
        if 'FROM purchases WHERE user_id = $1 AND collection_id = $2' in sql:
            row = self._grant(args[0], args[1])
            return _pick(row, GRANT_COLUMNS) if row else None
        if 'FROM purchases WHERE tx_signature = $1' in sql:
            row = next((p for p in self.purchases if p['tx_signature'] == args[0]), None)
            return _pick(row, GRANT_COLUMNS) if row else None
        if 'FROM purchases p JOIN collections c' in sql:
            rows = [p for p in self.purchases if p['user_id'] == args[0]]
            rows.sort(key=lambda p: p['created_at'], reverse=True)
            return [
                {
                    'collection_id': p['collection_id'],
                    'access_key': p['access_key'],
                    'tx_signature': p['tx_signature'],
                    'created_at': p['created_at'],
                    'title': self.collections[p['collection_id']]['title'],
                    'price': self.collections[p['collection_id']]['price']
                }
                for p in rows
            ]

        raise AssertionError(f"Unexpected query: {sql}")

    def _new_user(self, email=None, password_hash=None, wallet=None, username=None) -> Dict[str, Any]:
        user = {
            'id': uuid.uuid4(),
            'email': email,
            'password_hash': password_hash,
            'wallet': wallet,
            'username': username,
            'created_at': datetime.now(timezone.utc)
        }
        self.users.append(user)
        return user

class FakeConnection:
    def __init__(self, db: FakeDatabase):
        self.db = db

    async def fetchrow(self, query: str, *args):
        # Yield first so concurrent callers interleave like real round trips
        await asyncio.sleep(0)
        return self.db.execute(query, args)

    async def fetch(self, query: str, *args):
        await asyncio.sleep(0)
        return self.db.execute(query, args) or []

    async def fetchval(self, query: str, *args):
        await asyncio.sleep(0)
        row = self.db.execute(query, args)
        return next(iter(row.values())) if row else None

class _Acquire:
    def __init__(self, db: FakeDatabase):
        self.db = db

    async def __aenter__(self) -> FakeConnection:
        return FakeConnection(self.db)

    async def __aexit__(self, *exc) -> bool:
        return False

class FakePool:
    """Supports ``async with pool.acquire() as conn`` like asyncpg.Pool."""

    def __init__(self, db: Optional[FakeDatabase] = None):
        self.db = db or FakeDatabase()

    def acquire(self) -> _Acquire:
        return _Acquire(self.db)

    async def close(self) -> None:
        pass

@pytest.fixture
def db() -> FakeDatabase:
    return FakeDatabase()

@pytest.fixture
def pool(db) -> FakePool:
    return FakePool(db)

@pytest.fixture
def buyer_key() -> Keypair:
    return Keypair()

@pytest.fixture
def buyer_wallet(buyer_key) -> str:
    return wallet_address(buyer_key)

@pytest.fixture
def seller_wallet() -> str:
    return wallet_address(Keypair())

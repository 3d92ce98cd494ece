"""Users module for identity records.

An identity is created either by email registration or on the first
successful wallet login. A wallet address belongs to at most one identity.
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Tuple
from uuid import UUID

import bcrypt
from asyncpg.exceptions import UniqueViolationError
from asyncpg.pool import Pool

from database import STORAGE_ERRORS, StorageUnavailableError
from rpc import to_pubkey

logger = logging.getLogger(__name__)

USER_COLUMNS = 'id, email, wallet, username, created_at'
WALLET_USERNAME_LENGTH = 8
MIN_PASSWORD_LENGTH = 6
MAX_PASSWORD_BYTES = 72  # bcrypt input limit
BCRYPT_ROUNDS = 10

class UserError(Exception):
    """Base exception for user operations."""
    reason = 'user_error'

class UserNotFoundError(UserError):
    """Raised when a user does not exist."""
    reason = 'not_found'

class UserExistsError(UserError):
    """Raised when registering an email that is already taken."""
    reason = 'user_exists'

class WalletInUseError(UserError):
    """Raised when a wallet is already linked to a different user."""
    reason = 'wallet_in_use'

class InvalidPasswordError(UserError):
    """Raised when a password does not meet length requirements."""
    reason = 'invalid_password'

def hash_password(password: str) -> str:
    """Hash a password with bcrypt."""
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode('utf-8')

def check_password(password: str, password_hash: Optional[str]) -> bool:
    """Check a password against a stored bcrypt hash."""
    if not password_hash:
        return False
    return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))

def _validate_password(password: str) -> None:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise InvalidPasswordError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if len(password.encode('utf-8')) > MAX_PASSWORD_BYTES:
        raise InvalidPasswordError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")

class UserManager:
    """Looks up, creates and updates identity records."""

    def __init__(self, pool: Pool) -> None:
        """Initialize user manager.

        Args:
            pool: Database connection pool
        """
        self.pool = pool

    async def get_user(self, user_id: UUID) -> Dict[str, Any]:
        """Get a user by id.

        Raises:
            UserNotFoundError: If the user does not exist
            StorageUnavailableError: If the database cannot be queried
        """
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f'SELECT {USER_COLUMNS} FROM users WHERE id = $1',
                    user_id
                )
        except STORAGE_ERRORS as e:
            logger.error(f"Error fetching user {user_id}: {e}")
            raise StorageUnavailableError(f"Failed to fetch user: {str(e)}") from e

        if not row:
            raise UserNotFoundError(f"User {user_id} not found")
        return dict(row)

    async def get_user_by_wallet(self, wallet: str) -> Optional[Dict[str, Any]]:
        """Get the user owning a wallet, if any."""
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f'SELECT {USER_COLUMNS} FROM users WHERE wallet = $1',
                    wallet
                )
        except STORAGE_ERRORS as e:
            logger.error(f"Error fetching user for wallet {wallet}: {e}")
            raise StorageUnavailableError(f"Failed to fetch user: {str(e)}") from e

        return dict(row) if row else None

    async def get_or_create_wallet_user(self, wallet: str) -> Tuple[Dict[str, Any], bool]:
        """Return the user owning a wallet, provisioning one on first login.

        The username is derived from the wallet address prefix. Concurrent
        first logins for the same wallet resolve to a single row through the
        unique wallet index.

        Returns:
            Tuple of (user, created)
        """
        to_pubkey(wallet)
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f'''
                    INSERT INTO users (wallet, username)
                    VALUES ($1, $2)
                    ON CONFLICT (wallet) DO NOTHING
                    RETURNING {USER_COLUMNS}
                    ''',
                    wallet,
                    wallet[:WALLET_USERNAME_LENGTH]
                )
                if row:
                    logger.info(f"Provisioned user {row['id']} for wallet {wallet}")
                    return dict(row), True

                row = await conn.fetchrow(
                    f'SELECT {USER_COLUMNS} FROM users WHERE wallet = $1',
                    wallet
                )
        except STORAGE_ERRORS as e:
            logger.error(f"Error provisioning user for wallet {wallet}: {e}")
            raise StorageUnavailableError(f"Failed to provision user: {str(e)}") from e

        if not row:
            raise StorageUnavailableError(f"User for wallet {wallet} vanished during login")
        return dict(row), False

    async def register(self, email: str, password: str) -> Dict[str, Any]:
        """Register a user by email and password.

        Raises:
            InvalidPasswordError: If the password is too short or too long
            UserExistsError: If the email is already registered
        """
        _validate_password(password)
        email = email.strip().lower()
        password_hash = await asyncio.to_thread(hash_password, password)

        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f'''
                    INSERT INTO users (email, password_hash, username)
                    VALUES ($1, $2, $3)
                    ON CONFLICT (email) DO NOTHING
                    RETURNING {USER_COLUMNS}
                    ''',
                    email,
                    password_hash,
                    email.split('@')[0]
                )
        except STORAGE_ERRORS as e:
            logger.error(f"Error registering {email}: {e}")
            raise StorageUnavailableError(f"Failed to register user: {str(e)}") from e

        if not row:
            raise UserExistsError("A user with this email already exists")

        logger.info(f"Registered user {row['id']}")
        return dict(row)

    async def authenticate(self, email: str, password: str) -> Optional[Dict[str, Any]]:
        """Return the user if the email and password match, else None."""
        email = email.strip().lower()
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f'SELECT {USER_COLUMNS}, password_hash FROM users WHERE email = $1',
                    email
                )
        except STORAGE_ERRORS as e:
            logger.error(f"Error fetching user {email}: {e}")
            raise StorageUnavailableError(f"Failed to fetch user: {str(e)}") from e

        if not row:
            return None
        if not await asyncio.to_thread(check_password, password, row['password_hash']):
            return None

        user = dict(row)
        user.pop('password_hash')
        return user

    async def link_wallet(self, user_id: UUID, wallet: str) -> Dict[str, Any]:
        """Attach a wallet to an existing user.

        Raises:
            InvalidAddressError: If the wallet is not a valid address
            WalletInUseError: If another user already owns the wallet
            UserNotFoundError: If the user does not exist
        """
        to_pubkey(wallet)
        try:
            async with self.pool.acquire() as conn:
                owner = await conn.fetchval(
                    'SELECT id FROM users WHERE wallet = $1 AND id != $2',
                    wallet,
                    user_id
                )
                if owner:
                    raise WalletInUseError("This wallet is already linked to another account")

                row = await conn.fetchrow(
                    f'''
                    UPDATE users
                    SET wallet = $1, updated_at = now()
                    WHERE id = $2
                    RETURNING {USER_COLUMNS}
                    ''',
                    wallet,
                    user_id
                )
        except UniqueViolationError as e:
            raise WalletInUseError("This wallet is already linked to another account") from e
        except STORAGE_ERRORS as e:
            logger.error(f"Error linking wallet for user {user_id}: {e}")
            raise StorageUnavailableError(f"Failed to link wallet: {str(e)}") from e

        if not row:
            raise UserNotFoundError(f"User {user_id} not found")

        logger.info(f"Linked wallet {wallet} to user {user_id}")
        return dict(row)

# Export public interface
__all__ = [
    'UserManager',
    'UserError',
    'UserNotFoundError',
    'UserExistsError',
    'WalletInUseError',
    'InvalidPasswordError',
    'hash_password',
    'check_password'
]

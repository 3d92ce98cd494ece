"""Service wiring for the API.

Every long-lived object (database pool, RPC client, managers) is built once
at startup, stored on ``app.state.services`` and handed to routes through
``get_services``. Tests inject their own Services instead.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from asyncpg.pool import Pool
from fastapi import HTTPException, Request, status

from auth import AuthManager, AuthError, SessionManager
from catalog import CollectionManager, CollectionNotFoundError
from database import init_db, close as db_close, StorageUnavailableError
from payments import (
    AccessGrantLedger, ConfirmationWatcher, PurchaseProcessor, TransactionBuilder,
    PaymentError, ConfirmationTimeoutError
)
from rpc import SolanaRPC, RPCError, InvalidAddressError
from users import UserManager, UserError, UserNotFoundError

logger = logging.getLogger(__name__)

@dataclass
class Services:
    """Everything the routes need, created once per process."""
    settings: Dict[str, Any]
    pool: Optional[Pool]
    rpc: SolanaRPC
    sessions: SessionManager
    auth: AuthManager
    users: UserManager
    catalog: CollectionManager
    ledger: AccessGrantLedger
    builder: TransactionBuilder
    watcher: ConfirmationWatcher
    purchases: PurchaseProcessor

def wire_services(settings: Dict[str, Any], pool: Optional[Pool], rpc: SolanaRPC) -> Services:
    """Construct every manager around an existing pool and RPC client."""
    users = UserManager(pool)
    sessions = SessionManager(
        secret=settings.get('jwt_secret') or None,
        expiry_hours=settings['session_expiry_hours'],
        refresh_threshold_minutes=settings['refresh_threshold_minutes']
    )
    catalog = CollectionManager(pool)
    ledger = AccessGrantLedger(pool)
    builder = TransactionBuilder(rpc, settings['seller_wallet'], settings['commitment'])
    watcher = ConfirmationWatcher(
        rpc,
        settings['seller_wallet'],
        poll_interval=settings['confirmation_poll_interval'],
        timeout=settings['confirmation_timeout'],
        commitment=settings['commitment']
    )
    return Services(
        settings=settings,
        pool=pool,
        rpc=rpc,
        sessions=sessions,
        auth=AuthManager(users, sessions, settings['challenge_max_age_seconds']),
        users=users,
        catalog=catalog,
        ledger=ledger,
        builder=builder,
        watcher=watcher,
        purchases=PurchaseProcessor(catalog, builder, watcher, ledger)
    )

async def build_services(settings: Dict[str, Any]) -> Services:
    """Open the database pool and RPC client and wire the managers."""
    logger.info("Initializing database...")
    pool = await init_db(settings['db_url'])
    rpc = SolanaRPC(settings['solana_rpc_url'], timeout=settings['rpc_timeout'])
    logger.info(f"Using Solana RPC at {settings['solana_rpc_url']}")
    return wire_services(settings, pool, rpc)

async def close_services(services: Services) -> None:
    """Release the RPC session and the database pool."""
    services.rpc.close()
    if services.pool is not None:
        await db_close(services.pool)

def get_services(request: Request) -> Services:
    """FastAPI dependency returning the process services."""
    return request.app.state.services

def error_status(exc: Exception) -> int:
    """HTTP status for a domain error."""
    if isinstance(exc, (CollectionNotFoundError, UserNotFoundError)):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, AuthError):
        return status.HTTP_401_UNAUTHORIZED
    if isinstance(exc, ConfirmationTimeoutError):
        return status.HTTP_504_GATEWAY_TIMEOUT
    if isinstance(exc, (RPCError, StorageUnavailableError)):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    if isinstance(exc, (InvalidAddressError, PaymentError, UserError)):
        return status.HTTP_400_BAD_REQUEST
    return status.HTTP_500_INTERNAL_SERVER_ERROR

def api_error(exc: Exception, status_code: Optional[int] = None) -> HTTPException:
    """Convert a domain error into an HTTPException with a structured detail."""
    return HTTPException(
        status_code=status_code or error_status(exc),
        detail={
            'reason': getattr(exc, 'reason', 'internal_error'),
            'message': str(exc)
        }
    )

# Domain errors every route translates
DOMAIN_ERRORS = (
    AuthError, CollectionNotFoundError, UserError, PaymentError,
    RPCError, InvalidAddressError, StorageUnavailableError
)

__all__ = [
    'Services', 'wire_services', 'build_services', 'close_services',
    'get_services', 'api_error', 'error_status', 'DOMAIN_ERRORS'
]

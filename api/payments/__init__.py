"""Purchase API endpoints.

A purchase is two calls. ``/sol-purchase`` returns an unsigned transfer for
the buyer's wallet to sign and submit; ``/check-payment`` takes the
resulting signature, waits for confirmation and returns the access key.
Calling check-payment again with the same signature returns the same key,
and ``/sol-purchase`` for an owned collection returns the key instead of
a transaction.
"""

import asyncio
import logging
from decimal import Decimal
from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Security
from pydantic import BaseModel

from auth import get_current_user
from payments import lamports_to_sol
from rpc import to_pubkey
from ..context import Services, get_services, api_error, DOMAIN_ERRORS

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api",
    tags=["Payments"]
)

class PurchaseRequest(BaseModel):
    """Request model for building a purchase transaction."""
    collectionId: int
    buyerWallet: str
    amount: Optional[Decimal] = None

class CheckPaymentRequest(BaseModel):
    """Request model for confirming a submitted payment."""
    collectionId: int
    signature: str

@router.post("/sol-purchase")
async def sol_purchase(
    request: PurchaseRequest,
    claims: Dict[str, Any] = Security(get_current_user),
    services: Services = Depends(get_services)
):
    """Build an unsigned transfer of the collection price to the seller."""
    try:
        result = await services.purchases.create_purchase(
            claims, request.collectionId, request.amount, request.buyerWallet
        )
    except DOMAIN_ERRORS as e:
        raise api_error(e)
    if result["already_purchased"]:
        return {"success": True, "alreadyPurchased": True, "accessKey": result["access_key"]}
    return {
        "success": True,
        "alreadyPurchased": False,
        "transaction": result["transaction"],
        "lamports": result["lamports"],
        "blockhash": result["blockhash"],
        "lastValidBlockHeight": result["last_valid_block_height"]
    }

@router.post("/check-payment")
async def check_payment(
    request: CheckPaymentRequest,
    claims: Dict[str, Any] = Security(get_current_user),
    services: Services = Depends(get_services)
):
    """Confirm a submitted payment and return the access key."""
    try:
        grant = await services.purchases.check_payment(
            claims, request.collectionId, request.signature
        )
    except DOMAIN_ERRORS as e:
        logger.warning(
            f"Payment check failed for collection {request.collectionId}, "
            f"signature {request.signature}: {e}"
        )
        raise api_error(e)
    return {"success": True, "accessKey": grant["access_key"]}

@router.get("/is-purchased/{collection_id}")
async def is_purchased(
    collection_id: int,
    claims: Dict[str, Any] = Security(get_current_user),
    services: Services = Depends(get_services)
):
    """Whether the current user has paid for a collection."""
    try:
        grant = await services.ledger.get_grant(UUID(claims["sub"]), collection_id)
    except DOMAIN_ERRORS as e:
        raise api_error(e)
    if not grant:
        return {"purchased": False}
    return {"purchased": True, "accessKey": grant["access_key"]}

@router.get("/my-purchases")
async def my_purchases(
    claims: Dict[str, Any] = Security(get_current_user),
    services: Services = Depends(get_services)
):
    """List the current user's purchases."""
    try:
        grants = await services.ledger.list_grants(UUID(claims["sub"]))
    except DOMAIN_ERRORS as e:
        raise api_error(e)
    return {
        "success": True,
        "purchases": [
            {
                "collectionId": grant["collection_id"],
                "title": grant["title"],
                "price": str(grant["price"]),
                "accessKey": grant["access_key"],
                "createdAt": grant["created_at"].isoformat() if grant["created_at"] else None
            }
            for grant in grants
        ]
    }

@router.get("/balance/{wallet_address}")
async def balance(wallet_address: str, services: Services = Depends(get_services)):
    """Get a wallet's SOL balance."""
    try:
        to_pubkey(wallet_address)
        result = await asyncio.to_thread(
            services.rpc.getBalance,
            wallet_address,
            {"commitment": services.settings['commitment']}
        )
    except DOMAIN_ERRORS as e:
        raise api_error(e)
    lamports = result["value"] if isinstance(result, dict) else result
    return {"success": True, "balance": str(lamports_to_sol(int(lamports)))}

# Export the router
__all__ = ['router']

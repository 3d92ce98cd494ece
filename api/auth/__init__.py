"""Authentication API endpoints."""

import time
from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Security, status
from pydantic import BaseModel

from auth import InvalidCredentialsError, RefreshNotDueError, get_current_user
from auth.signature import create_challenge
from ..context import Services, get_services, api_error, DOMAIN_ERRORS

router = APIRouter(
    prefix="/api",
    tags=["Authentication"]
)

class WalletLoginRequest(BaseModel):
    """Request model for wallet login."""
    walletAddress: str
    message: str
    signature: str

class CredentialsRequest(BaseModel):
    """Request model for email registration and login."""
    email: str
    password: str

class ConnectWalletRequest(BaseModel):
    """Request model for linking a wallet."""
    walletAddress: str

class LoginResponse(BaseModel):
    """Response model for login."""
    success: bool
    token: str
    expiresAt: Optional[str] = None

@router.get("/wallet-challenge")
async def wallet_challenge():
    """Issue a login message for the wallet to sign."""
    now = time.time()
    return {
        "success": True,
        "message": create_challenge(now),
        "issuedAt": int(now * 1000)
    }

@router.post("/wallet-login", response_model=LoginResponse)
async def wallet_login(request: WalletLoginRequest, services: Services = Depends(get_services)):
    """Verify a signed challenge and create a session, provisioning the user if new."""
    try:
        result = await services.auth.wallet_login(
            request.walletAddress,
            request.message,
            request.signature
        )
    except DOMAIN_ERRORS as e:
        raise api_error(e)
    return {"success": True, "token": result["token"], "expiresAt": result["expires_at"]}

@router.post("/register")
async def register(request: CredentialsRequest, services: Services = Depends(get_services)):
    """Register with email and password."""
    try:
        user = await services.users.register(request.email, request.password)
    except DOMAIN_ERRORS as e:
        raise api_error(e)
    return {
        "success": True,
        "user": {
            "id": str(user["id"]),
            "email": user["email"],
            "username": user["username"]
        }
    }

@router.post("/login", response_model=LoginResponse)
async def login(request: CredentialsRequest, services: Services = Depends(get_services)):
    """Log in with email and password."""
    try:
        result = await services.auth.email_login(request.email, request.password)
    except InvalidCredentialsError as e:
        raise api_error(e, status.HTTP_401_UNAUTHORIZED)
    except DOMAIN_ERRORS as e:
        raise api_error(e)
    return {"success": True, "token": result["token"], "expiresAt": result["expires_at"]}

@router.post("/connect-wallet")
async def connect_wallet(
    request: ConnectWalletRequest,
    claims: Dict[str, Any] = Security(get_current_user),
    services: Services = Depends(get_services)
):
    """Link a wallet to the current user and return a token carrying it."""
    try:
        user = await services.users.link_wallet(UUID(claims["sub"]), request.walletAddress)
    except DOMAIN_ERRORS as e:
        raise api_error(e)
    session = services.sessions.issue(user)
    return {"success": True, "wallet": user["wallet"], "token": session["token"]}

@router.api_route("/refresh-token", methods=["GET", "POST"])
async def refresh_token(
    claims: Dict[str, Any] = Security(get_current_user),
    services: Services = Depends(get_services)
):
    """Re-issue the current session once it is close to expiry."""
    try:
        session = services.sessions.refresh(claims)
    except RefreshNotDueError as e:
        raise api_error(e, status.HTTP_400_BAD_REQUEST)
    return {"success": True, "newToken": session["token"], "expiresAt": session["expires_at"]}

@router.get("/user-info")
async def user_info(
    claims: Dict[str, Any] = Security(get_current_user),
    services: Services = Depends(get_services)
):
    """Return the identity behind the current session."""
    return {
        "success": True,
        "id": claims["sub"],
        "username": claims.get("username"),
        "wallet": claims.get("wallet"),
        "email": claims.get("email"),
        "expiresIn": int(services.sessions.remaining(claims)),
        "refreshDue": services.sessions.needs_refresh(claims)
    }

# Export the router
__all__ = ['router']

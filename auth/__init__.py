"""Authentication module using wallet signatures and signed session tokens.

This module provides:
1. Stateless session tokens (HS256 JWT) carrying identity claims
2. Wallet login: signature check, challenge freshness, auto-provisioning
3. Email/password login
4. Middleware for protecting routes
"""

import logging
import secrets
import time
from datetime import datetime, timezone
from typing import Optional, Dict, Any, Callable
from fastapi import Request, HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError

from users import UserManager
from .exceptions import (
    AuthError, InvalidSignatureError, ChallengeExpiredError, InvalidChallengeError,
    InvalidCredentialsError, TokenMalformedError, TokenSignatureError, SessionExpiredError,
    RefreshNotDueError
)
from .signature import verify_signature, decode_signature, check_challenge_freshness

# Configure logging
logger = logging.getLogger(__name__)

# Constants
SESSION_EXPIRY_HOURS = 24
REFRESH_THRESHOLD_MINUTES = 5
CHALLENGE_MAX_AGE_SECONDS = 120
JWT_ALGORITHM = "HS256"

class SessionManager:
    """Issues and verifies signed session tokens.

    Tokens are stateless: validity is the signature check plus the expiry
    check. There is no revocation list.
    """

    def __init__(
        self,
        secret: Optional[str] = None,
        expiry_hours: int = SESSION_EXPIRY_HOURS,
        refresh_threshold_minutes: int = REFRESH_THRESHOLD_MINUTES,
        clock: Optional[Callable[[], float]] = None
    ):
        """Initialize session manager.

        Args:
            secret: HMAC secret. A random one is generated if not provided.
            expiry_hours: Lifetime of issued tokens
            refresh_threshold_minutes: Remaining validity below which a refresh is due
            clock: Returns the current unix time; defaults to time.time
        """
        if not secret:
            logger.warning("No jwt_secret configured, generating a random one; sessions will not survive restarts")
            secret = secrets.token_urlsafe(32)
        self._secret = secret
        self.expiry_seconds = expiry_hours * 3600
        self.refresh_threshold_seconds = refresh_threshold_minutes * 60
        self._clock = clock or time.time

    def issue(self, user: Dict[str, Any]) -> Dict[str, Any]:
        """Issue a session token for a user record.

        Args:
            user: Identity with ``id``, ``username`` and optional ``wallet``/``email``

        Returns:
            Dict containing:
                - token: Signed session token
                - expires_at: Expiry as ISO-8601 UTC timestamp
        """
        now = int(self._clock())
        expires = now + self.expiry_seconds
        claims = {
            'sub': str(user['id']),
            'username': user['username'],
            'iat': now,
            'exp': expires
        }
        if user.get('wallet'):
            claims['wallet'] = user['wallet']
        if user.get('email'):
            claims['email'] = user['email']

        token = jwt.encode(claims, self._secret, algorithm=JWT_ALGORITHM)
        return {
            'token': token,
            'expires_at': datetime.fromtimestamp(expires, tz=timezone.utc).isoformat()
        }

    def verify(self, token: str) -> Dict[str, Any]:
        """Verify a session token and return its claims.

        Raises:
            TokenMalformedError: If the token cannot be parsed
            TokenSignatureError: If the signature does not match
            SessionExpiredError: If the token has expired
        """
        try:
            jwt.get_unverified_claims(token)
        except (JWTError, AttributeError, TypeError) as e:
            raise TokenMalformedError("Session token is malformed") from e

        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[JWT_ALGORITHM],
                options={'verify_exp': False}
            )
        except JWTError as e:
            raise TokenSignatureError("Session token signature is invalid") from e

        if not claims.get('sub') or not isinstance(claims.get('exp'), (int, float)):
            raise TokenMalformedError("Session token is missing required claims")

        if claims['exp'] <= self._clock():
            raise SessionExpiredError("Session has expired")

        return claims

    def remaining(self, claims: Dict[str, Any]) -> float:
        """Seconds of validity left for verified claims."""
        return claims['exp'] - self._clock()

    def needs_refresh(self, claims: Dict[str, Any]) -> bool:
        """Whether the client should request a fresh token."""
        return self.remaining(claims) < self.refresh_threshold_seconds

    def refresh(self, claims: Dict[str, Any]) -> Dict[str, Any]:
        """Re-issue a token with a fresh expiry for verified claims.

        Raises:
            RefreshNotDueError: If more than the refresh threshold remains
        """
        if not self.needs_refresh(claims):
            raise RefreshNotDueError(
                f"Token is still valid for {int(self.remaining(claims))} seconds"
            )
        return self.issue({
            'id': claims['sub'],
            'username': claims.get('username'),
            'wallet': claims.get('wallet'),
            'email': claims.get('email')
        })

class AuthManager:
    """Runs the login flows and hands out sessions."""

    def __init__(
        self,
        users: UserManager,
        sessions: SessionManager,
        challenge_max_age: int = CHALLENGE_MAX_AGE_SECONDS
    ):
        self.users = users
        self.sessions = sessions
        self.challenge_max_age = challenge_max_age

    async def wallet_login(self, wallet_address: str, message: str, signature_b64: str) -> Dict[str, Any]:
        """Verify a signed login challenge and create a session.

        Args:
            wallet_address: Base58 address that signed
            message: The login challenge text that was signed (UTF-8)
            signature_b64: Base64 detached signature

        Returns:
            Dict with ``token``, ``expires_at`` and ``created`` (True when
            the identity was provisioned by this login)

        Raises:
            InvalidAddressError: If the wallet address is invalid
            InvalidChallengeError: If the message is not a login challenge
            ChallengeExpiredError: If the challenge is stale
            InvalidSignatureError: If signature verification fails
        """
        signature = decode_signature(signature_b64)
        if not verify_signature(wallet_address, message.encode('utf-8'), signature):
            raise InvalidSignatureError("Signature verification failed")

        check_challenge_freshness(message, self.challenge_max_age)

        user, created = await self.users.get_or_create_wallet_user(wallet_address)
        session = self.sessions.issue(user)
        logger.info(f"Wallet login for user {user['id']}{' (new)' if created else ''}")
        return {**session, 'created': created}

    async def email_login(self, email: str, password: str) -> Dict[str, Any]:
        """Check email and password and create a session.

        Raises:
            InvalidCredentialsError: If the email is unknown or the password is wrong
        """
        user = await self.users.authenticate(email, password)
        if not user:
            raise InvalidCredentialsError("Invalid email or password")
        return self.sessions.issue(user)

# FastAPI security scheme
auth_scheme = HTTPBearer(
    auto_error=True,  # Reject automatically if token is missing
    description="JWT Bearer token required"
)

async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(auth_scheme)
) -> Dict[str, Any]:
    """FastAPI dependency for getting the authenticated identity claims.

    Args:
        request: The FastAPI request
        credentials: Bearer token credentials

    Returns:
        The verified session claims

    Raises:
        HTTPException: If authentication fails
    """
    sessions: SessionManager = request.app.state.services.sessions
    try:
        return sessions.verify(credentials.credentials)
    except AuthError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={'reason': e.reason, 'message': str(e)}
        )

# Export public interface
__all__ = [
    'SessionManager',
    'AuthManager',
    'get_current_user',
    'AuthError',
    'InvalidSignatureError',
    'ChallengeExpiredError',
    'InvalidChallengeError',
    'InvalidCredentialsError',
    'TokenMalformedError',
    'TokenSignatureError',
    'SessionExpiredError',
    'RefreshNotDueError'
]

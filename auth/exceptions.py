"""Authentication exception types."""

class AuthError(Exception):
    """Base exception for authentication errors."""
    reason = 'unauthorized'

class InvalidSignatureError(AuthError):
    """Raised when message signature verification fails."""
    reason = 'bad_signature'

class ChallengeExpiredError(AuthError):
    """Raised when a signed login challenge is too old or not yet valid."""
    reason = 'challenge_expired'

class InvalidChallengeError(AuthError):
    """Raised when a login message does not carry a readable timestamp nonce."""
    reason = 'invalid_challenge'

class InvalidCredentialsError(AuthError):
    """Raised when email/password login fails."""
    reason = 'invalid_credentials'

class TokenMalformedError(AuthError):
    """Raised when a session token cannot be parsed."""
    reason = 'malformed'

class TokenSignatureError(AuthError):
    """Raised when a session token was not signed with our secret."""
    reason = 'bad_signature'

class SessionExpiredError(AuthError):
    """Raised when a session has expired."""
    reason = 'expired'

class RefreshNotDueError(AuthError):
    """Raised when a token is refreshed while it still has ample validity."""
    reason = 'refresh_not_due'

__all__ = [
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

"""Database exception types."""

class DatabaseError(Exception):
    """Base exception for database errors."""
    reason = 'storage_error'

class DatabaseSchemaError(DatabaseError):
    """Raised when schema loading or migration fails."""
    pass

class StorageUnavailableError(DatabaseError):
    """Raised when the storage backend cannot be reached or a query fails.

    Callers may retry; no partial state is written when this is raised.
    """
    reason = 'storage_unavailable'

__all__ = ['DatabaseError', 'DatabaseSchemaError', 'StorageUnavailableError']

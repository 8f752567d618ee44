"""Database-specific exceptions for the file browser store."""


class DatabaseError(Exception):
    """Base exception for database operations."""

    pass


class RecordNotFoundError(DatabaseError):
    """Raised when a required record is not found."""

    pass


class DuplicateRecordError(DatabaseError):
    """Raised when attempting to create a duplicate record."""

    pass


class ConnectionError(DatabaseError):
    """Raised when database connection fails."""

    pass

"""Custom exceptions for the cryptofolio domain.

The API layer maps these onto HTTP responses; the scheduler treats anything
that escapes a tick as a tick failure.
"""


class CryptofolioError(Exception):
    """Base exception for all cryptofolio errors."""

    pass


# ============================================================================
# Domain errors
# ============================================================================


class DomainValidationError(CryptofolioError):
    """Raised when an operation is rejected by a domain rule.

    Examples:
    - Creating an allocation whose (key, date) already exists
    - Creating an allocation for a key that is not configured
    """

    def __init__(self, message: str, conflict: bool = False):
        super().__init__(message)
        self.conflict = conflict


class NotFoundError(CryptofolioError):
    """Raised when a requested record does not exist."""

    def __init__(self, message: str, resource: str | None = None):
        super().__init__(message)
        self.resource = resource


class TickInProgressError(CryptofolioError):
    """Raised when a manual tick is requested while another tick is running."""

    pass


# ============================================================================
# Persistence errors
# ============================================================================


class TransientConflictError(CryptofolioError):
    """A write conflict that is safe to retry (serialization failure, lock contention)."""

    pass


class PersistenceConflictError(CryptofolioError):
    """Raised when a unit of work keeps conflicting after every retry attempt."""

    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts


# ============================================================================
# Auth errors
# ============================================================================


class AuthenticationError(CryptofolioError):
    """Missing, expired or invalid credentials."""

    pass


class AuthorizationError(CryptofolioError):
    """Authenticated user lacks the required role."""

    pass

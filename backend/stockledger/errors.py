# Overview: Error taxonomy shared by services, storage and routes.

"""
Each error kind maps to one HTTP status in the routes:

- ValidationError       -> 400 (missing/malformed input)
- AuthenticationError   -> 401 (no valid session)
- PermissionDeniedError -> 403 (capability check failed)
- NotFoundError         -> 404 (referenced entity absent)
- ConflictError         -> 409 (duplicate name, protected account)
- PersistenceError      -> 500 (underlying store failure)
"""


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate product name)."""


class NotFoundError(LookupError):
    """Referenced entity does not exist."""


class AuthenticationError(Exception):
    """Raised when credentials or a session token are not valid."""


class PermissionDeniedError(Exception):
    """Raised when an account lacks the capability an operation requires."""

    def __init__(self, message: str, operation: str | None = None):
        super().__init__(message)
        self.operation = operation


class PersistenceError(Exception):
    """Raised when the store fails; the unit of work has been rolled back."""

"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.
Every error carries an ErrorKind from a closed set, which the API layer
maps to an HTTP status and a stable "error" field in the response body.
"""

from enum import Enum
from uuid import UUID


class ErrorKind(str, Enum):
    """Closed set of error categories surfaced to callers."""

    VALIDATION = "validation_error"
    AUTHENTICATION = "authentication_error"
    AUTHORIZATION = "authorization_error"
    NOT_FOUND = "not_found"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    OPERATION = "operation_error"
    INTERNAL = "internal_error"


class DevClipError(Exception):
    """Base exception for all DevClip errors."""

    kind: ErrorKind = ErrorKind.INTERNAL
    status_code: int = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    @property
    def is_client_error(self) -> bool:
        """True for 4xx-class errors (never retried, never logged as server faults)."""
        return 400 <= self.status_code < 500

    def details(self) -> dict[str, object]:
        """Extra response fields beyond error kind and message."""
        return {}


class ValidationError(DevClipError):
    """Raised when a request body or operation name is malformed."""

    kind = ErrorKind.VALIDATION
    status_code = 400


class AuthenticationError(DevClipError):
    """Raised when authentication fails (missing, malformed, unknown or revoked key)."""

    kind = ErrorKind.AUTHENTICATION
    status_code = 401


class AccountNotFoundError(AuthenticationError):
    """Raised when a credential resolves to an account that no longer exists."""

    def __init__(self, account_id: UUID) -> None:
        self.account_id = account_id
        super().__init__("User associated with API key not found")


class AuthorizationError(DevClipError):
    """Raised when the caller's plan or role does not permit the action."""

    kind = ErrorKind.AUTHORIZATION
    status_code = 403


class ResourceNotFoundError(DevClipError):
    """Raised when an owned resource (API key, history item, account) is missing."""

    kind = ErrorKind.NOT_FOUND
    status_code = 404

    def __init__(self, resource: str, resource_id: UUID) -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} not found: {resource_id}")


class InsufficientCreditsError(DevClipError):
    """Raised when account has insufficient balance for an operation."""

    kind = ErrorKind.INSUFFICIENT_BALANCE
    status_code = 402

    def __init__(self, required: int, available: int) -> None:
        self.required = required
        self.available = available
        super().__init__(f"Insufficient credits. Required: {required}, Available: {available}")

    def details(self) -> dict[str, object]:
        return {"required": self.required, "available": self.available}


class OperationError(DevClipError):
    """Raised when an operation handler fails after authorization succeeded."""

    kind = ErrorKind.OPERATION
    status_code = 500

    def __init__(self, operation: str, message: str) -> None:
        self.operation = operation
        super().__init__(message)

    def details(self) -> dict[str, object]:
        return {"operation": self.operation}


class FormattingError(OperationError):
    """Raised when input cannot be parsed by the requested formatter."""

    status_code = 400


class ProviderError(OperationError):
    """Raised when the external AI provider call fails."""

    status_code = 502


class InternalError(DevClipError):
    """Raised for unexpected server-side failures."""

    kind = ErrorKind.INTERNAL
    status_code = 500

"""
Notekeeper Backend - Custom Exception Hierarchy
================================================

What:  Defines application-specific exceptions for different error scenarios.
How:   Each exception class carries a message and optional context dict.
       Global exception handlers (registered in main.py) catch these and
       return structured responses with correct HTTP status codes.
Who:   Raised by the storage clients, the note store, the access gate and
       the image service; caught by global handlers.

Exception Hierarchy:
    NotekeeperError (base)
    ├── ValidationError          → 400 Bad Request (client can fix)
    ├── InvalidCursorError       → 400 Bad Request (page token unusable)
    ├── AuthenticationError      → 401 / redirect to sign-in
    ├── NotFoundError            → 404 Not Found (missing OR not yours)
    ├── RateLimitExceededError   → 429 Too Many Requests
    ├── FileStorageError         → 500 Internal Server Error
    └── StorageUnavailableError  → 503 Service Unavailable

There is no "forbidden" kind: the access gate reports a note
owned by someone else as NotFoundError.
"""

from typing import Any, Dict, Optional


class NotekeeperError(Exception):
    """
    Base exception for all Notekeeper application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(NotekeeperError):
    """
    Raised when client input fails validation.

    What:    Indicates the client sent invalid data that can be corrected.
    When:    Bad page size, unsupported image type, image too large.
    HTTP:    400 Bad Request

    Callers must be able to tell this apart from StorageUnavailableError:
    one is the client's fault, the other is ours.
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class InvalidCursorError(NotekeeperError):
    """
    Raised when a pagination token cannot be interpreted.

    What:    The token is malformed, was tampered with, or was issued for a
             different query.
    HTTP:    400 Bad Request

    The listing never silently restarts from the first page on a bad token.
    """

    def __init__(
        self,
        message: str = "The page token is invalid or has expired",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class AuthenticationError(NotekeeperError):
    """
    Raised when an owner-scoped operation runs without an identity.

    HTTP:    401 for JSON callers; the HTML pages redirect to /signin instead.
    """

    def __init__(
        self,
        message: str = "You must be signed in to do that",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(NotekeeperError):
    """
    Raised when a requested resource does not exist.

    What:    The identifier does not resolve, or it resolves to a note the
             caller does not own.
    HTTP:    404 Not Found

    The message never says which of the two happened.
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class FileStorageError(NotekeeperError):
    """
    Raised when image file operations fail.

    What:    Could not read or write an uploaded image on the storage volume.
    When:    Disk full, permission denied, directory not writable, I/O error.
    HTTP:    500 Internal Server Error
    """

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class StorageUnavailableError(NotekeeperError):
    """
    Raised when the storage engine call fails for a transport or server reason.

    What:    Connection lost, engine error, constraint failure, timeout.
    HTTP:    503 Service Unavailable

    Context always names the operation and, where there is one, the
    identifier. The message returned to the client stays generic.
    """

    def __init__(
        self,
        operation: str = "unknown",
        message: str = "The note storage service is temporarily unavailable. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["operation"] = operation
        super().__init__(message=message, context=ctx)
        self.operation = operation


class RateLimitExceededError(NotekeeperError):
    """
    Raised when a client exceeds the per-IP request rate limit.

    HTTP:    429 Too Many Requests
    """

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after

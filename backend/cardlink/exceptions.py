"""
CardLink Backend — Custom Exception Hierarchy
===============================================

What:  Application-specific exceptions for the client lifecycle and its
       external collaborators.
Why:   Callers must be able to tell "not found" from "found but preconditions
       unmet", and "render slot busy" from a generic server failure.
How:   Each exception class carries a message and optional context dict.
       Global exception handlers (registered in main.py) translate them into
       the standard response envelope with the right HTTP status code.
Who:   Raised by services; caught by global handlers.

Exception Hierarchy:
    CardLinkError (base)
    ├── ValidationError          → 400 Bad Request (client can fix)
    │   └── InvalidTransitionError → 400 (status change not allowed)
    ├── NotFoundError            → 404 Not Found
    ├── RenderBusyError          → 503 Service Unavailable (retry later)
    ├── MediaUploadError         → 502 Bad Gateway (object storage rejected upload)
    ├── MediaFetchError          → 502 Bad Gateway (fetch retries exhausted)
    ├── PdfRenderError           → 500 Internal Server Error
    └── DatabaseError            → 500 Internal Server Error

Email and audit-log failures are deliberately absent: those side effects
never raise (see EmailService and AuditService).
"""

from typing import Any, Dict, Optional


class CardLinkError(Exception):
    """
    Base exception for all CardLink application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client
                  unless a handler explicitly chooses to)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(CardLinkError):
    """
    Raised when client input or a lifecycle precondition fails.

    When:    Missing required field, no contact channel, invalid status value,
             notes too short, unsupported photo type.
    HTTP:    400 Bad Request
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


class InvalidTransitionError(ValidationError):
    """
    Raised when a status change is not in the transition table.

    Example: any transition out of 'deleted', or 'active' → 'rejected'.
    """

    def __init__(self, current: str, requested: str):
        super().__init__(
            message=f"Cannot change status from '{current}' to '{requested}'.",
            field="status",
            context={"current_status": current, "requested_status": requested},
        )
        self.current = current
        self.requested = requested


class NotFoundError(CardLinkError):
    """
    Raised when an id or slug does not resolve to a live record.

    HTTP:    404 Not Found
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


class RenderBusyError(CardLinkError):
    """
    Raised when the PDF render gate does not admit a caller in time.

    What:    Another PDF render or stream holds the single slot.
    HTTP:    503 Service Unavailable with Retry-After
    Why 503: The condition is transient and retryable; it must never be
             reported as a generic 500.
    """

    def __init__(
        self,
        waited_ms: int = 0,
        retry_after: int = 5,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["waited_ms"] = waited_ms
        ctx["retry_after"] = retry_after
        super().__init__(
            message="PDF service is busy. Please retry in a few seconds.",
            context=ctx,
        )
        self.retry_after = retry_after


class MediaUploadError(CardLinkError):
    """
    Raised when the object store rejects or fails an upload.

    Recovery: the calling lifecycle operation aborts without mutating state.
    """

    def __init__(
        self,
        message: str = "Failed to upload file to storage.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class MediaFetchError(CardLinkError):
    """Raised when a stored artifact cannot be fetched after all retries."""

    def __init__(
        self,
        message: str = "Failed to fetch stored file.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class PdfRenderError(CardLinkError):
    """Raised when a PDF cannot be rendered or uploaded, even after regeneration."""

    def __init__(
        self,
        message: str = "Could not generate the client PDF. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(CardLinkError):
    """
    Raised when database operations fail unexpectedly.

    Security Note:
        The message returned to the client is always generic; constraint
        names and SQL stay in the server log.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)

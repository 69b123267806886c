"""
Error taxonomy for the newsletter core.

Every error carries a stable ``code`` so an outer layer can map it
onto a transport status without matching on messages.

- ValidationError: malformed caller input
- NotFoundError: referenced entity absent
- ForbiddenError: caller not allowed to act on the resource
- ConflictError: request conflicts with current state
- InternalError: store or transport failure not caused by the caller
"""

from __future__ import annotations


class NewsletterCoreError(Exception):
    """Base error for the newsletter core."""

    code = "ERROR"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(NewsletterCoreError):
    """Malformed input."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None, code: str | None = None) -> None:
        self.field = field
        if code:
            self.code = code
        super().__init__(message)


class NotFoundError(NewsletterCoreError):
    code = "NOT_FOUND"

    def __init__(self, resource: str, identifier: object) -> None:
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} '{identifier}' not found")


class ForbiddenError(NewsletterCoreError):
    code = "FORBIDDEN"


class ConflictError(NewsletterCoreError):
    code = "CONFLICT"


class InternalError(NewsletterCoreError):
    """Store or transport failure; callers may retry."""

    code = "INTERNAL"

"""
Named authorization outcomes.

Each request-time failure has its own exception type so the HTTP layer can map
it to a status code without inspecting message text.
"""
from typing import Iterable


class AuthorizationError(Exception):
    """Base class for request-time authorization outcomes."""

    status_code: int = 500
    message: str = "Permission check failed"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class Unauthenticated(AuthorizationError):
    """No caller identity on the request."""

    status_code = 401
    message = "Authentication required"


class InvalidScope(AuthorizationError):
    """A project-scoped operation has a missing or malformed project id."""

    status_code = 400
    message = "Project ID is required for this operation"


class ResolutionFailure(AuthorizationError):
    """Storage failed while resolving permissions; nothing may be granted."""

    status_code = 500
    message = "Permission check failed"


class Forbidden(AuthorizationError):
    """
    Resolution succeeded but some required codes are not granted.

    Carries only the required and missing codes, never the caller's grants.
    """

    status_code = 403
    message = "Insufficient permissions"

    def __init__(self, missing: Iterable[str], required: Iterable[str]):
        super().__init__()
        self.missing = tuple(missing)
        self.required = tuple(required)


class SeedingFailure(Exception):
    """Unrecoverable storage error while seeding the catalog."""

"""Domain errors for reading status sync.

Every error carries the HTTP status it maps to so the API layer can turn it
into an ``{"error": <message>}`` response without a lookup table.
"""


class ReadingSyncError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(ReadingSyncError):
    """A required field is missing or malformed. Nothing was persisted."""

    status_code = 400


class AuthError(ReadingSyncError):
    """Missing or incorrect bearer token."""

    status_code = 401


class NotFoundError(ReadingSyncError):
    """Query for an entity that does not exist."""

    status_code = 404


class InternalError(ReadingSyncError):
    """Unexpected failure while handling a request."""

    status_code = 500

"""
Error taxonomy shared by the services, the document stores and the HTTP layer.

Each error carries a stable machine-readable `code`. Routes translate them to HTTP
responses through the handlers registered in `main.py`; permission failures and
missing resources use different codes so clients can tell "request access" apart
from "this no longer exists".
"""

from typing import Optional


class TastingNotesError(Exception):
    """Base class for all domain errors."""

    code = "error"
    status_code = 500

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def __str__(self) -> str:
        return self.message


class NotFoundError(TastingNotesError):
    """The referenced principal, note, request or notification does not exist."""

    code = "not_found"
    status_code = 404


class PermissionDeniedError(TastingNotesError):
    """The caller is not allowed to see or act on the target."""

    code = "permission_denied"
    status_code = 403


class InvalidStateError(TastingNotesError):
    """The target exists but is not in a state that allows the operation."""

    code = "invalid_state"
    status_code = 409


class RequestAlreadyPendingError(InvalidStateError):
    code = "request_already_pending"


class InvalidRequestStateError(InvalidStateError):
    code = "invalid_request_state"


class NotFollowingError(InvalidStateError):
    code = "not_following"


class AlreadyFollowingError(InvalidStateError):
    code = "already_following"


class ValidationError(TastingNotesError):
    """Malformed filter, cursor or payload."""

    code = "validation_error"
    status_code = 422


class UnavailableError(TastingNotesError):
    """The document store is unreachable or cannot honour the request."""

    code = "unavailable"
    status_code = 503

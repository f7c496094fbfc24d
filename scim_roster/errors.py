"""Error taxonomy for roster persistence and reconciliation.

Every exception raised by this package derives from ``RosterError`` and
carries an ``ErrorKind`` so callers can branch on ``err.kind`` rather than
on exception identity or message text.  Only ``NOT_FOUND`` during a
reconciliation pass is turned into a state change (the name is pruned);
every other kind propagates to the caller unmodified.
"""

import enum
from typing import Optional


class ErrorKind(str, enum.Enum):
    """Closed set of failure categories."""

    NOT_FOUND = "not_found"
    TRANSIENT_IO = "transient_io"
    CORRUPT_STATE = "corrupt_state"
    VALIDATION = "validation"
    DOWNSTREAM = "downstream"


class RosterError(Exception):
    """Base exception for all scim-roster errors.

    Args:
        message:      Human-readable description.
        roster_kind:  The entity kind (``Kind.USER`` / ``Kind.GROUP``) the
                      error concerns, when known.
        location:     File path, object key or URL the error relates to.
    """

    kind: ErrorKind = ErrorKind.DOWNSTREAM

    def __init__(self, message: str, roster_kind=None, location: str = ""):
        super().__init__(message)
        self.message = message
        self.roster_kind = roster_kind
        self.location = location

    def __str__(self):
        loc = f" ({self.location})" if self.location else ""
        return f"{self.message}{loc}"


class NotFoundError(RosterError):
    """The named entity does not exist downstream."""

    kind = ErrorKind.NOT_FOUND


class TransientIOError(RosterError):
    """A backend or the downstream service could not be reached."""

    kind = ErrorKind.TRANSIENT_IO


class CorruptStateError(RosterError):
    """A snapshot exists but cannot be decoded."""

    kind = ErrorKind.CORRUPT_STATE


class ValidationError(RosterError):
    """Input rejected before any I/O took place."""

    kind = ErrorKind.VALIDATION


class DownstreamError(RosterError):
    """Downstream answered with a non-retryable error response."""

    kind = ErrorKind.DOWNSTREAM

    def __init__(self, message: str, roster_kind=None, location: str = "",
                 status_code: Optional[int] = None):
        super().__init__(message, roster_kind=roster_kind, location=location)
        self.status_code = status_code

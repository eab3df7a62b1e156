"""Error taxonomy shared by the coordinator service and the round drivers.

Each coordinator error carries a stable ``code`` that travels over the wire,
so the client can raise the same exception class the service raised.
"""

from typing import Dict, Optional, Type


class RelayError(Exception):
    """Base error for coordinator and driver operations."""

    code: str = "RelayError"
    status_code: int = 500
    retryable: bool = False

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.code)


class InvalidParameters(RelayError):
    """Raised when threshold / party count are out of range."""

    code = "InvalidParameters"
    status_code = 400


class SessionNotFound(RelayError):
    """Raised when a session ID is unknown (or already finalized)."""

    code = "SessionNotFound"
    status_code = 404


class SessionFull(RelayError):
    """Raised when every party slot of a session is taken."""

    code = "SessionFull"
    status_code = 409


class SessionExists(RelayError):
    """Raised when a signing session is initiated with a used ID."""

    code = "SessionExists"
    status_code = 409


class UnknownParty(RelayError):
    """Raised when a sender, recipient or declared party is not in the session."""

    code = "UnknownParty"
    status_code = 400


class RoundIncomplete(RelayError):
    """Raised when a keygen round has not collected its expected messages."""

    code = "RoundIncomplete"
    status_code = 400
    retryable = True


class ConflictingSubmission(RelayError):
    """Raised when a party resubmits a round with a different batch."""

    code = "ConflictingSubmission"
    status_code = 409


class NotYetStaged(RelayError):
    """Raised when the signing payload has not been staged."""

    code = "NotYetStaged"
    status_code = 404


class DecodeError(RelayError):
    """Raised on malformed base64 or JSON."""

    code = "DecodeError"
    status_code = 400


class SignatureInvalid(RelayError):
    """Raised when the produced signature does not verify."""

    code = "SignatureInvalid"


class DriverTimeout(RelayError):
    """Raised when a driver wait exceeds its deadline."""

    code = "Timeout"


class DriverCancelled(RelayError):
    """Raised when a driver's cancel token fires."""

    code = "Cancelled"


class ProtocolViolation(RelayError):
    """Raised when round function output breaks the addressing rules."""

    code = "ProtocolViolation"


_WIRE_ERRORS: Dict[str, Type[RelayError]] = {
    cls.code: cls
    for cls in (
        InvalidParameters,
        SessionNotFound,
        SessionFull,
        SessionExists,
        UnknownParty,
        ConflictingSubmission,
        RoundIncomplete,
        NotYetStaged,
        DecodeError,
    )
}


def error_from_code(code: Optional[str], message: str) -> RelayError:
    """Rebuild the exception a coordinator response describes."""
    cls = _WIRE_ERRORS.get(code or "", RelayError)
    return cls(message)

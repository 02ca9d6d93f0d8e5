"""
Domain errors. Routers let these propagate; main.py turns them into
JSON responses of the form {"error": kind, "detail": message}.
"""


class FocusError(Exception):
    kind = "Error"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidArgument(FocusError):
    """Malformed or out-of-range input."""
    kind = "InvalidArgument"
    status_code = 400


class NotFound(FocusError):
    """Session or task missing, or not visible to the caller."""
    kind = "NotFound"
    status_code = 404


class Conflict(FocusError):
    """Another active session, a mode already enabled, or a lost concurrent update."""
    kind = "Conflict"
    status_code = 409


class PreconditionFailed(FocusError):
    """The operation needs a prior state, e.g. timer control without focus mode."""
    kind = "Precondition"
    status_code = 412


class InvalidState(FocusError):
    """The session is terminal or already in the requested state."""
    kind = "InvalidState"
    status_code = 409


class Forbidden(FocusError):
    """The caller can see the record but may not perform this change on it."""
    kind = "Forbidden"
    status_code = 403

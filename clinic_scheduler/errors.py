"""Error taxonomy surfaced by the scheduling engine.

Each error carries the HTTP-analogous status the API layer answers with.
"""


class SchedulingError(Exception):
    status_code = 500

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class ValidationError(SchedulingError):
    """Missing or malformed input; the caller must correct it and resend."""
    status_code = 400


class NotFoundError(SchedulingError):
    """Referenced doctor or appointment does not exist."""
    status_code = 404


class ConflictError(SchedulingError):
    """The requested slot is already held by an active appointment."""
    status_code = 409


class StoreError(SchedulingError):
    """Persistence or upstream lookup failed."""
    status_code = 500

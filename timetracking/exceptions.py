# timetracking/exceptions.py
class TimeTrackingError(Exception):
    """
    Base class for errors raised by the time-tracking core.
      - message: the detail, shown as the response explanation
      - summary: short headline, shown as the response message
    """

    default_message = "time tracking error"
    default_summary = "Internal server error"

    def __init__(self, message: str | None = None, summary: str | None = None):
        self.message = message or self.default_message
        self.summary = summary or self.default_summary
        super().__init__(self.message)


class ValidationError(TimeTrackingError):
    """Missing or invalid input, detected before the event log is touched."""

    default_message = "invalid input"
    default_summary = "Missing required parameters"


class StoreError(TimeTrackingError):
    """The event log failed (transport, capacity, backend error)."""

    default_message = "event log unavailable"


class InternalError(TimeTrackingError):
    """Unexpected failure while setting up or running an operation."""

    default_message = "internal error"

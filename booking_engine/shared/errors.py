"""
Booking engine error taxonomy.

Every recoverable error names the wizard step (when there is one) and a
machine-readable reason so the UI can show step-local messages. Routers never
build HTTP errors for these; main.py maps them to responses.
"""

from typing import Any, Optional


class BookingEngineError(Exception):
    """Base class for all domain errors"""

    status_code = 400

    def __init__(
        self,
        message: str,
        *,
        step: Optional[str] = None,
        reason: Optional[str] = None,
        field: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.step = step
        self.reason = reason
        self.field = field
        self.context: dict[str, Any] = {}

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"detail": self.message}
        if self.step:
            payload["step"] = self.step
        if self.reason:
            payload["reason"] = self.reason
        if self.field:
            payload["field"] = self.field
        payload.update(self.context)
        return payload


class ValidationError(BookingEngineError):
    """A wizard gate or lifecycle precondition failed; stay on the current step"""

    status_code = 422


class ConflictError(BookingEngineError):
    """The requested interval overlaps appointments that still hold the provider's time"""

    status_code = 409

    def __init__(
        self,
        message: str = "This time was just booked by someone else",
        *,
        overlapping: Optional[list] = None,
        step: Optional[str] = "time",
        reason: Optional[str] = "already_booked",
    ):
        super().__init__(message, step=step, reason=reason)
        # Read while the rows are still loaded; the transaction is rolled back afterwards
        self.overlapping = [
            {
                "id": appt.id,
                "start": appt.start_time.isoformat(),
                "end": appt.end_time.isoformat(),
                "status": appt.status,
            }
            for appt in overlapping or []
        ]

    @property
    def overlapping_ids(self) -> list[int]:
        return [item["id"] for item in self.overlapping]

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["overlapping"] = list(self.overlapping)
        return payload


class ClosedPeriodError(ValidationError):
    """The provider is closed on the requested date"""

    def __init__(self, message: str, *, reason: Optional[str] = None):
        super().__init__(message, step="time", reason=reason or "closed")


class RepositoryError(BookingEngineError):
    """The store was unavailable or timed out. Safe for the caller to retry."""

    status_code = 503
    retryable = True

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["retryable"] = self.retryable
        return payload


class NotFoundError(BookingEngineError):
    status_code = 404


class PermissionDeniedError(BookingEngineError):
    status_code = 403


class InvariantViolation(BookingEngineError, ValueError):
    """Programmer error: a value that must never be constructed (end <= start, negative price...)"""

    status_code = 400

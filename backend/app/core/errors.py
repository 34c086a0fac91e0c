"""Error taxonomy shared by the scheduling engine and the HTTP layer."""

from fastapi import status


class BookingError(Exception):
    """Base class for every error the engine raises on purpose."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "booking_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(BookingError):
    """Malformed or out-of-range input."""

    status_code = 422
    code = "validation_error"


class SchedulingConflict(BookingError):
    """The requested table/time overlaps a committed reservation."""

    status_code = status.HTTP_409_CONFLICT
    code = "scheduling_conflict"


class NoTableAvailable(SchedulingConflict):
    """No active table fits the party at the requested time."""

    code = "no_table_available"


class PolicyViolation(BookingError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "policy_violation"


class TooLateToCancel(PolicyViolation):
    code = "too_late_to_cancel"


class NotFound(BookingError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class Forbidden(BookingError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"


class InvalidTransition(BookingError):
    status_code = status.HTTP_409_CONFLICT
    code = "invalid_transition"


class TransactionFailure(BookingError):
    """Transient database or lock failure; safe to retry."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "transaction_failure"

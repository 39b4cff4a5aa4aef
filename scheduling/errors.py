"""
Error taxonomy for the scheduling core.

Every error is recoverable and user-facing: it carries the HTTP status and a
stable ``code`` the API layer returns alongside the message.
"""


class SchedulingError(Exception):
    status_code = 400
    code = "scheduling_error"

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict:
        out = {"error": self.message, "code": self.code}
        if self.context:
            out["context"] = self.context
        return out


class NotFoundError(SchedulingError):
    status_code = 404
    code = "not_found"


class SlotNotFoundError(NotFoundError):
    code = "slot_not_found"


class BookingNotFoundError(NotFoundError):
    code = "booking_not_found"


class RescheduleRequestNotFoundError(NotFoundError):
    code = "reschedule_request_not_found"


class SlotUnavailableError(SchedulingError):
    """The slot could not be claimed (taken, blocked, started, or lost a race)."""
    status_code = 409
    code = "slot_unavailable"


class SlotNotAvailableError(SchedulingError):
    """A slot admin action needs the slot to be available."""
    status_code = 409
    code = "slot_not_available"


class SlotHasBookingError(SchedulingError):
    status_code = 409
    code = "slot_has_booking"


class DuplicateSlotError(SchedulingError):
    status_code = 409
    code = "duplicate_slot"


class InvalidTransitionError(SchedulingError):
    status_code = 409
    code = "invalid_transition"


class BookingNotReschedulableError(SchedulingError):
    status_code = 409
    code = "booking_not_reschedulable"


class InvalidTemplateError(SchedulingError):
    code = "invalid_template"


class InvalidRangeError(SchedulingError):
    code = "invalid_range"


class InvalidPolicyError(SchedulingError):
    code = "invalid_policy"

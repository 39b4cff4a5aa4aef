from .errors import (
    SchedulingError,
    NotFoundError,
    SlotNotFoundError,
    BookingNotFoundError,
    RescheduleRequestNotFoundError,
    SlotUnavailableError,
    SlotNotAvailableError,
    SlotHasBookingError,
    DuplicateSlotError,
    InvalidTransitionError,
    BookingNotReschedulableError,
    InvalidTemplateError,
    InvalidRangeError,
    InvalidPolicyError,
)
from .policy import BookingPolicy, PolicyDecision, can_cancel, can_reschedule

from models.booking import BookingStatus
from scheduling.errors import InvalidTransitionError

S = BookingStatus

# Allowed Booking.status edges. Anything not listed is illegal.
TRANSITIONS = {
    S.PENDING: {S.CONFIRMED, S.CANCELLED},
    S.CONFIRMED: {S.IN_PROGRESS, S.CANCELLED, S.RESCHEDULE_REQUESTED},
    S.IN_PROGRESS: {S.COMPLETED, S.CANCELLED},
    S.RESCHEDULE_REQUESTED: {S.RESCHEDULE_APPROVED, S.RESCHEDULE_DECLINED},
    S.RESCHEDULE_APPROVED: {S.CONFIRMED},
    S.RESCHEDULE_DECLINED: {S.CONFIRMED},
    S.COMPLETED: set(),
    S.CANCELLED: set(),
}

TERMINAL_STATUSES = frozenset({S.COMPLETED, S.CANCELLED})

# Statuses only the reschedule workflow may enter
WORKFLOW_STATUSES = frozenset({S.RESCHEDULE_REQUESTED, S.RESCHEDULE_APPROVED, S.RESCHEDULE_DECLINED})


def parse_status(value) -> BookingStatus:
    if isinstance(value, BookingStatus):
        return value
    try:
        return BookingStatus((value or "").strip().lower())
    except ValueError:
        raise InvalidTransitionError(f"Unknown booking status: {value!r}") from None


def can_transition(current: BookingStatus, new: BookingStatus) -> bool:
    return new in TRANSITIONS.get(current, set())


def check_transition(current: BookingStatus, new: BookingStatus) -> None:
    if not can_transition(current, new):
        raise InvalidTransitionError(
            f"Cannot move booking from {current.value} to {new.value}",
            current=current.value,
            requested=new.value,
        )

"""
Time-window and fee rules for cancellations and reschedules.

Pure functions of ``(booking, policy, now)``: nothing here touches the
database, so callers load the policy and pass ``now`` explicitly.
"""
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta

from models.booking import BookingStatus
from scheduling.states import TERMINAL_STATUSES


@dataclass(frozen=True)
class BookingPolicy:
    cancellation_window_hours: int = 24
    late_cancellation_fee: int = 0
    reschedule_window_hours: int = 24
    reschedule_fee: int = 0
    max_reschedules: int = 3

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class PolicyDecision:
    allowed: bool
    fee_amount: int = 0
    reason: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


def _within(booking, hours: int, now: datetime) -> bool:
    return booking.slot.starts_at - now < timedelta(hours=hours)


def can_cancel(booking, policy: BookingPolicy, now: datetime) -> PolicyDecision:
    if booking.status in TERMINAL_STATUSES:
        return PolicyDecision(False, 0, f"Booking already {booking.status.value}")

    if _within(booking, policy.cancellation_window_hours, now):
        return PolicyDecision(
            True,
            policy.late_cancellation_fee,
            f"Late cancellation within {policy.cancellation_window_hours} hours of start",
        )
    return PolicyDecision(True, 0, "")


def can_reschedule(booking, policy: BookingPolicy, now: datetime) -> PolicyDecision:
    if booking.status != BookingStatus.CONFIRMED:
        return PolicyDecision(False, 0, f"Booking cannot be rescheduled - current status: {booking.status.value}")

    if booking.reschedule_count >= policy.max_reschedules:
        return PolicyDecision(False, 0, "Maximum reschedule limit reached")

    if booking.slot.starts_at <= now:
        return PolicyDecision(False, 0, "Appointment has already started")

    if _within(booking, policy.reschedule_window_hours, now):
        return PolicyDecision(
            True,
            policy.reschedule_fee,
            f"Reschedule within {policy.reschedule_window_hours} hours of start",
        )
    return PolicyDecision(True, 0, "")

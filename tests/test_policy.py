"""
Policy gate rules are pure functions, so these tests need no app or database.
"""
from datetime import datetime, timedelta
from types import SimpleNamespace

from models.booking import BookingStatus
from scheduling.policy import BookingPolicy, can_cancel, can_reschedule

START = datetime(2026, 11, 2, 10, 0)
POLICY = BookingPolicy(
    cancellation_window_hours=24,
    late_cancellation_fee=1500,
    reschedule_window_hours=48,
    reschedule_fee=500,
    max_reschedules=3,
)


def _booking(status=BookingStatus.CONFIRMED, reschedule_count=0):
    return SimpleNamespace(
        status=status,
        reschedule_count=reschedule_count,
        slot=SimpleNamespace(starts_at=START),
    )


def test_cancel_outside_window_is_free():
    decision = can_cancel(_booking(), POLICY, START - timedelta(hours=25))
    assert decision.allowed is True
    assert decision.fee_amount == 0


def test_cancel_inside_window_charges_late_fee():
    decision = can_cancel(_booking(), POLICY, START - timedelta(hours=23))
    assert decision.allowed is True
    assert decision.fee_amount == 1500
    assert "24 hours" in decision.reason


def test_cancel_window_boundary_is_free():
    # Exactly 24h before start is not "within" the window
    decision = can_cancel(_booking(), POLICY, START - timedelta(hours=24))
    assert decision.fee_amount == 0


def test_cancel_refused_for_terminal_booking():
    for status in (BookingStatus.COMPLETED, BookingStatus.CANCELLED):
        decision = can_cancel(_booking(status=status), POLICY, START - timedelta(days=3))
        assert decision.allowed is False


def test_reschedule_uses_its_own_window_and_fee():
    now = START - timedelta(hours=30)
    assert can_cancel(_booking(), POLICY, now).fee_amount == 0
    decision = can_reschedule(_booking(), POLICY, now)
    assert decision.allowed is True
    assert decision.fee_amount == 500


def test_reschedule_requires_confirmed_booking():
    for status in BookingStatus:
        decision = can_reschedule(_booking(status=status), POLICY, START - timedelta(days=3))
        assert decision.allowed is (status == BookingStatus.CONFIRMED)


def test_reschedule_limit():
    decision = can_reschedule(_booking(reschedule_count=3), POLICY, START - timedelta(days=3))
    assert decision.allowed is False
    assert "limit" in decision.reason


def test_reschedule_refused_after_start():
    decision = can_reschedule(_booking(), POLICY, START + timedelta(minutes=1))
    assert decision.allowed is False


def test_decisions_are_deterministic():
    now = START - timedelta(hours=5)
    assert can_cancel(_booking(), POLICY, now) == can_cancel(_booking(), POLICY, now)

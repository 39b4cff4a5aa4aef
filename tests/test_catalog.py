from datetime import datetime, time, timedelta

import pytest

from models import db
from models.slot import Slot, SlotStatus
from scheduling import catalog, ledger
from scheduling.errors import (
    DuplicateSlotError,
    InvalidRangeError,
    InvalidTemplateError,
    SlotHasBookingError,
    SlotNotAvailableError,
    SlotNotFoundError,
)
from tests.conftest import by_start


def test_monday_template_yields_five_two_hour_slots(app, monday):
    slots = catalog.generate_slots_for_date(monday)

    assert [s.start_time.strftime("%H:%M") for s in slots] == ["08:00", "10:00", "12:00", "14:00", "16:00"]
    assert all(s.status == SlotStatus.AVAILABLE for s in slots)
    assert all(s.duration_minutes == 120 for s in slots)
    assert slots[-1].end_time == time(18, 0)


def test_generation_is_idempotent(app, monday):
    first = catalog.generate_slots_for_date(monday)
    second = catalog.generate_slots_for_date(monday)

    assert [s.id for s in first] == [s.id for s in second]
    assert Slot.query.filter_by(slot_date=monday).count() == 5


def test_non_working_day_produces_nothing(app, monday):
    sunday = monday - timedelta(days=1)
    assert catalog.generate_slots_for_date(sunday) == []
    assert Slot.query.filter_by(slot_date=sunday).count() == 0


def test_broken_template_is_rejected(app, monday):
    tpl = catalog.get_template(1)
    tpl.start_time = time(18, 0)
    tpl.end_time = time(8, 0)
    db.session.commit()

    with pytest.raises(InvalidTemplateError):
        catalog.generate_slots_for_date(monday)


def test_break_is_skipped(app, monday):
    catalog.update_template(1, {
        "start_time": time(9, 0),
        "end_time": time(17, 0),
        "slot_duration_minutes": 60,
        "break_start": time(12, 0),
        "break_end": time(13, 0),
    })
    starts = [s.start_time.hour for s in catalog.generate_slots_for_date(monday)]
    assert starts == [9, 10, 11, 13, 14, 15, 16]


def test_template_edit_does_not_touch_existing_slots(app, monday, slots):
    catalog.update_template(1, {"slot_duration_minutes": 60})
    again = catalog.generate_slots_for_date(monday)

    # Old 2h slots stay; new 1h times overlapping them are skipped
    assert Slot.query.filter_by(slot_date=monday).count() == 5
    assert all(s.duration_minutes == 120 for s in Slot.query.filter_by(slot_date=monday))
    assert [s.duration_minutes for s in again] == [120] * 5


def test_update_template_validates(app):
    with pytest.raises(InvalidTemplateError):
        catalog.update_template(2, {"start_time": time(12, 0), "end_time": time(11, 0)})
    with pytest.raises(InvalidTemplateError):
        catalog.update_template(7, {"is_working_day": False})


def test_range_generation(app, monday):
    slots = catalog.generate_slots_for_range(monday - timedelta(days=1), monday + timedelta(days=1))
    # Sunday closed, Monday and Tuesday open
    assert len(slots) == 10


def test_reversed_range_is_rejected(app, monday):
    with pytest.raises(InvalidRangeError):
        catalog.generate_slots_for_range(monday, monday - timedelta(days=1))
    with pytest.raises(InvalidRangeError):
        catalog.list_available_slots_in_range(monday, monday - timedelta(days=1))


def test_available_slots_are_ordered_and_exclude_booked_and_blocked(app, monday, slots):
    ledger.create_booking(slots["10:00"].id, "cust-1", "veh-1")
    catalog.block_slot(slots["14:00"].id, "Holiday")

    available = catalog.list_available_slots(monday)
    assert [s.start_time.strftime("%H:%M") for s in available] == ["08:00", "12:00", "16:00"]


def test_past_dates_have_no_availability(app, monday, slots):
    later = datetime.combine(monday + timedelta(days=1), time(9, 0))
    assert catalog.list_available_slots(monday, now=later) == []


def test_started_slots_are_hidden(app, monday, slots):
    now = datetime.combine(monday, time(11, 0))
    assert [s.start_time.hour for s in catalog.list_available_slots(monday, now=now)] == [12, 14, 16]


def test_block_booked_slot_fails(app, slots):
    ledger.create_booking(slots["10:00"].id, "cust-1", "veh-1")

    with pytest.raises(SlotNotAvailableError):
        catalog.block_slot(slots["10:00"].id, "Closure")
    assert catalog.get_slot(slots["10:00"].id).status == SlotStatus.BOOKED


def test_block_and_unblock(app, slots):
    slot = catalog.block_slot(slots["08:00"].id, "Van service")
    assert slot.status == SlotStatus.BLOCKED
    assert slot.block_reason == "Van service"

    slot = catalog.unblock_slot(slots["08:00"].id)
    assert slot.status == SlotStatus.AVAILABLE
    assert slot.block_reason is None

    with pytest.raises(SlotNotAvailableError):
        catalog.unblock_slot(slots["08:00"].id)


def test_delete_never_booked_slot(app, slots):
    catalog.delete_slot(slots["16:00"].id)
    with pytest.raises(SlotNotFoundError):
        catalog.get_slot(slots["16:00"].id)


def test_delete_slot_with_history_fails(app, slots):
    booking = ledger.create_booking(slots["10:00"].id, "cust-1", "veh-1")
    ledger.transition_status(booking.id, "cancelled", reason="Changed mind")

    # Slot is available again but its history must survive
    assert catalog.get_slot(slots["10:00"].id).status == SlotStatus.AVAILABLE
    with pytest.raises(SlotHasBookingError):
        catalog.delete_slot(slots["10:00"].id)


def test_adhoc_slot(app, monday, slots):
    sunday = monday - timedelta(days=1)
    slot = catalog.create_slot(sunday, time(10, 0), 90)
    assert slot.end_time == time(11, 30)
    assert slot.status == SlotStatus.AVAILABLE

    with pytest.raises(DuplicateSlotError):
        catalog.create_slot(monday, time(9, 0), 60)
    with pytest.raises(InvalidTemplateError):
        catalog.create_slot(sunday, time(14, 0), 0)
    with pytest.raises(InvalidTemplateError):
        catalog.create_slot(sunday, time(23, 0), 120)


def test_generation_skips_times_overlapping_adhoc_slot(app, monday):
    catalog.create_slot(monday, time(9, 0), 60)
    slots = by_start(catalog.generate_slots_for_date(monday))
    assert "08:00" not in slots
    assert sorted(slots) == ["10:00", "12:00", "14:00", "16:00"]


def test_times_must_be_whole_minutes(app, monday, slots):
    sunday = monday - timedelta(days=1)
    with pytest.raises(InvalidTemplateError):
        catalog.create_slot(sunday, time(10, 0, 30), 60)
    with pytest.raises(InvalidTemplateError):
        catalog.update_template(1, {"start_time": time(8, 0, 15)})
    assert catalog.list_slots(sunday) == []
    assert catalog.get_template(1).start_time == time(8, 0)


def test_past_dates_are_not_generated(app, monday):
    today = monday + timedelta(days=2)
    with pytest.raises(InvalidRangeError):
        catalog.generate_slots_for_date(monday, today=today)
    with pytest.raises(InvalidRangeError):
        catalog.generate_slots_for_range(monday, monday + timedelta(days=3), today=today)
    assert catalog.list_slots(monday) == []

    assert len(catalog.generate_slots_for_date(today, today=today)) == 5

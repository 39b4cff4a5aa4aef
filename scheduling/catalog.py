"""
Slot catalog: materializes bookable windows from the weekly template and
answers availability queries.
"""
import logging
from datetime import date, datetime, timedelta

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError

from models import db
from models.slot import Slot, SlotStatus
from models.booking import Booking
from models.reschedule_request import RescheduleRequest
from models.weekly_template import WeeklyTemplate
from scheduling.errors import (
    DuplicateSlotError,
    InvalidRangeError,
    InvalidTemplateError,
    SlotHasBookingError,
    SlotNotAvailableError,
    SlotNotFoundError,
)
from utils.time_utils import day_of_week, local_now, minutes_of, time_of

logger = logging.getLogger(__name__)

MAX_RANGE_DAYS = 92
MINUTES_PER_DAY = 24 * 60


def _check_whole_minutes(t):
    # Slot arithmetic works in whole minutes
    if t is not None and (t.second or t.microsecond):
        raise InvalidTemplateError("Times must be whole minutes (HH:MM)", time=t.isoformat())


def validate_template(is_working_day, start_time, end_time, slot_duration_minutes,
                      break_start=None, break_end=None):
    if not is_working_day:
        return
    for value in (start_time, end_time, break_start, break_end):
        _check_whole_minutes(value)
    if start_time is None or end_time is None:
        raise InvalidTemplateError("Working days need start_time and end_time")
    if start_time >= end_time:
        raise InvalidTemplateError("start_time must be before end_time")
    if not slot_duration_minutes or slot_duration_minutes <= 0:
        raise InvalidTemplateError("slot_duration_minutes must be positive")
    if (break_start is None) != (break_end is None):
        raise InvalidTemplateError("break_start and break_end must be set together")
    if break_start is not None:
        if break_start >= break_end:
            raise InvalidTemplateError("break_start must be before break_end")
        if break_start < start_time or break_end > end_time:
            raise InvalidTemplateError("Break must fall within working hours")


def template_slot_times(tpl: WeeklyTemplate):
    """(start, end) pairs the template yields for one day, in order."""
    if tpl is None or not tpl.is_working_day:
        return []
    validate_template(
        tpl.is_working_day, tpl.start_time, tpl.end_time,
        tpl.slot_duration_minutes, tpl.break_start, tpl.break_end,
    )

    step = tpl.slot_duration_minutes
    current = minutes_of(tpl.start_time)
    end = minutes_of(tpl.end_time)
    break_start = minutes_of(tpl.break_start) if tpl.break_start else None
    break_end = minutes_of(tpl.break_end) if tpl.break_end else None

    out = []
    while current + step <= end:
        if break_start is not None and current < break_end and current + step > break_start:
            current = break_end
            continue
        out.append((time_of(current), time_of(current + step)))
        current += step
    return out


def _overlaps(start, end, slot: Slot) -> bool:
    return start < slot.end_time and slot.start_time < end


def get_slot(slot_id: int) -> Slot:
    slot = db.session.get(Slot, slot_id)
    if slot is None:
        raise SlotNotFoundError("Slot not found", slot_id=slot_id)
    return slot


def get_template(dow: int):
    return WeeklyTemplate.query.filter_by(day_of_week=dow).first()


def _check_not_past(day: date, today: date = None):
    today = today or local_now().date()
    if day < today:
        raise InvalidRangeError("Cannot generate slots for past dates", date=day.isoformat())


def generate_slots_for_date(day: date, today: date = None):
    """
    Create the template's slots for ``day``. Re-running for the same date
    returns the same slots without inserting duplicates; template times that
    would overlap an existing (e.g. ad-hoc) slot are skipped. Days before
    ``today`` (business timezone) are refused.
    """
    _check_not_past(day, today)
    times = template_slot_times(get_template(day_of_week(day)))
    if not times:
        return []

    existing = Slot.query.filter_by(slot_date=day).all()
    existing_starts = {s.start_time for s in existing}

    created = 0
    for start, end in times:
        if start in existing_starts:
            continue
        if any(_overlaps(start, end, s) for s in existing):
            continue
        db.session.add(Slot(
            slot_date=day,
            start_time=start,
            end_time=end,
            duration_minutes=minutes_of(end) - minutes_of(start),
            status=SlotStatus.AVAILABLE,
        ))
        created += 1

    if created:
        try:
            db.session.commit()
        except IntegrityError:
            # Another generator got there first; its rows are just as good
            db.session.rollback()
            logger.warning("Concurrent slot generation for %s, reloading", day)
        else:
            logger.info("Generated %d slots for %s", created, day)

    starts = [start for start, _ in times]
    return (
        Slot.query
        .filter(Slot.slot_date == day, Slot.start_time.in_(starts))
        .order_by(Slot.start_time.asc())
        .all()
    )


def _check_range(start_date: date, end_date: date):
    if start_date > end_date:
        raise InvalidRangeError("start_date must not be after end_date")
    if (end_date - start_date).days >= MAX_RANGE_DAYS:
        raise InvalidRangeError(f"Range may span at most {MAX_RANGE_DAYS} days")


def generate_slots_for_range(start_date: date, end_date: date, today: date = None):
    _check_range(start_date, end_date)
    today = today or local_now().date()
    _check_not_past(start_date, today)
    out = []
    day = start_date
    while day <= end_date:
        out.extend(generate_slots_for_date(day, today))
        day += timedelta(days=1)
    return out


def list_slots(day: date):
    return Slot.query.filter_by(slot_date=day).order_by(Slot.start_time.asc()).all()


def list_available_slots(day: date, now: datetime = None):
    if now is not None and day < now.date():
        return []

    slots = (
        Slot.query
        .filter(Slot.slot_date == day, Slot.status == SlotStatus.AVAILABLE)
        .order_by(Slot.start_time.asc())
        .all()
    )
    if now is not None:
        slots = [s for s in slots if s.starts_at > now]
    return slots


def list_available_slots_in_range(start_date: date, end_date: date, now: datetime = None):
    _check_range(start_date, end_date)
    if now is not None and start_date < now.date():
        start_date = now.date()

    q = (
        Slot.query
        .filter(
            Slot.slot_date >= start_date,
            Slot.slot_date <= end_date,
            Slot.status == SlotStatus.AVAILABLE,
        )
        .order_by(Slot.slot_date.asc(), Slot.start_time.asc())
    )
    slots = q.all()
    if now is not None:
        slots = [s for s in slots if s.starts_at > now]
    return slots


def create_slot(day: date, start_time, duration_minutes: int) -> Slot:
    """Ad-hoc admin insertion outside the template."""
    _check_whole_minutes(start_time)
    if not duration_minutes or duration_minutes <= 0:
        raise InvalidTemplateError("duration_minutes must be positive")

    end_minutes = minutes_of(start_time) + duration_minutes
    if end_minutes > MINUTES_PER_DAY - 1:
        raise InvalidTemplateError("Slot must end on the same day")
    end_time = time_of(end_minutes)

    clash = next(
        (s for s in Slot.query.filter_by(slot_date=day).all() if _overlaps(start_time, end_time, s)),
        None,
    )
    if clash is not None:
        raise DuplicateSlotError("Slot overlaps an existing slot", slot_id=clash.id)

    slot = Slot(
        slot_date=day,
        start_time=start_time,
        end_time=end_time,
        duration_minutes=duration_minutes,
        status=SlotStatus.AVAILABLE,
    )
    db.session.add(slot)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise DuplicateSlotError("Slot already exists for that date and time")

    logger.info("Created slot %s on %s at %s", slot.id, day, start_time)
    return slot


def block_slot(slot_id: int, reason=None) -> Slot:
    # Conditional update: a booked slot is never silently evicted
    result = db.session.execute(
        update(Slot)
        .where(Slot.id == slot_id, Slot.status.in_([SlotStatus.AVAILABLE, SlotStatus.BLOCKED]))
        .values(status=SlotStatus.BLOCKED, block_reason=reason, updated_at=datetime.utcnow())
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount != 1:
        db.session.rollback()
        slot = get_slot(slot_id)
        raise SlotNotAvailableError(
            "Slot is booked; cancel or reschedule the booking first",
            slot_id=slot.id,
            status=slot.status.value,
        )
    db.session.commit()
    logger.info("Blocked slot %s (%s)", slot_id, reason or "no reason")
    return get_slot(slot_id)


def unblock_slot(slot_id: int) -> Slot:
    slot = get_slot(slot_id)
    if slot.status != SlotStatus.BLOCKED:
        raise SlotNotAvailableError("Slot is not blocked", slot_id=slot.id, status=slot.status.value)
    slot.status = SlotStatus.AVAILABLE
    slot.block_reason = None
    db.session.commit()
    logger.info("Unblocked slot %s", slot_id)
    return slot


def delete_slot(slot_id: int) -> None:
    slot = get_slot(slot_id)

    referenced = (
        Booking.query.filter_by(slot_id=slot_id).first() is not None
        or RescheduleRequest.query.filter(
            or_(
                RescheduleRequest.requested_slot_id == slot_id,
                RescheduleRequest.original_slot_id == slot_id,
            )
        ).first() is not None
    )
    if referenced or slot.status == SlotStatus.BOOKED:
        raise SlotHasBookingError("Slot has booking history and cannot be deleted", slot_id=slot_id)

    db.session.delete(slot)
    db.session.commit()
    logger.info("Deleted slot %s", slot_id)


def list_templates():
    return WeeklyTemplate.query.order_by(WeeklyTemplate.day_of_week.asc()).all()


def update_template(dow: int, values: dict) -> WeeklyTemplate:
    """Edit one day of the weekly template. Already-generated slots are untouched."""
    if dow not in range(7):
        raise InvalidTemplateError("day_of_week must be 0 (Sunday) to 6 (Saturday)")

    tpl = get_template(dow)
    if tpl is None:
        tpl = WeeklyTemplate(day_of_week=dow, is_working_day=False, slot_duration_minutes=120)
        db.session.add(tpl)

    merged = {
        name: values.get(name, getattr(tpl, name))
        for name in ("is_working_day", "start_time", "end_time", "slot_duration_minutes", "break_start", "break_end")
    }
    try:
        validate_template(**merged)
    except InvalidTemplateError:
        db.session.rollback()
        raise

    for name, value in merged.items():
        setattr(tpl, name, value)
    db.session.commit()
    logger.info("Weekly template for day %s updated", dow)
    return tpl

"""
Booking ledger.

Owns the slot <-> booking claim and the Booking status state machine. A slot
is claimed with a single conditional UPDATE (``status = 'available'`` in the
WHERE clause) and the affected-row count decides the winner, so two
concurrent claims can never both succeed. The partial unique index on
``bookings.slot_id`` is a second line of defence. Booking status
changes use the same compare-and-swap on the booking row.
"""
import logging
import secrets
from datetime import datetime

from flask import current_app
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError

from models import db
from models.booking import Booking, BookingStatus
from models.slot import Slot, SlotStatus
from scheduling.catalog import get_slot
from scheduling.errors import BookingNotFoundError, InvalidTransitionError, SlotUnavailableError
from scheduling.policy import can_cancel
from scheduling.policy_store import load_policy
from scheduling.states import TERMINAL_STATUSES, WORKFLOW_STATUSES, check_transition, parse_status
from utils.time_utils import local_now

logger = logging.getLogger(__name__)

CLAIM_ATTEMPTS = 2


def _set_slot_status(slot_id: int, expected: SlotStatus, new: SlotStatus) -> bool:
    # Loaded Slot objects go stale until commit; the statement itself is the source of truth
    result = db.session.execute(
        update(Slot)
        .where(Slot.id == slot_id, Slot.status == expected)
        .values(status=new, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def claim_slot(slot_id: int) -> bool:
    """available -> booked, inside the caller's transaction."""
    return _set_slot_status(slot_id, SlotStatus.AVAILABLE, SlotStatus.BOOKED)


def release_slot(slot_id: int) -> bool:
    """booked -> available, inside the caller's transaction."""
    return _set_slot_status(slot_id, SlotStatus.BOOKED, SlotStatus.AVAILABLE)


def new_reference() -> str:
    prefix = current_app.config.get("BOOKING_REFERENCE_PREFIX", "L4D")
    return f"{prefix}-{secrets.token_hex(5).upper()}"


def get_booking(booking_id: int) -> Booking:
    booking = db.session.get(Booking, booking_id)
    if booking is None:
        raise BookingNotFoundError("Booking not found", booking_id=booking_id)
    return booking


def list_bookings_for_slot(slot_id: int):
    get_slot(slot_id)
    return (
        Booking.query
        .filter_by(slot_id=slot_id)
        .order_by(Booking.created_at.asc(), Booking.id.asc())
        .all()
    )


def create_booking(slot_id: int, customer_id: str, vehicle_id: str, price: int = 0,
                   confirm: bool = False, now: datetime = None) -> Booking:
    """
    Claim ``slot_id`` and insert a booking for it in one transaction.

    A lost claim is re-checked once: if the slot still reads as available the
    claim is tried a second time, otherwise (or on a second collision) the
    caller gets SlotUnavailableError.
    """
    slot = get_slot(slot_id)
    now = now or local_now()
    if slot.starts_at <= now:
        raise SlotUnavailableError("Cannot book past/started slots", slot_id=slot_id)

    for attempt in range(1, CLAIM_ATTEMPTS + 1):
        if claim_slot(slot_id):
            break
        db.session.rollback()
        logger.warning("Slot %s claim lost (attempt %d)", slot_id, attempt)
        current = get_slot(slot_id)
        if attempt == CLAIM_ATTEMPTS or current.status != SlotStatus.AVAILABLE:
            raise SlotUnavailableError(
                "That time was just taken, please pick another",
                slot_id=slot_id,
                status=current.status.value,
            )

    booking = Booking(
        reference=new_reference(),
        slot_id=slot_id,
        customer_id=str(customer_id),
        vehicle_id=str(vehicle_id),
        total_price=int(price or 0),
        status=BookingStatus.CONFIRMED if confirm else BookingStatus.PENDING,
    )
    db.session.add(booking)
    try:
        db.session.commit()
    except IntegrityError:
        # uq_booking_active_slot or a reference collision; nothing is kept
        db.session.rollback()
        logger.warning("Booking insert for slot %s rejected by the store", slot_id)
        raise SlotUnavailableError("That time was just taken, please pick another", slot_id=slot_id)

    logger.info("Booking %s (%s) created on slot %s", booking.id, booking.reference, slot_id)
    return booking


def swap_booking_status(booking: Booking, expected: BookingStatus, **values) -> None:
    """
    Write ``values`` to the booking row only if it still has ``expected``
    status and the slot it was loaded with. Runs inside the caller's
    transaction; the caller rolls back on InvalidTransitionError.
    """
    result = db.session.execute(
        update(Booking)
        .where(
            Booking.id == booking.id,
            Booking.status == expected,
            Booking.slot_id == booking.slot_id,
        )
        .values(updated_at=datetime.utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InvalidTransitionError(
            "Booking was changed by another request, reload and try again",
            booking_id=booking.id,
            expected=expected.value,
        )


def transition_status(booking_id: int, new_status, reason=None, now: datetime = None, policy=None) -> Booking:
    """
    Move a booking along a direct edge of the state machine. Reschedule
    statuses belong to the reschedule workflow and are refused here.
    Entering a terminal status releases the slot.
    """
    new = parse_status(new_status)
    if new in WORKFLOW_STATUSES:
        raise InvalidTransitionError(
            f"{new.value} is set by the reschedule workflow",
            requested=new.value,
        )

    booking = get_booking(booking_id)
    previous = booking.status
    slot_id = booking.slot_id
    check_transition(previous, new)

    values = {"status": new, "status_change_reason": reason}
    if new == BookingStatus.CANCELLED:
        decision = can_cancel(booking, policy or load_policy(), now or local_now())
        if not decision.allowed:
            raise InvalidTransitionError(decision.reason, current=previous.value, requested=new.value)
        values["fee_amount"] = func.coalesce(Booking.fee_amount, 0) + decision.fee_amount
        values["cancelled_at"] = datetime.utcnow()

    try:
        swap_booking_status(booking, previous, **values)
        if new in TERMINAL_STATUSES and not release_slot(slot_id):
            logger.warning("Slot %s was not booked while closing booking %s", slot_id, booking_id)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Booking %s: %s -> %s", booking_id, previous.value, new.value)
    return get_booking(booking_id)

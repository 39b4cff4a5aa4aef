"""
Reschedule coordinator: propose -> admin approve/decline.

The customer keeps the original slot until the request is resolved; approval
releases the old slot and claims the new one in a single transaction.
"""
import logging
from datetime import datetime

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError

from models import db
from models.booking import Booking, BookingStatus
from models.reschedule_request import RescheduleRequest, RequestStatus
from models.slot import SlotStatus
from scheduling import ledger
from scheduling.catalog import get_slot
from scheduling.errors import (
    BookingNotReschedulableError,
    InvalidTransitionError,
    RescheduleRequestNotFoundError,
    SlotUnavailableError,
)
from scheduling.policy import can_reschedule
from scheduling.policy_store import load_policy
from scheduling.states import check_transition
from utils.time_utils import local_now

logger = logging.getLogger(__name__)


def get_request(request_id: int) -> RescheduleRequest:
    req = db.session.get(RescheduleRequest, request_id)
    if req is None:
        raise RescheduleRequestNotFoundError("Reschedule request not found", request_id=request_id)
    return req


def list_requests(status=None):
    q = RescheduleRequest.query
    if status:
        q = q.filter(RescheduleRequest.status == RequestStatus(status))
    return q.order_by(RescheduleRequest.requested_at.desc()).limit(200).all()


def pending_request_for(booking_id: int):
    return RescheduleRequest.query.filter_by(booking_id=booking_id, status=RequestStatus.PENDING).first()


def propose_reschedule(booking_id: int, requested_slot_id: int, reason=None,
                       now: datetime = None, policy=None) -> RescheduleRequest:
    booking = ledger.get_booking(booking_id)
    now = now or local_now()

    if booking.is_terminal:
        raise BookingNotReschedulableError(
            f"Booking cannot be rescheduled - current status: {booking.status.value}",
            booking_id=booking.id,
        )
    existing = pending_request_for(booking.id)
    if existing is not None:
        raise BookingNotReschedulableError(
            "You already have a pending reschedule request for this booking",
            request_id=existing.id,
        )

    decision = can_reschedule(booking, policy or load_policy(), now)
    if not decision.allowed:
        raise BookingNotReschedulableError(decision.reason, booking_id=booking.id)

    if requested_slot_id == booking.slot_id:
        raise BookingNotReschedulableError("Requested slot is the booking's current slot")

    slot = get_slot(requested_slot_id)
    if slot.status != SlotStatus.AVAILABLE or slot.starts_at <= now:
        raise SlotUnavailableError(
            "Requested time slot is no longer available",
            slot_id=slot.id,
            status=slot.status.value,
        )

    check_transition(booking.status, BookingStatus.RESCHEDULE_REQUESTED)
    req = RescheduleRequest(
        booking_id=booking.id,
        original_slot_id=booking.slot_id,
        requested_slot_id=slot.id,
        reason=reason,
        fee_amount=decision.fee_amount,
        status=RequestStatus.PENDING,
    )
    try:
        # The customer may have cancelled (or an admin moved the booking) since it was read
        ledger.swap_booking_status(
            booking,
            BookingStatus.CONFIRMED,
            status=BookingStatus.RESCHEDULE_REQUESTED,
            status_change_reason=reason,
        )
        db.session.add(req)
        db.session.commit()
    except InvalidTransitionError:
        db.session.rollback()
        raise BookingNotReschedulableError(
            "Booking changed while the request was being made, reload and try again",
            booking_id=booking_id,
        )
    except IntegrityError:
        db.session.rollback()
        raise BookingNotReschedulableError("You already have a pending reschedule request for this booking")

    logger.info("Reschedule request %s: booking %s slot %s -> %s",
                req.id, booking_id, req.original_slot_id, req.requested_slot_id)
    return req


def _require_pending(req: RescheduleRequest):
    if req.status != RequestStatus.PENDING:
        raise InvalidTransitionError(
            f"Request already processed - status: {req.status.value}",
            request_id=req.id,
        )


def _close_request(req: RescheduleRequest, status: RequestStatus, admin_notes, actor_id):
    """pending -> ``status``; only one resolution of a request can land."""
    result = db.session.execute(
        update(RescheduleRequest)
        .where(RescheduleRequest.id == req.id, RescheduleRequest.status == RequestStatus.PENDING)
        .values(
            status=status,
            admin_notes=admin_notes,
            responded_by=actor_id,
            responded_at=datetime.utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InvalidTransitionError(
            "Request was already processed by another admin",
            request_id=req.id,
        )


def approve_request(request_id: int, admin_notes=None, actor_id=None, now: datetime = None):
    """
    Swap the booking onto the requested slot. Either the whole swap commits
    or nothing does; a requested slot taken in the meantime surfaces as
    SlotUnavailableError and the request stays pending.
    """
    req = get_request(request_id)
    _require_pending(req)
    booking = req.booking
    check_transition(booking.status, BookingStatus.RESCHEDULE_APPROVED)
    check_transition(BookingStatus.RESCHEDULE_APPROVED, BookingStatus.CONFIRMED)

    now = now or local_now()
    if req.requested_slot.starts_at <= now:
        raise SlotUnavailableError("Requested time slot has already started", slot_id=req.requested_slot_id)

    booking_id = booking.id
    old_slot_id = booking.slot_id
    new_slot_id = req.requested_slot_id
    fee = req.fee_amount or 0
    try:
        _close_request(req, RequestStatus.APPROVED, admin_notes, actor_id)
        if not ledger.release_slot(old_slot_id):
            logger.warning("Original slot %s was not booked during approval of request %s", old_slot_id, request_id)
        if not ledger.claim_slot(new_slot_id):
            raise SlotUnavailableError(
                "Requested time slot was taken in the meantime",
                slot_id=new_slot_id,
                request_id=request_id,
            )
        ledger.swap_booking_status(
            booking,
            BookingStatus.RESCHEDULE_REQUESTED,
            status=BookingStatus.CONFIRMED,
            slot_id=new_slot_id,
            reschedule_count=func.coalesce(Booking.reschedule_count, 0) + 1,
            fee_amount=func.coalesce(Booking.fee_amount, 0) + fee,
            status_change_reason="Reschedule approved",
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Reschedule request %s approved: booking %s now on slot %s", request_id, booking_id, new_slot_id)
    return ledger.get_booking(booking_id)


def _revert(req: RescheduleRequest, status: RequestStatus, admin_notes, actor_id, reason):
    """Close the request and put its booking back to confirmed on the original slot."""
    booking = req.booking
    check_transition(booking.status, BookingStatus.RESCHEDULE_DECLINED)
    _close_request(req, status, admin_notes, actor_id)
    ledger.swap_booking_status(
        booking,
        BookingStatus.RESCHEDULE_REQUESTED,
        status=BookingStatus.CONFIRMED,
        status_change_reason=reason,
    )
    return booking.id


def decline_request(request_id: int, admin_notes=None, actor_id=None):
    req = get_request(request_id)
    _require_pending(req)
    try:
        booking_id = _revert(req, RequestStatus.DECLINED, admin_notes, actor_id, "Reschedule declined")
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    booking = ledger.get_booking(booking_id)
    logger.info("Reschedule request %s declined: booking %s stays on slot %s", request_id, booking.id, booking.slot_id)
    return booking


def expire_stale_requests(older_than: datetime) -> int:
    """
    Mark pending requests made before ``older_than`` as expired and put their
    bookings back on the original slot. Nothing calls this automatically.
    Requests an admin resolves while this runs are left as the admin set them.
    """
    stale_ids = [
        req.id
        for req in RescheduleRequest.query
        .filter(
            RescheduleRequest.status == RequestStatus.PENDING,
            RescheduleRequest.requested_at < older_than,
        )
        .all()
    ]

    expired = 0
    for request_id in stale_ids:
        req = get_request(request_id)
        try:
            _revert(req, RequestStatus.EXPIRED, None, None, "Reschedule request expired")
            db.session.commit()
        except InvalidTransitionError:
            db.session.rollback()
            logger.info("Reschedule request %s was resolved before it could expire", request_id)
            continue
        expired += 1

    if expired:
        logger.info("Expired %d stale reschedule requests", expired)
    return expired

from flask import Blueprint, request, jsonify, g

from models.booking import Booking, BookingStatus
from scheduling import catalog, ledger, reschedule
from scheduling.errors import BookingNotFoundError, InvalidTransitionError, SlotUnavailableError
from scheduling.policy import can_cancel, can_reschedule
from scheduling.policy_store import load_policy
from security.rbac import is_admin
from utils.audit import log_event
from utils.auth_context import login_required
from utils.serializers import booking_json, request_json, slot_json
from utils.time_utils import local_now, parse_date

booking_bp = Blueprint("booking", __name__)


def _int_or_none(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _own_booking(booking_id: int):
    booking = ledger.get_booking(booking_id)
    # Customers only ever see their own bookings
    if not is_admin() and booking.customer_id != g.actor.id:
        raise BookingNotFoundError("Booking not found", booking_id=booking_id)
    return booking


# ---------- PUBLIC: availability ----------
@booking_bp.get("/availability")
def availability():
    date_str = request.args.get("date")
    start_str = request.args.get("start_date")
    end_str = request.args.get("end_date")

    if not date_str and not (start_str and end_str):
        return jsonify(error="date parameter or start_date and end_date required"), 400

    try:
        if date_str:
            day = parse_date(date_str)
        else:
            start_date = parse_date(start_str)
            end_date = parse_date(end_str)
    except ValueError:
        return jsonify(error="Invalid date. Use YYYY-MM-DD"), 400

    now = local_now()
    if date_str:
        slots = catalog.list_available_slots(day, now=now)
    else:
        slots = catalog.list_available_slots_in_range(start_date, end_date, now=now)

    return jsonify(slots=[slot_json(s) for s in slots], total=len(slots)), 200


# ---------- CUSTOMERS/ADMIN: claim a slot (DOUBLE-BOOKING SAFE) ----------
@booking_bp.post("/bookings")
@login_required
def create_booking():
    data = request.get_json(silent=True) or {}
    slot_id = _int_or_none(data.get("slot_id"))
    vehicle_id = data.get("vehicle_id")
    price = _int_or_none(data.get("price", 0))

    if not slot_id or not vehicle_id:
        return jsonify(error="slot_id and vehicle_id are required"), 400
    if price is None or price < 0:
        return jsonify(error="price must be a non-negative integer (pence)"), 400

    customer_id = g.actor.id
    confirm = False
    if is_admin():
        # Admin-created bookings are made on a customer's behalf
        customer_id = data.get("customer_id") or customer_id
        confirm = bool(data.get("confirm"))

    try:
        booking = ledger.create_booking(slot_id, customer_id, vehicle_id, price=price, confirm=confirm)
    except SlotUnavailableError:
        log_event("BOOKING_FAIL_UNAVAILABLE", actor_id=g.actor.id, entity="slot", entity_id=slot_id)
        raise

    log_event(
        "BOOKING_CREATE",
        actor_id=g.actor.id,
        entity="booking",
        entity_id=booking.id,
        metadata={"slot_id": slot_id, "reference": booking.reference},
    )
    return jsonify(booking_json(booking)), 201


@booking_bp.get("/bookings/me")
@login_required
def my_bookings():
    status = request.args.get("status")
    q = Booking.query.filter_by(customer_id=g.actor.id)
    if status:
        try:
            q = q.filter(Booking.status == BookingStatus(status))
        except ValueError:
            return jsonify(error="Unknown status"), 400

    rows = q.order_by(Booking.created_at.desc()).all()
    return jsonify([booking_json(b) for b in rows]), 200


@booking_bp.get("/bookings/<int:booking_id>")
@login_required
def get_booking(booking_id: int):
    return jsonify(booking_json(_own_booking(booking_id))), 200


@booking_bp.get("/bookings/<int:booking_id>/policy")
@login_required
def booking_policy(booking_id: int):
    booking = _own_booking(booking_id)
    policy = load_policy()
    now = local_now()
    return jsonify(
        cancel=can_cancel(booking, policy, now).to_dict(),
        reschedule=can_reschedule(booking, policy, now).to_dict(),
    ), 200


@booking_bp.post("/bookings/<int:booking_id>/status")
@login_required
def change_status(booking_id: int):
    data = request.get_json(silent=True) or {}
    new_status = (data.get("status") or "").strip().lower()
    reason = (data.get("reason") or "").strip() or None
    if not new_status:
        return jsonify(error="status required"), 400

    booking = _own_booking(booking_id)
    if not is_admin() and new_status != BookingStatus.CANCELLED.value:
        raise InvalidTransitionError("Customers may only cancel their bookings", requested=new_status)

    previous = booking.status.value
    booking = ledger.transition_status(booking.id, new_status, reason=reason)

    log_event(
        "BOOKING_STATUS_CHANGE",
        actor_id=g.actor.id,
        entity="booking",
        entity_id=booking.id,
        metadata={"from": previous, "to": booking.status.value, "reason": reason, "fee": booking.fee_amount},
    )
    return jsonify(booking_json(booking)), 200


@booking_bp.post("/bookings/<int:booking_id>/reschedule")
@login_required
def request_reschedule(booking_id: int):
    data = request.get_json(silent=True) or {}
    requested_slot_id = _int_or_none(data.get("requested_slot_id"))
    reason = (data.get("reason") or "").strip() or None
    if not requested_slot_id:
        return jsonify(error="requested_slot_id required"), 400

    booking = _own_booking(booking_id)
    req = reschedule.propose_reschedule(booking.id, requested_slot_id, reason=reason)

    log_event(
        "RESCHEDULE_REQUEST",
        actor_id=g.actor.id,
        entity="reschedule_request",
        entity_id=req.id,
        metadata={"booking_id": booking.id, "requested_slot_id": requested_slot_id, "reason": reason},
    )
    return jsonify(request_json(req)), 201

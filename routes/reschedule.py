from flask import Blueprint, request, jsonify, g

from models.booking import BookingStatus
from models.reschedule_request import RequestStatus
from scheduling import reschedule
from security.rbac import require_roles
from utils.audit import log_event
from utils.serializers import booking_json, request_json

reschedule_bp = Blueprint("reschedule", __name__, url_prefix="/reschedule-requests")


def _admin_notes():
    data = request.get_json(silent=True) or {}
    return (data.get("admin_notes") or "").strip() or None


@reschedule_bp.get("")
@require_roles("ADMIN")
def list_requests():
    status = (request.args.get("status") or "").strip().lower() or None
    if status and status not in {s.value for s in RequestStatus}:
        return jsonify(error="Unknown status"), 400

    rows = reschedule.list_requests(status)
    return jsonify([request_json(r) for r in rows]), 200


@reschedule_bp.post("/<int:request_id>/approve")
@require_roles("ADMIN")
def approve(request_id: int):
    notes = _admin_notes()
    booking = reschedule.approve_request(request_id, admin_notes=notes, actor_id=g.actor.id)

    log_event(
        "RESCHEDULE_APPROVE",
        actor_id=g.actor.id,
        entity="reschedule_request",
        entity_id=request_id,
        metadata={"booking_id": booking.id, "slot_id": booking.slot_id, "admin_notes": notes},
    )
    return jsonify(outcome=BookingStatus.RESCHEDULE_APPROVED.value, booking=booking_json(booking)), 200


@reschedule_bp.post("/<int:request_id>/decline")
@require_roles("ADMIN")
def decline(request_id: int):
    notes = _admin_notes()
    booking = reschedule.decline_request(request_id, admin_notes=notes, actor_id=g.actor.id)

    log_event(
        "RESCHEDULE_DECLINE",
        actor_id=g.actor.id,
        entity="reschedule_request",
        entity_id=request_id,
        metadata={"booking_id": booking.id, "admin_notes": notes},
    )
    return jsonify(outcome=BookingStatus.RESCHEDULE_DECLINED.value, booking=booking_json(booking)), 200

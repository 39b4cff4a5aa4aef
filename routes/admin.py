from datetime import timedelta

from flask import Blueprint, jsonify, g, request

from models.booking import Booking, BookingStatus
from models.slot import Slot
from scheduling import catalog, ledger
from scheduling.policy_store import load_policy, update_policy
from security.rbac import require_roles
from utils.audit import log_event
from utils.serializers import booking_json, slot_json, template_json
from utils.time_utils import parse_date, parse_time

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")

TEMPLATE_TIME_FIELDS = ("start_time", "end_time", "break_start", "break_end")


# ---------- slots ----------
@admin_bp.get("/slots")
@require_roles("ADMIN")
def list_slots():
    date_str = request.args.get("date")
    if not date_str:
        return jsonify(error="date required"), 400
    try:
        day = parse_date(date_str)
    except ValueError:
        return jsonify(error="Invalid date. Use YYYY-MM-DD"), 400

    return jsonify([slot_json(s) for s in catalog.list_slots(day)]), 200


@admin_bp.post("/slots")
@require_roles("ADMIN")
def create_slot():
    data = request.get_json(silent=True) or {}
    date_str = data.get("date")
    start_str = data.get("start_time")
    duration = data.get("duration_minutes")

    if not date_str or not start_str or duration is None:
        return jsonify(error="date, start_time, duration_minutes are required"), 400

    try:
        day = parse_date(date_str)
        start = parse_time(start_str)
        duration = int(duration)
    except (TypeError, ValueError):
        return jsonify(error="Invalid date/time. Use YYYY-MM-DD and HH:MM"), 400

    slot = catalog.create_slot(day, start, duration)

    log_event("SLOT_CREATE", actor_id=g.actor.id, entity="slot", entity_id=slot.id)
    return jsonify(slot_json(slot)), 201


@admin_bp.post("/slots/generate")
@require_roles("ADMIN")
def generate_slots():
    data = request.get_json(silent=True) or {}
    start_str = data.get("start_date") or data.get("date")
    end_str = data.get("end_date") or start_str
    if not start_str:
        return jsonify(error="start_date (or date) required"), 400

    try:
        start_date = parse_date(start_str)
        end_date = parse_date(end_str)
    except (TypeError, ValueError):
        return jsonify(error="Invalid date. Use YYYY-MM-DD"), 400

    slots = catalog.generate_slots_for_range(start_date, end_date)

    log_event(
        "SLOT_GENERATE",
        actor_id=g.actor.id,
        entity="slot",
        metadata={"start_date": start_date.isoformat(), "end_date": end_date.isoformat(), "slots": len(slots)},
    )
    return jsonify(slots=[slot_json(s) for s in slots], total=len(slots)), 200


@admin_bp.post("/slots/<int:slot_id>/block")
@require_roles("ADMIN")
def block_slot(slot_id: int):
    data = request.get_json(silent=True) or {}
    reason = (data.get("reason") or "").strip() or None

    slot = catalog.block_slot(slot_id, reason)

    log_event("SLOT_BLOCK", actor_id=g.actor.id, entity="slot", entity_id=slot_id, metadata={"reason": reason})
    return jsonify(slot_json(slot)), 200


@admin_bp.post("/slots/<int:slot_id>/unblock")
@require_roles("ADMIN")
def unblock_slot(slot_id: int):
    slot = catalog.unblock_slot(slot_id)

    log_event("SLOT_UNBLOCK", actor_id=g.actor.id, entity="slot", entity_id=slot_id)
    return jsonify(slot_json(slot)), 200


@admin_bp.delete("/slots/<int:slot_id>")
@require_roles("ADMIN")
def delete_slot(slot_id: int):
    catalog.delete_slot(slot_id)

    log_event("SLOT_DELETE", actor_id=g.actor.id, entity="slot", entity_id=slot_id)
    return jsonify(message="Slot deleted"), 200


@admin_bp.get("/slots/<int:slot_id>/bookings")
@require_roles("ADMIN")
def slot_bookings(slot_id: int):
    rows = ledger.list_bookings_for_slot(slot_id)
    return jsonify([booking_json(b) for b in rows]), 200


# ---------- bookings ----------
@admin_bp.get("/bookings")
@require_roles("ADMIN")
def list_bookings():
    status = request.args.get("status")
    date_str = request.args.get("date")  # YYYY-MM-DD

    q = Booking.query.join(Slot, Booking.slot_id == Slot.id)
    if status:
        try:
            q = q.filter(Booking.status == BookingStatus(status))
        except ValueError:
            return jsonify(error="Unknown status"), 400

    if date_str:
        try:
            day = parse_date(date_str)
        except ValueError:
            return jsonify(error="Invalid date. Use YYYY-MM-DD"), 400
        q = q.filter(Slot.slot_date >= day, Slot.slot_date < day + timedelta(days=1))

    rows = q.order_by(Slot.slot_date.asc(), Slot.start_time.asc()).limit(200).all()
    return jsonify([booking_json(b) for b in rows]), 200


# ---------- weekly template ----------
@admin_bp.get("/weekly-template")
@require_roles("ADMIN")
def get_weekly_template():
    return jsonify([template_json(t) for t in catalog.list_templates()]), 200


@admin_bp.put("/weekly-template/<int:day_of_week>")
@require_roles("ADMIN")
def put_weekly_template(day_of_week: int):
    data = request.get_json(silent=True) or {}

    values = {}
    try:
        for name in TEMPLATE_TIME_FIELDS:
            if name in data:
                values[name] = parse_time(data[name]) if data[name] else None
        if "slot_duration_minutes" in data:
            values["slot_duration_minutes"] = int(data["slot_duration_minutes"])
    except (TypeError, ValueError):
        return jsonify(error="Invalid time or duration. Use HH:MM and minutes"), 400
    if "is_working_day" in data:
        if not isinstance(data["is_working_day"], bool):
            return jsonify(error="is_working_day must be true or false"), 400
        values["is_working_day"] = data["is_working_day"]

    tpl = catalog.update_template(day_of_week, values)

    log_event(
        "TEMPLATE_UPDATE",
        actor_id=g.actor.id,
        entity="weekly_template",
        entity_id=day_of_week,
        metadata={k: str(v) for k, v in values.items()},
    )
    return jsonify(template_json(tpl)), 200


# ---------- business policies ----------
@admin_bp.get("/policies")
@require_roles("ADMIN")
def get_policies():
    return jsonify(load_policy().to_dict()), 200


@admin_bp.put("/policies")
@require_roles("ADMIN")
def put_policies():
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not data:
        return jsonify(error="JSON object of policy values required"), 400

    policy = update_policy(data, actor_id=g.actor.id)

    log_event("POLICY_UPDATE", actor_id=g.actor.id, entity="business_policy", metadata=data)
    return jsonify(policy.to_dict()), 200

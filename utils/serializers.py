def slot_json(s):
    return {
        "id": s.id,
        "date": s.slot_date.isoformat(),
        "start_time": s.start_time.strftime("%H:%M"),
        "end_time": s.end_time.strftime("%H:%M"),
        "duration_minutes": s.duration_minutes,
        "status": s.status.value,
        "block_reason": s.block_reason,
    }


def booking_json(b):
    return {
        "id": b.id,
        "reference": b.reference,
        "slot_id": b.slot_id,
        "slot": slot_json(b.slot) if b.slot else None,
        "customer_id": b.customer_id,
        "vehicle_id": b.vehicle_id,
        "status": b.status.value,
        "status_change_reason": b.status_change_reason,
        "total_price": b.total_price,
        "payment_status": b.payment_status.value,
        "fee_amount": b.fee_amount,
        "reschedule_count": b.reschedule_count,
        "created_at": b.created_at.isoformat(),
        "updated_at": b.updated_at.isoformat() if b.updated_at else None,
        "cancelled_at": b.cancelled_at.isoformat() if b.cancelled_at else None,
    }


def request_json(r):
    return {
        "id": r.id,
        "booking_id": r.booking_id,
        "booking_reference": r.booking.reference if r.booking else None,
        "original_slot": slot_json(r.original_slot) if r.original_slot else None,
        "requested_slot": slot_json(r.requested_slot) if r.requested_slot else None,
        "reason": r.reason,
        "status": r.status.value,
        "fee_amount": r.fee_amount,
        "requested_at": r.requested_at.isoformat(),
        "responded_at": r.responded_at.isoformat() if r.responded_at else None,
        "admin_notes": r.admin_notes,
    }


def template_json(t):
    return {
        "day_of_week": t.day_of_week,
        "is_working_day": t.is_working_day,
        "start_time": t.start_time.strftime("%H:%M") if t.start_time else None,
        "end_time": t.end_time.strftime("%H:%M") if t.end_time else None,
        "slot_duration_minutes": t.slot_duration_minutes,
        "break_start": t.break_start.strftime("%H:%M") if t.break_start else None,
        "break_end": t.break_end.strftime("%H:%M") if t.break_end else None,
    }

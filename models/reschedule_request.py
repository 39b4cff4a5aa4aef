import enum
from datetime import datetime
from models.db import db


class RequestStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DECLINED = "declined"
    EXPIRED = "expired"


class RescheduleRequest(db.Model):
    __tablename__ = "reschedule_requests"

    id = db.Column(db.Integer, primary_key=True)

    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, index=True)
    original_slot_id = db.Column(db.Integer, db.ForeignKey("slots.id"), nullable=False)
    requested_slot_id = db.Column(db.Integer, db.ForeignKey("slots.id"), nullable=False)

    reason = db.Column(db.String(500), nullable=True)
    status = db.Column(
        db.Enum(RequestStatus, native_enum=False, length=20, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=RequestStatus.PENDING,
    )
    fee_amount = db.Column(db.Integer, nullable=False, default=0)

    requested_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    responded_at = db.Column(db.DateTime, nullable=True)
    responded_by = db.Column(db.String(64), nullable=True)
    admin_notes = db.Column(db.String(500), nullable=True)

    booking = db.relationship("Booking", lazy="joined")
    requested_slot = db.relationship("Slot", foreign_keys=[requested_slot_id], lazy="joined")
    original_slot = db.relationship("Slot", foreign_keys=[original_slot_id], lazy="joined")

    __table_args__ = (
        db.Index(
            "uq_reschedule_pending_booking",
            "booking_id",
            unique=True,
            sqlite_where=db.text("status = 'pending'"),
            postgresql_where=db.text("status = 'pending'"),
        ),
    )

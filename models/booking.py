import enum
from datetime import datetime
from models.db import db


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    RESCHEDULE_REQUESTED = "reschedule_requested"
    RESCHEDULE_APPROVED = "reschedule_approved"
    RESCHEDULE_DECLINED = "reschedule_declined"


class PaymentStatus(str, enum.Enum):
    UNPAID = "unpaid"
    PAID = "paid"
    REFUNDED = "refunded"


# A slot may be held by at most one booking in one of these statuses
ACTIVE_BOOKING_STATUSES = (
    BookingStatus.PENDING,
    BookingStatus.CONFIRMED,
    BookingStatus.IN_PROGRESS,
    BookingStatus.RESCHEDULE_REQUESTED,
)

_ACTIVE_SQL = "status IN ('pending', 'confirmed', 'in_progress', 'reschedule_requested')"


class Booking(db.Model):
    __tablename__ = "bookings"

    id = db.Column(db.Integer, primary_key=True)
    reference = db.Column(db.String(32), nullable=False, unique=True, index=True)

    slot_id = db.Column(db.Integer, db.ForeignKey("slots.id"), nullable=False, index=True)
    customer_id = db.Column(db.String(64), nullable=False, index=True)
    vehicle_id = db.Column(db.String(64), nullable=False)

    status = db.Column(
        db.Enum(BookingStatus, native_enum=False, length=32, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=BookingStatus.PENDING,
    )
    status_change_reason = db.Column(db.String(255), nullable=True)

    total_price = db.Column(db.Integer, nullable=False, default=0)  # pence
    payment_status = db.Column(
        db.Enum(PaymentStatus, native_enum=False, length=20, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=PaymentStatus.UNPAID,
    )
    # Fee owed for a late cancellation or in-window reschedule
    fee_amount = db.Column(db.Integer, nullable=False, default=0)

    reschedule_count = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    cancelled_at = db.Column(db.DateTime, nullable=True)

    slot = db.relationship("Slot", lazy="joined")

    __table_args__ = (
        # Backstop for the ledger: one active booking per slot, history kept
        db.Index(
            "uq_booking_active_slot",
            "slot_id",
            unique=True,
            sqlite_where=db.text(_ACTIVE_SQL),
            postgresql_where=db.text(_ACTIVE_SQL),
        ),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in (BookingStatus.COMPLETED, BookingStatus.CANCELLED)

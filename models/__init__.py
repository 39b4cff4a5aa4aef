from .db import db
from .audit_log import AuditLog
from .weekly_template import WeeklyTemplate
from .slot import Slot, SlotStatus
from .booking import Booking, BookingStatus, PaymentStatus, ACTIVE_BOOKING_STATUSES
from .reschedule_request import RescheduleRequest, RequestStatus
from .business_policy import BusinessPolicy

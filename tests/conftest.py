import threading
from datetime import date, timedelta

import pytest

from app import create_app
from config import TestConfig
from models import db
from models.booking import ACTIVE_BOOKING_STATUSES, Booking
from models.slot import Slot, SlotStatus
from scheduling import catalog

CUSTOMER = {"X-Actor-Id": "cust-1", "X-Actor-Role": "CUSTOMER"}
OTHER_CUSTOMER = {"X-Actor-Id": "cust-2", "X-Actor-Role": "CUSTOMER"}
ADMIN = {"X-Actor-Id": "admin-1", "X-Actor-Role": "ADMIN"}


def next_monday(weeks_ahead: int = 1) -> date:
    """A Monday at least a week out, clear of every policy window."""
    day = date.today() + timedelta(days=7 * weeks_ahead)
    while day.weekday() != 0:
        day += timedelta(days=1)
    return day


def by_start(slots):
    return {s.start_time.strftime("%H:%M"): s for s in slots}


def assert_slot_invariant():
    """booked <=> exactly one active booking references the slot."""
    db.session.expire_all()
    for slot in Slot.query.all():
        active = Booking.query.filter(
            Booking.slot_id == slot.id,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        ).count()
        assert active <= 1, f"slot {slot.id} has {active} active bookings"
        assert (slot.status == SlotStatus.BOOKED) == (active == 1), (
            f"slot {slot.id} is {slot.status.value} with {active} active bookings"
        )


def interleaved(app, load, act, between):
    """
    Run ``load`` then ``act`` in a second session (as a concurrent request
    would), committing ``between`` from this session after the load.
    Returns {"value": ...} or {"error": exc} for ``act``.
    """
    loaded, resume = threading.Event(), threading.Event()
    outcome = {}

    def worker():
        with app.app_context():
            try:
                load()
                loaded.set()
                resume.wait(10)
                outcome["value"] = act()
            except Exception as exc:
                outcome["error"] = exc
            finally:
                loaded.set()
                db.session.remove()

    thread = threading.Thread(target=worker)
    thread.start()
    loaded.wait(10)
    try:
        between()
    finally:
        resume.set()
        thread.join(10)
    return outcome


@pytest.fixture
def app(tmp_path):
    class _Config(TestConfig):
        SQLALCHEMY_DATABASE_URI = "sqlite:///" + str(tmp_path / "detailslot-test.db")

    app = create_app(_Config)
    with app.app_context():
        yield app
        db.session.remove()
        db.engine.dispose()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def monday():
    return next_monday()


@pytest.fixture
def slots(app, monday):
    """The default template's Monday: 08:00, 10:00, 12:00, 14:00, 16:00."""
    return by_start(catalog.generate_slots_for_date(monday))

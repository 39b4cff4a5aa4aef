import logging
from datetime import datetime, timedelta

import click
from flask import Flask, jsonify, request
from flask_migrate import Migrate
from sqlalchemy import inspect

from config import Config
from routes import health_bp, booking_bp, reschedule_bp, admin_bp, audit_bp

from models import db
from scheduling.errors import SchedulingError
from utils.seed import seed_weekly_template
from utils.auth_context import load_current_actor

logger = logging.getLogger(__name__)


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(booking_bp)
    app.register_blueprint(reschedule_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(audit_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Seed the default weekly template at startup (safe & idempotent)
    with app.app_context():
        if app.config.get("CREATE_TABLES"):
            db.create_all()
        if inspect(db.engine).has_table("weekly_templates"):
            seed_weekly_template()

    @app.before_request
    def _load_actor():
        load_current_actor()

    @app.errorhandler(SchedulingError)
    def _scheduling_error(exc):
        logger.info("%s %s -> %s: %s", request.method, request.path, exc.code, exc.message)
        return jsonify(exc.to_dict()), exc.status_code

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_cli(app)

    return app

#-------------------------
from scheduling import catalog, reschedule
from utils.audit import log_event
from utils.time_utils import parse_date

def register_cli(app):
    @app.cli.command("seed-template")
    def seed_template():
        """Insert any missing weekly template rows (Mon-Sat 08:00-18:00)."""
        seed_weekly_template()
        print("Weekly template seeded")

    @app.cli.command("generate-slots")
    @click.argument("start_date")
    @click.argument("end_date", required=False)
    def generate_slots(start_date, end_date):
        """Generate template slots for START_DATE..END_DATE (YYYY-MM-DD)."""
        start = parse_date(start_date)
        end = parse_date(end_date) if end_date else start
        try:
            slots = catalog.generate_slots_for_range(start, end)
        except SchedulingError as exc:
            raise click.ClickException(exc.message)
        log_event("SLOT_GENERATE", entity="slot", metadata={"start_date": start, "end_date": end, "slots": len(slots)})
        print(f"{len(slots)} slots on the calendar for {start} .. {end}")

    @app.cli.command("expire-reschedules")
    @click.option("--hours", type=int, default=None, help="Age after which pending requests expire.")
    def expire_reschedules(hours):
        """Expire reschedule requests left pending too long."""
        hours = hours if hours is not None else app.config.get("RESCHEDULE_REQUEST_TTL_HOURS", 48)
        cutoff = datetime.utcnow() - timedelta(hours=hours)
        count = reschedule.expire_stale_requests(cutoff)
        log_event("RESCHEDULE_EXPIRE", entity="reschedule_request", metadata={"hours": hours, "expired": count})
        print(f"{count} reschedule request(s) expired")

#-------------------------




if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)

from dataclasses import fields, replace

from flask import current_app

from models import db
from models.business_policy import BusinessPolicy
from scheduling.errors import InvalidPolicyError
from scheduling.policy import BookingPolicy

POLICY_KEYS = tuple(f.name for f in fields(BookingPolicy))


def default_policy() -> BookingPolicy:
    cfg = current_app.config
    return BookingPolicy(
        cancellation_window_hours=cfg.get("CANCELLATION_WINDOW_HOURS", 24),
        late_cancellation_fee=cfg.get("LATE_CANCELLATION_FEE", 0),
        reschedule_window_hours=cfg.get("RESCHEDULE_WINDOW_HOURS", 24),
        reschedule_fee=cfg.get("RESCHEDULE_FEE", 0),
        max_reschedules=cfg.get("MAX_RESCHEDULES", 3),
    )


def load_policy() -> BookingPolicy:
    """Config defaults overlaid with admin-edited rows."""
    overrides = {
        row.policy_key: row.policy_value
        for row in BusinessPolicy.query.filter(BusinessPolicy.policy_key.in_(POLICY_KEYS)).all()
    }
    return replace(default_policy(), **overrides)


def update_policy(values: dict, actor_id=None) -> BookingPolicy:
    unknown = set(values) - set(POLICY_KEYS)
    if unknown:
        raise InvalidPolicyError("Unknown policy key(s)", unknown=sorted(unknown))

    for key, value in values.items():
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise InvalidPolicyError(f"{key} must be a non-negative integer")

    existing = {
        row.policy_key: row
        for row in BusinessPolicy.query.filter(BusinessPolicy.policy_key.in_(list(values))).all()
    }
    for key, value in values.items():
        row = existing.get(key)
        if row is None:
            row = BusinessPolicy(policy_key=key, policy_value=value)
            db.session.add(row)
        row.policy_value = value
        row.updated_by = actor_id
    db.session.commit()
    return load_policy()

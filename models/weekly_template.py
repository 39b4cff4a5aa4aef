from datetime import datetime
from models.db import db

class WeeklyTemplate(db.Model):
    __tablename__ = "weekly_templates"

    id = db.Column(db.Integer, primary_key=True)

    # 0 = Sunday ... 6 = Saturday
    day_of_week = db.Column(db.Integer, nullable=False, unique=True)
    is_working_day = db.Column(db.Boolean, default=True, nullable=False)
    start_time = db.Column(db.Time, nullable=True)
    end_time = db.Column(db.Time, nullable=True)
    slot_duration_minutes = db.Column(db.Integer, nullable=False, default=120)

    break_start = db.Column(db.Time, nullable=True)
    break_end = db.Column(db.Time, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.CheckConstraint("day_of_week >= 0 AND day_of_week <= 6", name="ck_template_day_of_week"),
    )

from datetime import time

from models import db
from models.weekly_template import WeeklyTemplate

# 0 = Sunday ... 6 = Saturday; Sunday closed
DEFAULT_WEEK = {
    dow: dict(is_working_day=dow != 0, start_time=time(8, 0), end_time=time(18, 0), slot_duration_minutes=120)
    for dow in range(7)
}

def seed_weekly_template():
    existing = {t.day_of_week for t in WeeklyTemplate.query.all()}
    for dow, values in DEFAULT_WEEK.items():
        if dow not in existing:
            db.session.add(WeeklyTemplate(day_of_week=dow, **values))
    db.session.commit()

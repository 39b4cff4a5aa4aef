from datetime import datetime
from models.db import db

class BusinessPolicy(db.Model):
    __tablename__ = "business_policies"

    id = db.Column(db.Integer, primary_key=True)
    policy_key = db.Column(db.String(64), nullable=False, unique=True)
    policy_value = db.Column(db.Integer, nullable=False)

    updated_by = db.Column(db.String(64), nullable=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

from datetime import datetime
from models.db import db


class UsageLimit(db.Model):
    __tablename__ = "usage_limits"
    __table_args__ = (
        db.UniqueConstraint("user_id", "service_name", "usage_date", name="uq_usage_limits_user_service_date"),
        db.Index("ix_usage_limits_user_date", "user_id", "usage_date"),
    )

    id = db.Column(db.Integer, primary_key=True)

    # String, not a FK: service accounts and externally authenticated users are counted too
    user_id = db.Column(db.String(255), nullable=False)
    service_name = db.Column(db.String(50), nullable=False)
    usage_date = db.Column(db.Date, nullable=False)
    usage_count = db.Column(db.Integer, default=1, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

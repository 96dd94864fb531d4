from datetime import datetime
from models.db import db


class TwoFactorAttempt(db.Model):
    __tablename__ = "two_factor_attempts"
    __table_args__ = (
        db.Index("ix_two_factor_attempts_user_time", "user_id", "attempt_time"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    ip_address = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)

    success = db.Column(db.Boolean, nullable=False)
    failure_reason = db.Column(db.String(255), nullable=True)

    attempt_time = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)


class TwoFactorBackupCode(db.Model):
    """One row per unconsumed backup code; consuming a code deletes its row."""
    __tablename__ = "two_factor_backup_codes"
    __table_args__ = (
        db.UniqueConstraint("user_id", "code_hash", name="uq_two_factor_backup_codes_user_hash"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # HMAC-SHA256(user salt, code), hex
    code_hash = db.Column(db.String(64), nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    user = db.relationship("User", back_populates="backup_codes")

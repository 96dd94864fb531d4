from datetime import datetime
from models.db import db
from utils.roles import UserRole


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    role = db.Column(
        db.Enum(UserRole, name="user_role", values_callable=lambda e: [m.value for m in e]),
        default=UserRole.STUDENT,
        nullable=False,
    )
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    # Account lockout
    failed_login_attempts = db.Column(db.Integer, default=0, nullable=False)
    account_locked = db.Column(db.Boolean, default=False, nullable=False)
    lockout_until = db.Column(db.DateTime, nullable=True)

    # Two-factor auth. The secret has to stay recoverable to recompute TOTP codes;
    # backup codes are stored only as salted hashes (see TwoFactorBackupCode).
    two_factor_enabled = db.Column(db.Boolean, default=False, nullable=False)
    two_factor_secret = db.Column(db.String(64), nullable=True)
    two_factor_backup_salt = db.Column(db.String(64), nullable=True)

    backup_codes = db.relationship(
        "TwoFactorBackupCode",
        back_populates="user",
        cascade="all, delete-orphan",
        lazy="dynamic",
    )

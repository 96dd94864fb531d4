"""
TOTP two-factor authentication with single-use backup codes.

Lifecycle per user: not configured -> initialized (secret + backup codes
stored, not yet enforced) -> enabled -> back to not configured on disable.
"""
import hashlib
import hmac
import logging
import math
import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import List

import pyotp
from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError

from models.two_factor import TwoFactorAttempt, TwoFactorBackupCode
from models.user import User
from security.errors import (
    AccountNotFound,
    InvalidBackupCode,
    StorageUnavailable,
    TwoFactorAlreadyEnabled,
    TwoFactorInvalidCode,
    TwoFactorNotConfigured,
    TwoFactorRateLimited,
)
from utils.clock import SystemClock, unix_time
from utils.qr import qr_data_uri

logger = logging.getLogger(__name__)


@dataclass
class TwoFactorSetup:
    secret: str
    setup_uri: str
    qr_code_data_uri: str
    # plaintext, returned once; only hashes are stored
    backup_codes: List[str]


@dataclass
class TwoFactorStatus:
    enabled: bool
    configured: bool
    backup_codes_remaining: int


def generate_backup_codes(count: int, length: int) -> List[str]:
    codes: List[str] = []
    while len(codes) < count:
        code = secrets.token_hex(math.ceil(length / 2))[:length].upper()
        if code not in codes:
            codes.append(code)
    return codes


def normalize_backup_code(code) -> str:
    return ("" if code is None else str(code)).strip().replace("-", "").replace(" ", "").upper()


def hash_backup_code(salt: str, code: str) -> str:
    return hmac.new(salt.encode("utf-8"), normalize_backup_code(code).encode("utf-8"), hashlib.sha256).hexdigest()


class TwoFactorManager:
    def __init__(
        self,
        session,
        issuer: str = "LearnBridge",
        max_attempts: int = 3,
        attempt_window: timedelta = timedelta(minutes=15),
        backup_code_count: int = 10,
        backup_code_length: int = 10,
        qr_box_size: int = 10,
        clock=None,
    ):
        self.session = session
        self.issuer = issuer
        self.max_attempts = max_attempts
        self.attempt_window = attempt_window
        self.backup_code_count = backup_code_count
        self.backup_code_length = backup_code_length
        self.qr_box_size = qr_box_size
        self.clock = clock or SystemClock()

    @classmethod
    def from_config(cls, session, config, clock=None) -> "TwoFactorManager":
        return cls(
            session,
            issuer=config.get("TWO_FACTOR_ISSUER", "LearnBridge"),
            max_attempts=config.get("TWO_FACTOR_MAX_ATTEMPTS", 3),
            attempt_window=timedelta(minutes=config.get("TWO_FACTOR_ATTEMPT_WINDOW_MINUTES", 15)),
            backup_code_count=config.get("TWO_FACTOR_BACKUP_CODE_COUNT", 10),
            backup_code_length=config.get("TWO_FACTOR_BACKUP_CODE_LENGTH", 10),
            qr_box_size=config.get("TWO_FACTOR_QR_BOX_SIZE", 10),
            clock=clock,
        )

    def initialize(self, user_id: int, email: str) -> TwoFactorSetup:
        """
        Generates a fresh secret and backup codes, replacing any earlier
        un-enabled setup. Raises TwoFactorAlreadyEnabled once 2FA is on.
        """
        secret = pyotp.random_base32()
        setup_uri = pyotp.TOTP(secret).provisioning_uri(name=email, issuer_name=self.issuer)
        qr_code = qr_data_uri(setup_uri, box_size=self.qr_box_size)
        backup_codes = generate_backup_codes(self.backup_code_count, self.backup_code_length)
        salt = secrets.token_hex(16)

        # row lock is taken only once everything is generated
        user = self._load_user(user_id, for_update=True)
        if user.two_factor_enabled:
            self.session.rollback()
            raise TwoFactorAlreadyEnabled()
        now = self.clock.now()

        try:
            self.session.execute(
                delete(TwoFactorBackupCode)
                .where(TwoFactorBackupCode.user_id == user_id)
                .execution_options(synchronize_session=False)
            )
            user.two_factor_secret = secret
            user.two_factor_backup_salt = salt
            self.session.add_all([
                TwoFactorBackupCode(user_id=user_id, code_hash=hash_backup_code(salt, code), created_at=now)
                for code in backup_codes
            ])
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("Error initializing 2FA for user %s", user_id, exc_info=True)
            raise StorageUnavailable("Failed to initialize two-factor authentication") from exc

        logger.info("2FA initialized for user %s", user_id)
        return TwoFactorSetup(
            secret=secret,
            setup_uri=setup_uri,
            qr_code_data_uri=qr_code,
            backup_codes=backup_codes,
        )

    def verify_time_code(self, user_id: int, code: str, ip: str, user_agent: str) -> bool:
        """
        Checks a TOTP code, allowing one time step of drift either way.

        Raises TwoFactorNotConfigured without a secret and TwoFactorRateLimited
        when recent failures hit the cap; neither case is recorded. Every real
        verification is recorded as a TwoFactorAttempt.
        """
        now = self.clock.now()
        user = self._load_user(user_id, for_update=True)
        if not user.two_factor_secret:
            self.session.rollback()
            raise TwoFactorNotConfigured()

        try:
            recent_failures = self.session.execute(
                select(func.count(TwoFactorAttempt.id)).where(
                    TwoFactorAttempt.user_id == user_id,
                    TwoFactorAttempt.success.is_(False),
                    TwoFactorAttempt.attempt_time > now - self.attempt_window,
                )
            ).scalar_one()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("Error counting 2FA attempts for user %s", user_id, exc_info=True)
            raise StorageUnavailable() from exc

        if recent_failures >= self.max_attempts:
            self.session.rollback()
            logger.warning("2FA verification rate limited for user %s", user_id)
            raise TwoFactorRateLimited()

        is_valid = pyotp.TOTP(user.two_factor_secret).verify(
            ("" if code is None else str(code)).strip(), for_time=unix_time(now), valid_window=1
        )

        try:
            self.session.add(TwoFactorAttempt(
                user_id=user_id,
                ip_address=ip[:64] if ip else None,
                user_agent=user_agent[:255] if user_agent else None,
                success=is_valid,
                failure_reason=None if is_valid else "Invalid token",
                attempt_time=now,
            ))
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("Error recording 2FA attempt for user %s", user_id, exc_info=True)
            raise StorageUnavailable() from exc

        return is_valid

    def enable(self, user_id: int):
        """Turns enforcement on. Callers verify a code first."""
        user = self._load_user(user_id, for_update=True)
        if not user.two_factor_secret:
            self.session.rollback()
            raise TwoFactorNotConfigured()
        try:
            user.two_factor_enabled = True
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("Error enabling 2FA for user %s", user_id, exc_info=True)
            raise StorageUnavailable("Failed to enable two-factor authentication") from exc
        logger.info("2FA enabled for user %s", user_id)

    def confirm_enable(self, user_id: int, code: str, ip: str, user_agent: str):
        """Enables 2FA once the user proves their authenticator app works."""
        if not self.verify_time_code(user_id, code, ip, user_agent):
            raise TwoFactorInvalidCode()
        self.enable(user_id)

    def disable(self, user_id: int):
        user = self._load_user(user_id, for_update=True)
        try:
            self.session.execute(
                delete(TwoFactorBackupCode)
                .where(TwoFactorBackupCode.user_id == user_id)
                .execution_options(synchronize_session=False)
            )
            user.two_factor_enabled = False
            user.two_factor_secret = None
            user.two_factor_backup_salt = None
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("Error disabling 2FA for user %s", user_id, exc_info=True)
            raise StorageUnavailable("Failed to disable two-factor authentication") from exc
        logger.info("2FA disabled for user %s", user_id)

    def verify_backup_code(self, user_id: int, code: str) -> bool:
        """
        Consumes a backup code. The DELETE's row count decides the outcome,
        so a code can only ever be accepted once, even under concurrent use.
        Unknown and already-used codes both return False.
        """
        if not normalize_backup_code(code):
            return False
        try:
            salt = self.session.execute(
                select(User.two_factor_backup_salt).where(User.id == user_id)
            ).scalar_one_or_none()
            if not salt:
                self.session.rollback()
                return False

            result = self.session.execute(
                delete(TwoFactorBackupCode)
                .where(
                    TwoFactorBackupCode.user_id == user_id,
                    TwoFactorBackupCode.code_hash == hash_backup_code(salt, code),
                )
                .execution_options(synchronize_session=False)
            )
            consumed = result.rowcount == 1
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("Error verifying backup code for user %s", user_id, exc_info=True)
            raise StorageUnavailable() from exc

        if consumed:
            logger.info("Backup code used for user %s", user_id)
        return consumed

    def redeem_backup_code(self, user_id: int, code: str) -> int:
        """Consumes a backup code or raises InvalidBackupCode. Returns how many are left."""
        if not self.verify_backup_code(user_id, code):
            raise InvalidBackupCode()
        return self.remaining_backup_codes(user_id)

    def remaining_backup_codes(self, user_id: int) -> int:
        try:
            return self.session.execute(
                select(func.count(TwoFactorBackupCode.id)).where(TwoFactorBackupCode.user_id == user_id)
            ).scalar_one()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("Error getting remaining backup codes for user %s", user_id, exc_info=True)
            raise StorageUnavailable("Failed to get remaining backup codes") from exc

    def status(self, user_id: int) -> TwoFactorStatus:
        user = self._load_user(user_id)
        return TwoFactorStatus(
            enabled=user.two_factor_enabled,
            configured=user.two_factor_secret is not None,
            backup_codes_remaining=self.remaining_backup_codes(user_id),
        )

    def _load_user(self, user_id: int, for_update: bool = False) -> User:
        stmt = select(User).where(User.id == user_id)
        if for_update:
            # row lock on PostgreSQL; a no-op on SQLite
            stmt = stmt.with_for_update()
        try:
            user = self.session.execute(stmt).scalar_one_or_none()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("Error loading user %s", user_id, exc_info=True)
            raise StorageUnavailable() from exc
        if user is None:
            raise AccountNotFound()
        return user

"""
Failed-login tracking and temporary account lockout.

State lives on the users row (failed_login_attempts, account_locked,
lockout_until); every attempt is also appended to login_attempts.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import and_, case, or_, select, update
from sqlalchemy.exc import SQLAlchemyError

from models.login_attempt import LoginAttempt
from models.user import User
from security.errors import AccountLocked
from utils.clock import SystemClock

logger = logging.getLogger(__name__)


@dataclass
class LockStatus:
    locked: bool
    remaining_ms: Optional[int] = None
    lockout_until: Optional[datetime] = None


@dataclass
class LockoutResult:
    account_locked: bool
    lockout_until: Optional[datetime] = None
    failed_attempts: int = 0
    # False when the attempt could not be stored; callers should deny login
    recorded: bool = True


def _trim(value: Optional[str], size: int) -> Optional[str]:
    return value[:size] if value else None


class LockoutTracker:
    def __init__(self, session, max_attempts: int = 5, lockout_duration: timedelta = timedelta(minutes=15), clock=None):
        self.session = session
        self.max_attempts = max_attempts
        self.lockout_duration = lockout_duration
        self.clock = clock or SystemClock()

    @classmethod
    def from_config(cls, session, config, clock=None) -> "LockoutTracker":
        return cls(
            session,
            max_attempts=config.get("MAX_LOGIN_ATTEMPTS", 5),
            lockout_duration=timedelta(minutes=config.get("LOCKOUT_MINUTES", 15)),
            clock=clock,
        )

    def is_locked(self, user_id: int) -> LockStatus:
        """
        Returns the current lock state. An expired lock is cleared on read.
        Storage errors report "not locked" so a DB hiccup can't lock everyone out.
        """
        now = self.clock.now()
        try:
            row = self.session.execute(
                select(User.account_locked, User.lockout_until).where(User.id == user_id)
            ).one_or_none()

            if row is None or not row.account_locked:
                return LockStatus(locked=False)

            if row.lockout_until is not None and row.lockout_until <= now:
                self._clear_expired_lock(user_id, now)
                self.session.commit()
                logger.info("Lockout expired for user %s; account unlocked", user_id)
                return LockStatus(locked=False)
        except SQLAlchemyError:
            self.session.rollback()
            logger.error("Error checking account lock status for user %s", user_id, exc_info=True)
            return LockStatus(locked=False)

        if row.lockout_until is None:
            return LockStatus(locked=True)

        remaining_ms = max(0, int((row.lockout_until - now).total_seconds() * 1000))
        return LockStatus(locked=True, remaining_ms=remaining_ms, lockout_until=row.lockout_until)

    def ensure_not_locked(self, user_id: int) -> None:
        status = self.is_locked(user_id)
        if status.locked:
            raise AccountLocked(status)

    def record_failed_attempt(self, user_id: Optional[int], email: str, ip: str, user_agent: str, reason: str) -> LockoutResult:
        """
        Logs the attempt and bumps the failure counter in one transaction.

        The counter update and the lock decision are a single UPDATE, so two
        failures racing past the threshold both get counted and only the first
        one sets lockout_until.
        """
        now = self.clock.now()
        lock_until = now + self.lockout_duration
        try:
            row = None
            if user_id is not None:
                row = self.session.execute(
                    self._failure_statement(user_id, now, lock_until)
                ).one_or_none()

            # no users row matched: log the attempt as an unknown account
            self.session.add(LoginAttempt(
                user_id=user_id if row is not None else None,
                email=email,
                ip_address=_trim(ip, 64),
                user_agent=_trim(user_agent, 255),
                success=False,
                failure_reason=_trim(reason, 255),
                attempt_time=now,
            ))
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            logger.error("Error recording failed login attempt for user %s", user_id, exc_info=True)
            return LockoutResult(account_locked=False, recorded=False)

        if row is None:
            return LockoutResult(account_locked=False)

        if not row.account_locked:
            return LockoutResult(account_locked=False, failed_attempts=row.failed_login_attempts)

        if row.lockout_until == lock_until:
            logger.warning(
                "Account locked for user %s until %s after %s failed attempts",
                user_id, lock_until.isoformat(), row.failed_login_attempts,
            )
        return LockoutResult(
            account_locked=True,
            lockout_until=row.lockout_until,
            failed_attempts=row.failed_login_attempts,
        )

    def record_successful_login(self, user_id: int, email: str, ip: str, user_agent: str) -> bool:
        """Logs the attempt and resets counter and lock. False if nothing was stored."""
        now = self.clock.now()
        try:
            self.session.add(LoginAttempt(
                user_id=user_id,
                email=email,
                ip_address=_trim(ip, 64),
                user_agent=_trim(user_agent, 255),
                success=True,
                attempt_time=now,
            ))
            self.session.execute(
                update(User)
                .where(User.id == user_id)
                .values(failed_login_attempts=0, account_locked=False, lockout_until=None)
            )
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            logger.error("Error recording successful login for user %s", user_id, exc_info=True)
            return False
        return True

    def unlock_account(self, user_id: int) -> bool:
        try:
            self.session.execute(
                update(User)
                .where(User.id == user_id)
                .values(failed_login_attempts=0, account_locked=False, lockout_until=None)
            )
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            logger.error("Error unlocking account for user %s", user_id, exc_info=True)
            return False

        logger.info("Account unlocked for user %s", user_id)
        return True

    def login_history(self, user_id: int, limit: int = 10) -> List[LoginAttempt]:
        try:
            return list(self.session.execute(
                select(LoginAttempt)
                .where(LoginAttempt.user_id == user_id)
                .order_by(LoginAttempt.attempt_time.desc(), LoginAttempt.id.desc())
                .limit(limit)
            ).scalars())
        except SQLAlchemyError:
            self.session.rollback()
            logger.error("Error fetching login history for user %s", user_id, exc_info=True)
            return []

    def _clear_expired_lock(self, user_id: int, now: datetime):
        # guarded so a lock set after our read is left alone
        self.session.execute(
            update(User)
            .where(
                User.id == user_id,
                User.account_locked.is_(True),
                User.lockout_until <= now,
            )
            .values(failed_login_attempts=0, account_locked=False, lockout_until=None)
        )

    def _failure_statement(self, user_id: int, now: datetime, lock_until: datetime):
        expired = and_(
            User.account_locked.is_(True),
            User.lockout_until.is_not(None),
            User.lockout_until <= now,
        )
        attempts = case((expired, 1), else_=User.failed_login_attempts + 1)
        locks_now = and_(
            attempts >= self.max_attempts,
            or_(User.account_locked.is_(False), expired),
        )
        return (
            update(User)
            .where(User.id == user_id)
            .values(
                failed_login_attempts=attempts,
                account_locked=case((locks_now, True), (expired, False), else_=User.account_locked),
                lockout_until=case((locks_now, lock_until), (expired, None), else_=User.lockout_until),
            )
            .returning(User.failed_login_attempts, User.account_locked, User.lockout_until)
            .execution_options(synchronize_session=False)
        )

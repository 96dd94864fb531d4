"""
Per-user, per-service daily quotas.

Counters live in usage_limits, one row per (user, service, calendar day).
Incrementing is a single INSERT ... ON CONFLICT DO UPDATE statement so that
concurrent requests from the same user never lose an update.
"""
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError

from models.usage_limit import UsageLimit
from security.errors import QuotaExceeded
from utils.clock import SystemClock
from utils.roles import is_quota_exempt

logger = logging.getLogger(__name__)

DEFAULT_DAILY_LIMIT = 3

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


@dataclass
class LimitDecision:
    allowed: bool
    current_usage: int
    # None means unlimited (exempt roles)
    limit: Optional[int]
    remaining: Optional[int]
    service: Optional[str] = None
    exempt: bool = False
    error: Optional[str] = None

    def as_dict(self) -> dict:
        return {
            "service": self.service,
            "allowed": self.allowed,
            "currentUsage": self.current_usage,
            "limit": self.limit,
            "remaining": self.remaining,
        }


@dataclass
class UsageSummary:
    exempt: bool
    services: List[LimitDecision] = field(default_factory=list)
    error: Optional[str] = None


def _identity(user):
    if isinstance(user, Mapping):
        user_id, role = user.get("id"), user.get("role")
    else:
        user_id, role = getattr(user, "id", None), getattr(user, "role", None)
    if user_id is None:
        raise ValueError("user must carry an id")
    return str(user_id), role


class UsageLimiter:
    def __init__(self, session, limits: Dict[str, int] = None, default_limit: int = DEFAULT_DAILY_LIMIT, clock=None):
        self.session = session
        self.limits = dict(limits or {})
        self.default_limit = default_limit
        self.clock = clock or SystemClock()

    @classmethod
    def from_config(cls, session, config, clock=None) -> "UsageLimiter":
        return cls(
            session,
            limits=config.get("USAGE_DAILY_LIMITS", {}),
            default_limit=config.get("USAGE_DEFAULT_DAILY_LIMIT", DEFAULT_DAILY_LIMIT),
            clock=clock,
        )

    def limit_for(self, service_name: str) -> int:
        return self.limits.get(service_name, self.default_limit)

    def check_limit(self, user, service_name: str) -> LimitDecision:
        """
        Reads today's counter and compares it to the service limit.
        Exempt roles never touch storage. Storage errors fail open.
        """
        user_id, role = _identity(user)
        if is_quota_exempt(role):
            return LimitDecision(
                allowed=True, current_usage=0, limit=None, remaining=None,
                service=service_name, exempt=True,
            )

        limit = self.limit_for(service_name)
        today = self.clock.today()
        try:
            current = self.session.execute(
                select(UsageLimit.usage_count).where(
                    UsageLimit.user_id == user_id,
                    UsageLimit.service_name == service_name,
                    UsageLimit.usage_date == today,
                )
            ).scalar_one_or_none() or 0
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("Usage check failed for user %s, service %s; allowing", user_id, service_name, exc_info=True)
            return LimitDecision(
                allowed=True, current_usage=0, limit=limit, remaining=limit,
                service=service_name, error=str(exc),
            )

        return _decision(service_name, current, limit)

    def ensure_within_limit(self, user, service_name: str) -> LimitDecision:
        """Like check_limit, but raises QuotaExceeded when denied."""
        decision = self.check_limit(user, service_name)
        if not decision.allowed:
            raise QuotaExceeded(decision)
        return decision

    def record_usage(self, user, service_name: str) -> Optional[int]:
        """
        Adds one use for today and returns the new count.
        Returns None for exempt roles, or when the write failed (logged, not raised).
        """
        user_id, role = _identity(user)
        if is_quota_exempt(role):
            return None

        try:
            dialect = self.session.get_bind().dialect.name
            insert = _DIALECT_INSERTS.get(dialect)
            if insert is None:
                logger.error(
                    "Could not record usage for user %s, service %s: no upsert support for %s",
                    user_id, service_name, dialect,
                )
                return None
            stmt = _increment_statement(insert, user_id, service_name, self.clock.today(), self.clock.now())
            count = self.session.execute(stmt).scalar_one()
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            logger.error("Could not record usage for user %s, service %s", user_id, service_name, exc_info=True)
            return None

        logger.debug("Recorded usage for user %s, service %s. New count: %s", user_id, service_name, count)
        return count

    def usage_summary(self, user) -> UsageSummary:
        """Today's usage for every configured service."""
        user_id, role = _identity(user)
        services = list(self.limits)
        if is_quota_exempt(role):
            return UsageSummary(
                exempt=True,
                services=[
                    LimitDecision(allowed=True, current_usage=0, limit=None, remaining=None, service=s, exempt=True)
                    for s in services
                ],
            )

        today = self.clock.today()
        try:
            rows = self.session.execute(
                select(UsageLimit.service_name, UsageLimit.usage_count).where(
                    UsageLimit.user_id == user_id,
                    UsageLimit.usage_date == today,
                )
            ).all()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("Usage summary failed for user %s", user_id, exc_info=True)
            return UsageSummary(
                exempt=False,
                services=[_decision(s, 0, self.limit_for(s)) for s in services],
                error=str(exc),
            )

        usage = {name: count for name, count in rows}
        return UsageSummary(
            exempt=False,
            services=[_decision(s, usage.get(s, 0), self.limit_for(s)) for s in services],
        )


def _increment_statement(insert, user_id: str, service_name: str, today: date, now: datetime):
    table = UsageLimit.__table__
    stmt = insert(table).values(
        user_id=user_id,
        service_name=service_name,
        usage_date=today,
        usage_count=1,
        created_at=now,
        updated_at=now,
    )
    return stmt.on_conflict_do_update(
        index_elements=[table.c.user_id, table.c.service_name, table.c.usage_date],
        set_={"usage_count": table.c.usage_count + 1, "updated_at": now},
    ).returning(table.c.usage_count)


def _decision(service_name: str, current: int, limit: int) -> LimitDecision:
    return LimitDecision(
        allowed=current < limit,
        current_usage=current,
        limit=limit,
        remaining=max(0, limit - current),
        service=service_name,
    )

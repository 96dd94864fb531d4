from datetime import datetime, timedelta

import pytest
from sqlalchemy.pool import StaticPool

from app import create_app
from config import Config
from models import db
from models.user import User
from utils.roles import UserRole


class ManualClock:
    """Settable stand-in for SystemClock."""

    def __init__(self, start: datetime):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def today(self):
        return self.current.date()

    def advance(self, **kwargs):
        self.current += timedelta(**kwargs)


class GuardTestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SQLALCHEMY_ENGINE_OPTIONS = {
        "connect_args": {"check_same_thread": False},
        "poolclass": StaticPool,
    }
    LOG_LEVEL = "DEBUG"

    USAGE_DEFAULT_DAILY_LIMIT = 3
    USAGE_DAILY_LIMITS = {
        "quiz_attempt": 3,
        "lesson_plan": 3,
        "view_learning_path": 10,
    }

    MAX_LOGIN_ATTEMPTS = 5
    LOCKOUT_MINUTES = 15

    TWO_FACTOR_ISSUER = "LearnBridge"
    TWO_FACTOR_MAX_ATTEMPTS = 3
    TWO_FACTOR_ATTEMPT_WINDOW_MINUTES = 15
    TWO_FACTOR_BACKUP_CODE_COUNT = 10
    TWO_FACTOR_BACKUP_CODE_LENGTH = 10
    TWO_FACTOR_QR_BOX_SIZE = 2


@pytest.fixture()
def clock():
    return ManualClock(datetime(2026, 3, 10, 9, 0, 0))


@pytest.fixture()
def app(clock):
    app = create_app(GuardTestConfig, clock=clock)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def make_user(app):
    def _make_user(email, role=UserRole.STUDENT, **fields):
        user = User(email=email, role=role, **fields)
        db.session.add(user)
        db.session.commit()
        return user
    return _make_user


@pytest.fixture()
def student(make_user):
    return make_user("student@example.com")


@pytest.fixture()
def admin(make_user):
    return make_user("admin@example.com", role=UserRole.ADMIN)


@pytest.fixture()
def limiter(app):
    return app.extensions["usage_limiter"]


@pytest.fixture()
def lockout(app):
    return app.extensions["lockout_tracker"]


@pytest.fixture()
def two_factor(app):
    return app.extensions["two_factor"]

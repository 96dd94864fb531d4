import threading
from datetime import datetime, timedelta

import pytest

from app import create_app
from models import db
from models.login_attempt import LoginAttempt
from models.user import User
from tests.conftest import GuardTestConfig, ManualClock


class PerThreadClock(ManualClock):
    """ManualClock whose now() can be offset per thread."""

    def __init__(self, start: datetime):
        super().__init__(start)
        self._local = threading.local()

    def shift(self, **kwargs):
        self._local.offset = timedelta(**kwargs)

    def now(self) -> datetime:
        return self.current + getattr(self._local, "offset", timedelta())


@pytest.fixture()
def file_app(tmp_path):
    class FileDbConfig(GuardTestConfig):
        SQLALCHEMY_DATABASE_URI = "sqlite:///" + str(tmp_path / "guard.db")
        SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"check_same_thread": False, "timeout": 30}}

    clock = PerThreadClock(datetime(2026, 3, 10, 9, 0, 0))
    app = create_app(FileDbConfig, clock=clock)
    with app.app_context():
        db.create_all()
        user = User(email="racer@example.com")
        db.session.add(user)
        db.session.commit()
        app.config["RACER_ID"] = user.id
        db.session.remove()

    yield app, clock

    with app.app_context():
        db.session.remove()
        db.engine.dispose()


def _run_together(app, count, work):
    barrier = threading.Barrier(count)
    results = [None] * count

    def worker(i):
        with app.app_context():
            barrier.wait()
            results[i] = work(i)
            db.session.remove()

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results


def test_concurrent_failures_at_threshold_lock_exactly_once(file_app):
    app, clock = file_app
    lockout = app.extensions["lockout_tracker"]
    user_id = app.config["RACER_ID"]

    with app.app_context():
        for _ in range(4):
            lockout.record_failed_attempt(user_id, "racer@example.com", None, None, "Invalid password")
        db.session.remove()

    def fail(i):
        clock.shift(seconds=i + 1)
        own_lock_until = clock.now() + timedelta(minutes=15)
        result = lockout.record_failed_attempt(user_id, "racer@example.com", None, None, "Invalid password")
        return result, own_lock_until

    results = _run_together(app, 2, fail)

    assert sorted(r.failed_attempts for r, _ in results) == [5, 6]
    assert all(r.account_locked for r, _ in results)

    # the failure that crossed the threshold set the lock; the other left it alone
    winner, winner_lock = next((r, own) for r, own in results if r.failed_attempts == 5)
    loser, loser_lock = next((r, own) for r, own in results if r.failed_attempts == 6)
    assert winner.lockout_until == winner_lock
    assert loser.lockout_until == winner_lock != loser_lock

    with app.app_context():
        row = db.session.get(User, user_id)
        assert (row.failed_login_attempts, row.account_locked, row.lockout_until) == (6, True, winner_lock)
        assert LoginAttempt.query.filter_by(user_id=user_id).count() == 6
        db.session.remove()


def test_backup_code_accepted_once_under_concurrent_use(file_app):
    app, _ = file_app
    two_factor = app.extensions["two_factor"]
    user_id = app.config["RACER_ID"]

    with app.app_context():
        code = two_factor.initialize(user_id, "racer@example.com").backup_codes[0]
        db.session.remove()

    results = _run_together(app, 6, lambda i: two_factor.verify_backup_code(user_id, code))

    assert sorted(results) == [False] * 5 + [True]
    with app.app_context():
        assert two_factor.remaining_backup_codes(user_id) == 9
        db.session.remove()

import threading
from datetime import datetime

from app import create_app
from models import db
from tests.conftest import GuardTestConfig, ManualClock


def test_concurrent_record_usage_loses_no_updates(tmp_path):
    class FileDbConfig(GuardTestConfig):
        SQLALCHEMY_DATABASE_URI = "sqlite:///" + str(tmp_path / "guard.db")
        SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"check_same_thread": False, "timeout": 30}}
        USAGE_DAILY_LIMITS = {"quiz_attempt": 8}

    app = create_app(FileDbConfig, clock=ManualClock(datetime(2026, 3, 10, 9, 0, 0)))
    with app.app_context():
        db.create_all()

    limiter = app.extensions["usage_limiter"]
    user = {"id": 7, "role": "student"}
    limit = limiter.limit_for("quiz_attempt")

    barrier = threading.Barrier(limit)
    counts = []

    def worker():
        with app.app_context():
            barrier.wait()
            counts.append(limiter.record_usage(user, "quiz_attempt"))
            db.session.remove()

    threads = [threading.Thread(target=worker) for _ in range(limit)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    # every concurrent increment saw a distinct post-increment value
    assert sorted(counts) == list(range(1, limit + 1))

    with app.app_context():
        assert limiter.record_usage(user, "quiz_attempt") == limit + 1
        decision = limiter.check_limit(user, "quiz_attempt")
        assert decision.current_usage == limit + 1
        assert decision.allowed is False
        db.session.remove()
        db.engine.dispose()

import json
import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


def _limits_from_env(defaults: dict) -> dict:
    raw = os.getenv("USAGE_DAILY_LIMITS_JSON")
    if not raw:
        return dict(defaults)
    overrides = json.loads(raw)
    merged = dict(defaults)
    merged.update({str(k): int(v) for k, v in overrides.items()})
    return merged


class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to this module as learnbridge.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "learnbridge.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    # Daily usage quotas (per user, per service, per calendar day)
    USAGE_DEFAULT_DAILY_LIMIT = int(os.getenv("USAGE_DEFAULT_DAILY_LIMIT", "3"))
    USAGE_DAILY_LIMITS = _limits_from_env({
        # teacher tools
        "lesson_plan": 3,
        "assessment": 3,
        "rubric": 3,
        "table_of_specification": 3,
        # quizzes
        "quiz_attempt": 3,
        # learning paths
        "view_learning_path": 10,
        "generate_recommendations": 3,
        "complete_skill": 10,
        "unlock_achievement": 10,
        "track_progress": 20,
    })

    # Account lockout
    MAX_LOGIN_ATTEMPTS = int(os.getenv("MAX_LOGIN_ATTEMPTS", "5"))
    LOCKOUT_MINUTES = int(os.getenv("LOCKOUT_MINUTES", "15"))

    # Two-factor authentication (TOTP + backup codes)
    TWO_FACTOR_ISSUER = os.getenv("TWO_FACTOR_ISSUER", "LearnBridge")
    TWO_FACTOR_MAX_ATTEMPTS = int(os.getenv("TWO_FACTOR_MAX_ATTEMPTS", "3"))
    TWO_FACTOR_ATTEMPT_WINDOW_MINUTES = int(os.getenv("TWO_FACTOR_ATTEMPT_WINDOW_MINUTES", "15"))
    TWO_FACTOR_BACKUP_CODE_COUNT = int(os.getenv("TWO_FACTOR_BACKUP_CODE_COUNT", "10"))
    TWO_FACTOR_BACKUP_CODE_LENGTH = int(os.getenv("TWO_FACTOR_BACKUP_CODE_LENGTH", "10"))
    TWO_FACTOR_QR_BOX_SIZE = int(os.getenv("TWO_FACTOR_QR_BOX_SIZE", "10"))

    # Basic app settings
    DEBUG = False

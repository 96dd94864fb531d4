from .db import db
from .user import User
from .usage_limit import UsageLimit
from .login_attempt import LoginAttempt
from .two_factor import TwoFactorAttempt, TwoFactorBackupCode

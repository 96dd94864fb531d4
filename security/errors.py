class GuardError(Exception):
    """Base class for account-guard failures. `message` is safe to show to users."""

    message = "Request could not be completed"

    def __init__(self, message: str = None):
        super().__init__(message or self.message)
        if message:
            self.message = message


class StorageUnavailable(GuardError):
    message = "Service temporarily unavailable. Please try again."


class AccountNotFound(GuardError):
    message = "User not found"


class QuotaExceeded(GuardError):
    message = "Daily usage limit reached"

    def __init__(self, decision, message: str = None):
        super().__init__(message)
        self.decision = decision


class AccountLocked(GuardError):
    message = "Account temporarily locked. Try again later."

    def __init__(self, status, message: str = None):
        super().__init__(message)
        self.status = status


class TwoFactorError(GuardError):
    message = "Two-factor authentication failed"


class TwoFactorNotConfigured(TwoFactorError):
    message = "Two-factor authentication is not set up for this account"


class TwoFactorAlreadyEnabled(TwoFactorError):
    message = "Two-factor authentication is already enabled"


class TwoFactorRateLimited(TwoFactorError):
    message = "Too many failed attempts. Please try again later."


class TwoFactorInvalidCode(TwoFactorError):
    message = "Invalid verification code"


class InvalidBackupCode(TwoFactorError):
    # same text for unknown and already-used codes
    message = "Invalid backup code"

from enum import Enum
from typing import Optional, Union


class UserRole(str, Enum):
    STUDENT = "student"
    TEACHER = "teacher"
    ADMIN = "admin"
    # machine-to-machine callers (other microservices)
    SERVICE = "service"


QUOTA_EXEMPT_ROLES = frozenset({UserRole.ADMIN, UserRole.SERVICE})


def coerce_role(value: Union[UserRole, str, None]) -> Optional[UserRole]:
    """
    Maps a stored or token-supplied role onto UserRole.
    Unknown values come back as None rather than raising.
    """
    if isinstance(value, UserRole):
        return value
    if not isinstance(value, str):
        return None
    try:
        return UserRole(value.strip().lower())
    except ValueError:
        return None


def is_quota_exempt(role: Union[UserRole, str, None]) -> bool:
    return coerce_role(role) in QUOTA_EXEMPT_ROLES

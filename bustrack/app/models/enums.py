"""
Enumerations shared by models, schemas and services.
"""

import enum


class UserType(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        STUDENT: Watches the live bus location (default role)
        DRIVER: Broadcasts the bus location and manages driver profiles
    """
    STUDENT = "student"
    DRIVER = "driver"


class RoleSource(str, enum.Enum):
    """Where a resolved role came from."""
    STORED = "stored"
    EMAIL_RULE = "email_rule"
    DEFAULT = "default"


class SessionPersistence(str, enum.Enum):
    """
    Session persistence mode chosen at login.

    LOCAL survives browser restarts ("remember me"), SESSION does not.
    """
    LOCAL = "local"
    SESSION = "session"


class PermissionState(str, enum.Enum):
    """Browser geolocation permission state reported by the driver's device."""
    GRANTED = "granted"
    PROMPT = "prompt"
    DENIED = "denied"

"""Domain enums for user accounts."""

from enum import Enum


class UserStatus(str, Enum):
    """Account status; anything but ACTIVE blocks authentication."""

    ACTIVE = "active"
    SUSPENDED = "suspended"
    DEACTIVATED = "deactivated"


class UserRole(str, Enum):
    """Authorization role carried in access token claims."""

    USER = "user"
    MODERATOR = "moderator"
    ADMIN = "admin"


class TokenType(str, Enum):
    """JWT kind marker stored in the ``type`` claim."""

    ACCESS = "access"
    REFRESH = "refresh"


class DiasporaGeneration(str, Enum):
    """Diaspora generation enumeration."""

    FIRST = "1st"
    SECOND = "2nd"
    THIRD = "3rd"
    OTHER = "other"


class CulturalConnection(str, Enum):
    """Self-reported strength of cultural connection."""

    VERY_STRONG = "very_strong"
    STRONG = "strong"
    MODERATE = "moderate"
    WEAK = "weak"

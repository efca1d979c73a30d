"""Authentication domain entities."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from obanet.core.domain.enums import (
    CulturalConnection,
    DiasporaGeneration,
    TokenType,
    UserRole,
    UserStatus,
)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_dt(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


@dataclass(frozen=True)
class DiasporaProfile:
    """
    Diaspora-specific profile attributes.

    Attributes:
        current_country: Country of residence (one of the supported countries)
        current_city: City of residence
        origin_city: Home town
        diaspora_generation: Generation in the diaspora
        years_in_diaspora: Years lived abroad
        languages: Spoken languages as ``{"language", "level"}`` mappings
        cultural_connection: Self-reported cultural connection
    """

    current_country: str
    current_city: str
    origin_city: str
    diaspora_generation: DiasporaGeneration = DiasporaGeneration.FIRST
    years_in_diaspora: int = 0
    languages: List[Dict[str, str]] = field(default_factory=list)
    cultural_connection: CulturalConnection = CulturalConnection.MODERATE

    def __post_init__(self) -> None:
        """Validate diaspora profile data."""
        if not self.current_country:
            raise ValueError("Current country cannot be empty")
        if not self.current_city:
            raise ValueError("Current city cannot be empty")
        if not self.origin_city:
            raise ValueError("Origin city cannot be empty")
        if not 0 <= self.years_in_diaspora <= 100:
            raise ValueError("Years in diaspora must be between 0 and 100")

    @property
    def location(self) -> str:
        return f"{self.current_city}, {self.current_country}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "current_country": self.current_country,
            "current_city": self.current_city,
            "origin_city": self.origin_city,
            "diaspora_generation": DiasporaGeneration(self.diaspora_generation).value,
            "years_in_diaspora": self.years_in_diaspora,
            "languages": [dict(item) for item in self.languages],
            "cultural_connection": CulturalConnection(self.cultural_connection).value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DiasporaProfile":
        return cls(
            current_country=data["current_country"],
            current_city=data["current_city"],
            origin_city=data["origin_city"],
            diaspora_generation=DiasporaGeneration(
                data.get("diaspora_generation") or DiasporaGeneration.FIRST
            ),
            years_in_diaspora=data.get("years_in_diaspora") or 0,
            languages=list(data.get("languages") or []),
            cultural_connection=CulturalConnection(
                data.get("cultural_connection") or CulturalConnection.MODERATE
            ),
        )


@dataclass(frozen=True)
class LoginRecord:
    """Single entry of a user's login history."""

    timestamp: datetime
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    location: str = "Unknown"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "ip": self.ip,
            "user_agent": self.user_agent,
            "location": self.location,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LoginRecord":
        return cls(
            timestamp=_parse_dt(data["timestamp"]),
            ip=data.get("ip"),
            user_agent=data.get("user_agent"),
            location=data.get("location") or "Unknown",
        )


def default_stats() -> Dict[str, int]:
    return {
        "posts_count": 0,
        "comments_count": 0,
        "likes_received": 0,
        "events_created": 0,
        "events_attended": 0,
        "communities_joined": 0,
        "followers_count": 0,
        "following_count": 0,
        "diaspora_score": 100,
    }


def default_privacy() -> Dict[str, Any]:
    return {
        "profile_visibility": "diaspora_only",
        "show_location": True,
        "show_origin": True,
        "allow_messages": "diaspora_only",
    }


@dataclass(frozen=True)
class User:
    """
    User entity for authentication.

    Attributes:
        id: Unique immutable user identifier
        first_name: Given name
        last_name: Family name
        username: Unique lower-cased username
        email: Unique lower-cased email address
        hashed_password: Bcrypt password hash, never serialized
        diaspora_profile: Diaspora-specific attributes
        status: Account status gating authentication
        role: Account role gating authorization
        is_email_verified: Whether the email address was verified
        email_verification_token: Sha256 digest of the pending verification token
        email_verification_expires: Expiry of the pending verification token
        password_reset_token: Sha256 digest of the pending reset token
        password_reset_expires: Expiry of the pending reset token
        profile: Display profile fields (avatar, bio)
        stats: Activity counters and diaspora score
        privacy: Privacy settings
        login_history: Most recent logins first
        last_active: Last authenticated activity
        deactivated_at: When the user deactivated the account
        deactivation_reason: Optional reason given on deactivation
        created_at: Account creation timestamp
        updated_at: Last update timestamp
    """

    id: str
    first_name: str
    last_name: str
    username: str
    email: str
    hashed_password: str
    diaspora_profile: DiasporaProfile
    status: UserStatus = UserStatus.ACTIVE
    role: UserRole = UserRole.USER
    is_email_verified: bool = False
    email_verification_token: Optional[str] = None
    email_verification_expires: Optional[datetime] = None
    password_reset_token: Optional[str] = None
    password_reset_expires: Optional[datetime] = None
    profile: Dict[str, Any] = field(default_factory=dict)
    stats: Dict[str, int] = field(default_factory=default_stats)
    privacy: Dict[str, Any] = field(default_factory=default_privacy)
    login_history: List[LoginRecord] = field(default_factory=list)
    last_active: Optional[datetime] = None
    deactivated_at: Optional[datetime] = None
    deactivation_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        """Validate user data after initialization."""
        if not self.username:
            raise ValueError("Username cannot be empty")
        if not self.email:
            raise ValueError("Email cannot be empty")
        if not self.hashed_password:
            raise ValueError("Hashed password cannot be empty")
        if "@" not in self.email:
            raise ValueError("Invalid email format")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE

    @property
    def diaspora_score(self) -> int:
        return self.stats.get("diaspora_score", 0)

    def public_profile(self) -> Dict[str, Any]:
        """
        JSON-safe projection cached in the session cache.

        Excludes the password hash and every one-time token digest.
        """
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "username": self.username,
            "email": self.email,
            "role": UserRole(self.role).value,
            "status": UserStatus(self.status).value,
            "is_email_verified": self.is_email_verified,
            "diaspora_profile": self.diaspora_profile.to_dict(),
            "profile": dict(self.profile),
            "stats": dict(self.stats),
            "privacy": dict(self.privacy),
            "last_active": _iso(self.last_active),
            "created_at": _iso(self.created_at),
        }


@dataclass(frozen=True)
class TokenPair:
    """
    Access and refresh token pair.

    Attributes:
        access_token: JWT access token
        refresh_token: JWT refresh token
        token_type: Token type (typically "bearer")
        expires_in: Access token expiration time in seconds
    """

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = 3600

    def __post_init__(self) -> None:
        """Validate token pair data."""
        if not self.access_token:
            raise ValueError("Access token cannot be empty")
        if not self.refresh_token:
            raise ValueError("Refresh token cannot be empty")


@dataclass(frozen=True)
class TokenPayload:
    """
    Verified JWT claims.

    Attributes:
        sub: Subject (user ID)
        token_type: Kind marker (access/refresh)
        iat: Issued-at as a NumericDate
        exp: Expiry as a NumericDate
        jti: Unique token identifier
        email: Email claim (access tokens only)
        username: Username claim (access tokens only)
        role: Role claim (access tokens only)
    """

    sub: str
    token_type: TokenType
    iat: float
    exp: float
    jti: str
    email: Optional[str] = None
    username: Optional[str] = None
    role: Optional[UserRole] = None

    def __post_init__(self) -> None:
        """Validate token payload data."""
        if not self.sub:
            raise ValueError("Subject cannot be empty")
        if self.exp <= self.iat:
            raise ValueError("Expiration must be after issued time")

    @property
    def expires_at(self) -> datetime:
        return datetime.fromtimestamp(self.exp, tz=timezone.utc)

    @property
    def issued_at(self) -> datetime:
        return datetime.fromtimestamp(self.iat, tz=timezone.utc)


@dataclass(frozen=True)
class AuthenticatedUser:
    """
    Typed request identity built by the authentication pipeline.

    ``id``, ``email``, ``username`` and ``role`` come from the verified
    access token. ``status`` and ``profile`` come from the cached or
    stored profile and are only used for gating and display.
    """

    id: str
    email: str
    username: str
    role: UserRole
    status: UserStatus
    token: TokenPayload
    is_email_verified: bool = False
    profile: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class OneTimeToken:
    """Raw one-time token handed to the user plus its stored digest."""

    raw: str
    hashed: str
    expires_at: datetime


@dataclass(frozen=True)
class AuthResult:
    """Outcome of a flow that logs the user in."""

    user: User
    tokens: TokenPair
    verification_token: Optional[str] = None

"""Authentication API schemas."""

import re
from typing import Any, Dict, List, Literal, Optional
from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from obanet.core.auth.entities import DiasporaProfile, TokenPair, User
from obanet.core.domain.enums import CulturalConnection, DiasporaGeneration, UserRole, UserStatus

NAME_PATTERN = re.compile(r"^[a-zA-ZğüşıöçĞÜŞİÖÇ\s]+$")
USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_]+$")
PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)")


def check_password_strength(value: str) -> str:
    if not PASSWORD_PATTERN.match(value):
        raise ValueError(
            "Password must contain at least one lowercase letter, "
            "one uppercase letter and one digit"
        )
    return value


class CamelModel(BaseModel):
    """Base schema exchanging camelCase JSON with the frontend."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LanguageEntry(CamelModel):
    """Spoken language and proficiency."""

    language: Literal["tr", "en", "de", "fr", "nl", "ar", "other"]
    level: Literal["beginner", "intermediate", "advanced", "native"] = "intermediate"


class DiasporaProfileRequest(CamelModel):
    """Diaspora profile submitted on registration."""

    current_country: str = Field(..., description="Country of residence", examples=["Germany"])
    current_city: str = Field(..., min_length=2, max_length=50, examples=["Berlin"])
    origin_city: str = Field(..., min_length=2, max_length=50, examples=["Trabzon"])
    diaspora_generation: DiasporaGeneration = Field(default=DiasporaGeneration.FIRST)
    years_in_diaspora: int = Field(default=0, ge=0, le=100)
    languages: List[LanguageEntry] = Field(default_factory=list)
    cultural_connection: CulturalConnection = Field(default=CulturalConnection.MODERATE)

    @field_validator("current_city", "origin_city", mode="before")
    @classmethod
    def strip_city(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    def to_entity(self) -> DiasporaProfile:
        return DiasporaProfile(
            current_country=self.current_country,
            current_city=self.current_city,
            origin_city=self.origin_city,
            diaspora_generation=self.diaspora_generation,
            years_in_diaspora=self.years_in_diaspora,
            languages=[entry.model_dump() for entry in self.languages],
            cultural_connection=self.cultural_connection,
        )


class UserRegistrationRequest(CamelModel):
    """User registration request schema."""

    first_name: str = Field(..., min_length=2, max_length=50, examples=["Ayşe"])
    last_name: str = Field(..., min_length=2, max_length=50, examples=["Yılmaz"])
    username: str = Field(
        ...,
        min_length=3,
        max_length=20,
        description="Username (3-20 letters, digits or underscores)",
        examples=["ayse_berlin"],
    )
    email: EmailStr = Field(..., description="User email address", examples=["ayse@example.com"])
    password: str = Field(..., min_length=6, max_length=100, description="Password (6-100 characters)")
    confirm_password: str = Field(..., description="Must repeat the password")
    diaspora_profile: DiasporaProfileRequest

    @field_validator("first_name", "last_name", mode="before")
    @classmethod
    def strip_name(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("first_name", "last_name")
    @classmethod
    def check_name(cls, value: str) -> str:
        if not NAME_PATTERN.match(value):
            raise ValueError("Name may only contain letters")
        return value

    @field_validator("username")
    @classmethod
    def check_username(cls, value: str) -> str:
        value = value.strip()
        if not USERNAME_PATTERN.match(value):
            raise ValueError("Username may only contain letters, digits and underscores")
        return value.lower()

    @field_validator("email")
    @classmethod
    def lower_email(cls, value: str) -> str:
        return value.lower()

    @field_validator("password")
    @classmethod
    def check_password(cls, value: str) -> str:
        return check_password_strength(value)

    @model_validator(mode="after")
    def check_passwords_match(self) -> "UserRegistrationRequest":
        if self.password != self.confirm_password:
            raise ValueError("Password confirmation does not match")
        return self


class UserLoginRequest(CamelModel):
    """User login request schema."""

    email: EmailStr = Field(..., description="User email address", examples=["ayse@example.com"])
    password: str = Field(..., min_length=1, description="Password")


class RefreshTokenRequest(CamelModel):
    """Refresh token request schema."""

    refresh_token: str = Field(..., min_length=1, description="Refresh token")


class EmailRequest(CamelModel):
    """Request carrying only an email address."""

    email: EmailStr = Field(..., description="User email address")


class ResetPasswordRequest(CamelModel):
    """New password submitted with a reset token."""

    password: str = Field(..., min_length=6, max_length=100)
    confirm_password: Optional[str] = None

    @field_validator("password")
    @classmethod
    def check_password(cls, value: str) -> str:
        return check_password_strength(value)

    @model_validator(mode="after")
    def check_passwords_match(self) -> "ResetPasswordRequest":
        if self.confirm_password is not None and self.password != self.confirm_password:
            raise ValueError("Password confirmation does not match")
        return self


class ChangePasswordRequest(CamelModel):
    """Password change request schema."""

    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6, max_length=100)
    confirm_password: Optional[str] = None

    @field_validator("new_password")
    @classmethod
    def check_password(cls, value: str) -> str:
        return check_password_strength(value)

    @model_validator(mode="after")
    def check_passwords_match(self) -> "ChangePasswordRequest":
        if self.confirm_password is not None and self.new_password != self.confirm_password:
            raise ValueError("Password confirmation does not match")
        return self


class DeactivateAccountRequest(CamelModel):
    """Optional reason for leaving."""

    reason: Optional[str] = Field(None, max_length=500)


class ReactivateAccountRequest(CamelModel):
    """Credentials re-proved to reactivate a deactivated account."""

    email: EmailStr
    password: str = Field(..., min_length=1)


class UpdateUserStatusRequest(CamelModel):
    """Admin status change."""

    status: UserStatus


class TokenResponse(CamelModel):
    """Token response schema."""

    access_token: str = Field(..., description="JWT access token")
    refresh_token: str = Field(..., description="Refresh token for obtaining new access tokens")
    token_type: str = Field(default="bearer", description="Token type")
    expires_in: int = Field(..., description="Access token expiration time in seconds", examples=[604800])

    @classmethod
    def from_pair(cls, tokens: TokenPair) -> "TokenResponse":
        return cls(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            token_type=tokens.token_type,
            expires_in=tokens.expires_in,
        )


class DiasporaProfileResponse(CamelModel):
    current_country: str
    current_city: str
    origin_city: str
    diaspora_generation: str
    years_in_diaspora: int
    languages: List[Dict[str, str]] = Field(default_factory=list)
    cultural_connection: str


class UserResponse(CamelModel):
    """Public user profile; never carries hashes or one-time tokens."""

    id: str = Field(..., description="User unique identifier")
    first_name: str
    last_name: str
    full_name: str
    username: str
    email: str
    role: UserRole
    status: UserStatus
    is_email_verified: bool
    diaspora_profile: DiasporaProfileResponse
    profile: Dict[str, Any] = Field(default_factory=dict)
    stats: Dict[str, Any] = Field(default_factory=dict)
    privacy: Dict[str, Any] = Field(default_factory=dict)
    last_active: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            first_name=user.first_name,
            last_name=user.last_name,
            full_name=user.full_name,
            username=user.username,
            email=user.email,
            role=user.role,
            status=user.status,
            is_email_verified=user.is_email_verified,
            diaspora_profile=DiasporaProfileResponse(**user.diaspora_profile.to_dict()),
            profile=user.profile,
            stats=user.stats,
            privacy=user.privacy,
            last_active=user.last_active,
            created_at=user.created_at,
        )


class LoginHistoryEntry(CamelModel):
    timestamp: datetime
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    location: str = "Unknown"


class CurrentUserResponse(UserResponse):
    """Profile of the caller, including recent logins."""

    login_history: List[LoginHistoryEntry] = Field(default_factory=list)

    @classmethod
    def from_entity(cls, user: User) -> "CurrentUserResponse":
        base = UserResponse.from_entity(user)
        return cls(
            **base.model_dump(),
            login_history=[LoginHistoryEntry(**record.to_dict()) for record in user.login_history],
        )


class AuthData(CamelModel):
    user: UserResponse
    tokens: TokenResponse
    debug_token: Optional[str] = Field(
        None, description="One-time token, only exposed when debug is enabled"
    )


class AuthEnvelope(CamelModel):
    """Success envelope for flows that log the user in."""

    success: bool = True
    message: str
    data: AuthData


class TokensData(CamelModel):
    tokens: TokenResponse


class TokensEnvelope(CamelModel):
    success: bool = True
    message: str
    data: TokensData


class UserData(CamelModel):
    user: CurrentUserResponse


class UserEnvelope(CamelModel):
    success: bool = True
    message: str = "OK"
    data: UserData


class MessageData(CamelModel):
    debug_token: Optional[str] = None


class MessageEnvelope(CamelModel):
    """Success envelope carrying only a message."""

    success: bool = True
    message: str
    data: Optional[MessageData] = None


class ErrorResponse(CamelModel):
    """Error response schema."""

    success: bool = False
    error: str = Field(..., description="Error message", examples=["Invalid email or password"])
    code: str = Field(..., description="Stable error code", examples=["INVALID_CREDENTIALS"])
    status: Optional[str] = None
    retry_after: Optional[int] = None
    details: Optional[List[Dict[str, Any]]] = None

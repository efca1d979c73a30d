"""Authentication service implementations."""

import hashlib
import logging
import secrets
import uuid
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from obanet.core.domain.enums import TokenType, UserRole, UserStatus
from obanet.settings import Settings
from obanet.utils.clock import Clock, ensure_utc, utc_now
from .entities import (
    AuthenticatedUser,
    AuthResult,
    DiasporaProfile,
    LoginRecord,
    OneTimeToken,
    TokenPair,
    TokenPayload,
    User,
)
from .exceptions import (
    AccountAlreadyActiveException,
    AccountNotActiveException,
    EmailAlreadyVerifiedException,
    EmailExistsException,
    ExpiredTokenException,
    InvalidCredentialsException,
    InvalidCurrentPasswordException,
    InvalidOrExpiredTokenException,
    InvalidTokenException,
    RevokedTokenException,
    UserNotFoundException,
    UsernameExistsException,
)
from .interfaces import (
    PasswordServiceInterface,
    SessionCacheInterface,
    TokenRegistryInterface,
    TokenServiceInterface,
    UserRepositoryInterface,
)

logger = logging.getLogger("obanet.auth")


class PasswordService(PasswordServiceInterface):
    """
    BCrypt-based password hashing service.

    Provides secure password hashing and verification using bcrypt algorithm
    with configurable rounds for performance vs security balance.
    """

    def __init__(self, rounds: int = 12) -> None:
        """
        Initialize password context with bcrypt.

        Args:
            rounds: Bcrypt work factor
        """
        self._pwd_context = CryptContext(
            schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds
        )
        self._dummy_hash: Optional[str] = None

    def hash_password(self, password: str) -> str:
        """
        Hash a password securely using bcrypt.

        Args:
            password: Plain text password

        Returns:
            Hashed password string
        """
        return self._pwd_context.hash(password)

    def verify_password(self, password: str, hashed_password: str) -> bool:
        """
        Verify password against bcrypt hash.

        Args:
            password: Plain text password
            hashed_password: Stored password hash

        Returns:
            True if password matches, False otherwise
        """
        return self._pwd_context.verify(password, hashed_password)

    def dummy_verify(self, password: str) -> bool:
        """Spend one hash comparison so unknown accounts cost as much as known ones."""
        if self._dummy_hash is None:
            self._dummy_hash = self._pwd_context.hash(secrets.token_hex(16))
        self._pwd_context.verify(password, self._dummy_hash)
        return False


class OneTimeTokenService:
    """Random single-use tokens for password reset and email verification."""

    def __init__(self, clock: Clock = utc_now) -> None:
        self._clock = clock

    @staticmethod
    def hash_token(raw_token: str) -> str:
        """Irreversible digest stored in place of the raw token."""
        return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()

    def issue(self, lifetime: timedelta) -> OneTimeToken:
        """
        Generate a new one-time token.

        Args:
            lifetime: How long the token stays valid

        Returns:
            Raw value for the user, digest and expiry for the store
        """
        raw = secrets.token_hex(32)
        return OneTimeToken(
            raw=raw,
            hashed=self.hash_token(raw),
            expires_at=self._clock() + lifetime,
        )


class TokenService(TokenServiceInterface):
    """
    JWT-based token service with access and refresh token support.

    Access and refresh tokens are signed with distinct secrets so a leaked
    access secret cannot mint long-lived refresh tokens. The signing
    algorithm is fixed by configuration.
    """

    def __init__(self, settings: Settings, clock: Clock = utc_now) -> None:
        """
        Initialize token service.

        Args:
            settings: Application settings with JWT configuration
            clock: Source of the current time
        """
        self._clock = clock
        self._access_secret = settings.jwt_secret_key
        self._refresh_secret = settings.jwt_refresh_secret_key
        self._algorithm = settings.jwt_algorithm
        self._access_ttl = settings.access_token_ttl_seconds
        self._refresh_ttl = settings.refresh_token_ttl_seconds

    @property
    def access_token_ttl(self) -> int:
        return self._access_ttl

    @property
    def refresh_token_ttl(self) -> int:
        return self._refresh_ttl

    def _encode(self, claims: Dict[str, Any], secret: str, ttl: int) -> str:
        issued_at = self._clock().timestamp()
        payload = {
            **claims,
            "iat": issued_at,
            "exp": issued_at + ttl,
            "jti": uuid.uuid4().hex,
        }
        return jwt.encode(payload, secret, algorithm=self._algorithm)

    def create_access_token(self, user: User) -> str:
        """
        Create JWT access token for user.

        Args:
            user: User entity

        Returns:
            JWT access token string
        """
        claims = {
            "sub": user.id,
            "email": user.email,
            "username": user.username,
            "role": UserRole(user.role).value,
            "type": TokenType.ACCESS.value,
        }
        return self._encode(claims, self._access_secret, self._access_ttl)

    def create_refresh_token(self, user_id: str) -> str:
        """
        Create JWT refresh token for user.

        Args:
            user_id: User identifier

        Returns:
            JWT refresh token string
        """
        claims = {"sub": user_id, "type": TokenType.REFRESH.value}
        return self._encode(claims, self._refresh_secret, self._refresh_ttl)

    def create_token_pair(self, user: User) -> TokenPair:
        """
        Create access and refresh token pair for user.

        Args:
            user: User entity

        Returns:
            Token pair with access and refresh tokens
        """
        return TokenPair(
            access_token=self.create_access_token(user),
            refresh_token=self.create_refresh_token(user.id),
            expires_in=self._access_ttl,
        )

    def verify(self, token: str, secret: str) -> Dict[str, Any]:
        """
        Verify signature, structure and expiry of a token.

        A token is expired from the instant ``now >= exp``.

        Args:
            token: JWT token string
            secret: Secret the token must be signed with

        Returns:
            Raw token claims

        Raises:
            InvalidTokenException: If token is invalid or malformed
            ExpiredTokenException: If token has expired
        """
        try:
            claims = jwt.decode(
                token,
                secret,
                algorithms=[self._algorithm],
                options={"verify_exp": False},
            )
        except JWTError as e:
            raise InvalidTokenException(f"Token decode error: {e}")

        expires = claims.get("exp")
        if isinstance(expires, bool) or not isinstance(expires, (int, float)):
            raise InvalidTokenException("Token has no valid expiry")
        if self._clock().timestamp() >= expires:
            raise ExpiredTokenException()
        return claims

    def decode_access_token(self, token: str) -> TokenPayload:
        """Verify an access token and return its claims."""
        claims = self.verify(token, self._access_secret)
        return self._to_payload(claims, TokenType.ACCESS)

    def decode_refresh_token(self, token: str) -> TokenPayload:
        """Verify a refresh token and return its claims."""
        claims = self.verify(token, self._refresh_secret)
        return self._to_payload(claims, TokenType.REFRESH)

    def _to_payload(self, claims: Dict[str, Any], expected: TokenType) -> TokenPayload:
        if claims.get("type") != expected.value:
            raise InvalidTokenException(f"Expected {expected.value} token")
        try:
            role = claims.get("role")
            payload = TokenPayload(
                sub=claims["sub"],
                token_type=expected,
                iat=float(claims["iat"]),
                exp=float(claims["exp"]),
                jti=claims["jti"],
                email=claims.get("email"),
                username=claims.get("username"),
                role=UserRole(role) if role is not None else None,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidTokenException(f"Malformed token claims: {e}")
        if expected == TokenType.ACCESS and not (
            payload.email and payload.username and payload.role
        ):
            raise InvalidTokenException("Access token is missing identity claims")
        return payload


class AuthenticationService:
    """
    High-level authentication service orchestrating auth operations.

    Combines password verification, token management, revocation and the
    session cache to provide the complete account lifecycle. Cache and
    registry calls are best-effort; only user store failures surface.
    """

    def __init__(
        self,
        user_repository: UserRepositoryInterface,
        password_service: PasswordServiceInterface,
        token_service: TokenServiceInterface,
        token_registry: TokenRegistryInterface,
        session_cache: SessionCacheInterface,
        settings: Settings,
        one_time_tokens: Optional[OneTimeTokenService] = None,
        clock: Clock = utc_now,
    ) -> None:
        """
        Initialize authentication service.

        Args:
            user_repository: User data access interface
            password_service: Password hashing service
            token_service: Token management service
            token_registry: Revocation registry and refresh-token slots
            session_cache: Cached user profiles
            settings: Application settings
            one_time_tokens: Reset/verification token generator
            clock: Source of the current time
        """
        self._user_repository = user_repository
        self._password_service = password_service
        self._token_service = token_service
        self._token_registry = token_registry
        self._session_cache = session_cache
        self._settings = settings
        self._one_time_tokens = one_time_tokens or OneTimeTokenService(clock)
        self._clock = clock

    async def register(
        self,
        first_name: str,
        last_name: str,
        username: str,
        email: str,
        password: str,
        diaspora_profile: DiasporaProfile,
    ) -> AuthResult:
        """
        Register new user account and log it in.

        Args:
            first_name: Given name
            last_name: Family name
            username: Unique username
            email: User email address
            password: Plain text password
            diaspora_profile: Diaspora-specific attributes

        Returns:
            Created user, token pair and the raw email verification token

        Raises:
            EmailExistsException: If email already exists
            UsernameExistsException: If username already exists
        """
        email = email.strip().lower()
        username = username.strip().lower()

        if await self._user_repository.get_user_by_email(email):
            raise EmailExistsException(email)
        if await self._user_repository.get_user_by_username(username):
            raise UsernameExistsException(username)

        now = self._clock()
        verification = self._one_time_tokens.issue(
            timedelta(hours=self._settings.email_verification_expire_hours)
        )
        user = User(
            id=str(uuid.uuid4()),
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            username=username,
            email=email,
            hashed_password=self._password_service.hash_password(password),
            diaspora_profile=diaspora_profile,
            email_verification_token=verification.hashed,
            email_verification_expires=verification.expires_at,
            last_active=now,
            created_at=now,
            updated_at=now,
        )
        user = await self._user_repository.create_user(user)
        logger.info("User registered: %s", user.id)

        tokens = await self._start_session(user)
        return AuthResult(user=user, tokens=tokens, verification_token=verification.raw)

    async def login(
        self,
        email: str,
        password: str,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
        location: Optional[str] = None,
    ) -> AuthResult:
        """
        Authenticate user and return token pair.

        Unknown email and wrong password raise the same exception.

        Raises:
            InvalidCredentialsException: If credentials are invalid
            AccountNotActiveException: If user account is not active
        """
        user = await self._user_repository.get_user_by_email(email.strip().lower())

        if user is None:
            self._password_service.dummy_verify(password)
            raise InvalidCredentialsException()
        if not self._password_service.verify_password(password, user.hashed_password):
            raise InvalidCredentialsException()

        if not user.is_active:
            raise AccountNotActiveException(UserStatus(user.status).value)

        now = self._clock()
        record = LoginRecord(
            timestamp=now,
            ip=ip,
            user_agent=user_agent,
            location=location or "Unknown",
        )
        history = [record, *user.login_history][: self._settings.login_history_limit]
        user = await self._user_repository.update_user(
            replace(user, login_history=history, last_active=now, updated_at=now)
        )
        logger.info("User logged in: %s", user.id)

        tokens = await self._start_session(user)
        return AuthResult(user=user, tokens=tokens)

    async def refresh(self, refresh_token: str) -> TokenPair:
        """
        Rotate a refresh token into a new token pair.

        The presented refresh token is revoked before the new pair is
        returned, so each refresh token is single-use.

        Raises:
            InvalidTokenException: If refresh token is invalid
            ExpiredTokenException: If refresh token has expired
            RevokedTokenException: If refresh token has been revoked
            UserNotFoundException: If the user no longer exists
            AccountNotActiveException: If user account is not active
        """
        payload = self._token_service.decode_refresh_token(refresh_token)

        if await self._token_registry.is_revoked(refresh_token, TokenType.REFRESH):
            raise RevokedTokenException()
        if await self._token_registry.revoked_by_epoch(payload.sub, payload.iat):
            raise RevokedTokenException()

        user = await self._user_repository.get_user_by_id(payload.sub)
        if user is None:
            raise UserNotFoundException(payload.sub)
        if not user.is_active:
            raise AccountNotActiveException(UserStatus(user.status).value)

        await self._token_registry.revoke(
            refresh_token, payload.expires_at, TokenType.REFRESH
        )
        tokens = self._token_service.create_token_pair(user)
        await self._token_registry.store_refresh_token(user.id, tokens.refresh_token)
        return tokens

    async def logout(self, identity: AuthenticatedUser, access_token: str) -> None:
        """
        End the current session.

        Revokes the presented access token, forgets the stored refresh
        token and drops the cached profile.
        """
        await self._token_registry.revoke(
            access_token, identity.token.expires_at, TokenType.ACCESS
        )
        await self._token_registry.clear_refresh_token(identity.id)
        await self._session_cache.invalidate(identity.id)
        logger.info("User logged out: %s", identity.id)

    async def logout_all(self, identity: AuthenticatedUser, access_token: str) -> None:
        """End every session of the user, on every device."""
        await self.logout(identity, access_token)
        await self._token_registry.revoke_all_sessions(identity.id, self._clock())

    async def get_profile(self, user_id: str) -> User:
        """
        Load the full stored profile of a user.

        Raises:
            UserNotFoundException: If the user does not exist
        """
        user = await self._user_repository.get_user_by_id(user_id)
        if user is None:
            raise UserNotFoundException(user_id, status_code=404)
        return user

    async def forgot_password(self, email: str) -> Optional[str]:
        """
        Start a password reset.

        Returns:
            Raw reset token, or None when no account uses the email.
            Callers must answer identically in both cases.
        """
        user = await self._user_repository.get_user_by_email(email.strip().lower())
        if user is None:
            logger.info("Password reset requested for unknown email")
            return None

        reset = self._one_time_tokens.issue(
            timedelta(minutes=self._settings.password_reset_expire_minutes)
        )
        await self._user_repository.update_user(
            replace(
                user,
                password_reset_token=reset.hashed,
                password_reset_expires=reset.expires_at,
                updated_at=self._clock(),
            )
        )
        logger.info("Password reset token issued: %s", user.id)
        return reset.raw

    async def reset_password(self, raw_token: str, new_password: str) -> AuthResult:
        """
        Complete a password reset and log the user in.

        Raises:
            InvalidOrExpiredTokenException: If the token is unknown or expired
        """
        token_hash = self._one_time_tokens.hash_token(raw_token)
        user = await self._user_repository.get_user_by_reset_token(token_hash)
        if user is None or not self._is_live(user.password_reset_expires):
            raise InvalidOrExpiredTokenException("reset")

        user = await self._user_repository.update_user(
            replace(
                user,
                hashed_password=self._password_service.hash_password(new_password),
                password_reset_token=None,
                password_reset_expires=None,
                updated_at=self._clock(),
            )
        )
        await self._commit_and_invalidate(user.id)
        logger.info("Password reset completed: %s", user.id)

        tokens = await self._start_session(user)
        return AuthResult(user=user, tokens=tokens)

    async def verify_email(self, raw_token: str) -> User:
        """
        Mark the email address as verified and award the bonus score.

        Raises:
            InvalidOrExpiredTokenException: If the token is unknown or expired
        """
        token_hash = self._one_time_tokens.hash_token(raw_token)
        user = await self._user_repository.get_user_by_verification_token(token_hash)
        if user is None or not self._is_live(user.email_verification_expires):
            raise InvalidOrExpiredTokenException("verification")

        stats = dict(user.stats)
        stats["diaspora_score"] = (
            stats.get("diaspora_score", 0) + self._settings.email_verification_bonus
        )
        user = await self._user_repository.update_user(
            replace(
                user,
                is_email_verified=True,
                email_verification_token=None,
                email_verification_expires=None,
                stats=stats,
                updated_at=self._clock(),
            )
        )
        await self._session_cache.invalidate(user.id)
        logger.info("Email verified: %s", user.id)
        return user

    async def resend_verification(self, email: str) -> Optional[str]:
        """
        Issue a fresh email verification token.

        Returns:
            Raw verification token, or None when no account uses the email

        Raises:
            EmailAlreadyVerifiedException: If the address is already verified
        """
        user = await self._user_repository.get_user_by_email(email.strip().lower())
        if user is None:
            return None
        if user.is_email_verified:
            raise EmailAlreadyVerifiedException()

        verification = self._one_time_tokens.issue(
            timedelta(hours=self._settings.email_verification_expire_hours)
        )
        await self._user_repository.update_user(
            replace(
                user,
                email_verification_token=verification.hashed,
                email_verification_expires=verification.expires_at,
                updated_at=self._clock(),
            )
        )
        return verification.raw

    async def change_password(
        self, user_id: str, current_password: str, new_password: str
    ) -> None:
        """
        Change password after re-proving the current one.

        Raises:
            InvalidCurrentPasswordException: If the current password is wrong
        """
        user = await self._user_repository.get_user_by_id(user_id)
        if user is None:
            raise UserNotFoundException(user_id)
        if not self._password_service.verify_password(
            current_password, user.hashed_password
        ):
            raise InvalidCurrentPasswordException()

        await self._user_repository.update_user(
            replace(
                user,
                hashed_password=self._password_service.hash_password(new_password),
                updated_at=self._clock(),
            )
        )
        await self._commit_and_invalidate(user.id)
        logger.info("Password changed: %s", user.id)

    async def deactivate_account(
        self,
        identity: AuthenticatedUser,
        access_token: str,
        reason: Optional[str] = None,
    ) -> None:
        """Deactivate the caller's account and end every session."""
        user = await self._user_repository.get_user_by_id(identity.id)
        if user is None:
            raise UserNotFoundException(identity.id)

        now = self._clock()
        await self._user_repository.update_user(
            replace(
                user,
                status=UserStatus.DEACTIVATED,
                deactivated_at=now,
                deactivation_reason=reason,
                updated_at=now,
            )
        )
        await self._user_repository.commit()
        await self.logout(identity, access_token)
        await self._end_all_sessions(identity.id)
        logger.info("Account deactivated: %s", identity.id)

    async def reactivate_account(self, email: str, password: str) -> AuthResult:
        """
        Reactivate a deactivated account and log it in.

        Suspended accounts stay blocked; only self-deactivation is undone.

        Raises:
            InvalidCredentialsException: If credentials are invalid
            AccountAlreadyActiveException: If the account is active
            AccountNotActiveException: If the account is suspended
        """
        user = await self._user_repository.get_user_by_email(email.strip().lower())
        if user is None:
            self._password_service.dummy_verify(password)
            raise InvalidCredentialsException()
        if not self._password_service.verify_password(password, user.hashed_password):
            raise InvalidCredentialsException()

        if user.status == UserStatus.ACTIVE:
            raise AccountAlreadyActiveException()
        if user.status != UserStatus.DEACTIVATED:
            raise AccountNotActiveException(UserStatus(user.status).value)

        now = self._clock()
        user = await self._user_repository.update_user(
            replace(
                user,
                status=UserStatus.ACTIVE,
                deactivated_at=None,
                deactivation_reason=None,
                last_active=now,
                updated_at=now,
            )
        )
        logger.info("Account reactivated: %s", user.id)

        tokens = await self._start_session(user)
        return AuthResult(user=user, tokens=tokens)

    async def update_user_status(self, user_id: str, status: UserStatus) -> User:
        """
        Change account status (admin operation).

        Moving a user out of ``active`` ends all of their sessions.
        """
        user = await self._user_repository.get_user_by_id(user_id)
        if user is None:
            raise UserNotFoundException(user_id, status_code=404)

        user = await self._user_repository.update_user(
            replace(user, status=status, updated_at=self._clock())
        )
        await self._commit_and_invalidate(user_id)
        if status != UserStatus.ACTIVE:
            await self._end_all_sessions(user_id)
        logger.info("User %s status set to %s", user_id, UserStatus(status).value)
        return user

    async def delete_user(self, user_id: str) -> None:
        """Delete an account (admin operation) and end all of its sessions."""
        if not await self._user_repository.delete_user(user_id):
            raise UserNotFoundException(user_id, status_code=404)

        await self._commit_and_invalidate(user_id)
        await self._end_all_sessions(user_id)
        logger.info("User deleted: %s", user_id)

    async def _start_session(self, user: User) -> TokenPair:
        tokens = self._token_service.create_token_pair(user)
        await self._token_registry.store_refresh_token(user.id, tokens.refresh_token)
        await self._session_cache.set(user.id, user.public_profile())
        return tokens

    async def _commit_and_invalidate(self, user_id: str) -> None:
        # uncommitted rows are invisible to other sessions, so commit first
        await self._user_repository.commit()
        await self._session_cache.invalidate(user_id)

    async def _end_all_sessions(self, user_id: str) -> None:
        await self._token_registry.clear_refresh_token(user_id)
        await self._token_registry.revoke_all_sessions(user_id, self._clock())

    def _is_live(self, expires_at: Optional[datetime]) -> bool:
        return expires_at is not None and ensure_utc(expires_at) > self._clock()

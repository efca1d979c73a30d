"""Authentication service interfaces."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Optional

from obanet.core.domain.enums import TokenType
from .entities import TokenPair, TokenPayload, User


class PasswordServiceInterface(ABC):
    """Interface for password hashing and verification."""

    @abstractmethod
    def hash_password(self, password: str) -> str:
        """
        Hash a password securely.

        Args:
            password: Plain text password

        Returns:
            Hashed password string
        """
        pass

    @abstractmethod
    def verify_password(self, password: str, hashed_password: str) -> bool:
        """
        Verify password against hash.

        Args:
            password: Plain text password
            hashed_password: Stored password hash

        Returns:
            True if password matches, False otherwise
        """
        pass


class TokenServiceInterface(ABC):
    """Interface for JWT token operations."""

    @abstractmethod
    def create_access_token(self, user: User) -> str:
        """
        Create JWT access token for user.

        Args:
            user: User entity

        Returns:
            JWT access token string
        """
        pass

    @abstractmethod
    def create_refresh_token(self, user_id: str) -> str:
        """
        Create JWT refresh token for user.

        Args:
            user_id: User identifier

        Returns:
            JWT refresh token string
        """
        pass

    @abstractmethod
    def create_token_pair(self, user: User) -> TokenPair:
        """Create access and refresh token pair."""
        pass

    @abstractmethod
    def decode_access_token(self, token: str) -> TokenPayload:
        """
        Decode and validate an access token.

        Raises:
            InvalidTokenException: If token is invalid or malformed
            ExpiredTokenException: If token has expired
        """
        pass

    @abstractmethod
    def decode_refresh_token(self, token: str) -> TokenPayload:
        """
        Decode and validate a refresh token.

        Raises:
            InvalidTokenException: If token is invalid or malformed
            ExpiredTokenException: If token has expired
        """
        pass


class UserRepositoryInterface(ABC):
    """Interface for user data access operations."""

    @abstractmethod
    async def get_user_by_id(self, user_id: str) -> Optional[User]:
        """
        Get user by ID.

        Args:
            user_id: User identifier

        Returns:
            User entity if found, None otherwise
        """
        pass

    @abstractmethod
    async def get_user_by_username(self, username: str) -> Optional[User]:
        """
        Get user by username (case-insensitive).

        Args:
            username: Username

        Returns:
            User entity if found, None otherwise
        """
        pass

    @abstractmethod
    async def get_user_by_email(self, email: str) -> Optional[User]:
        """
        Get user by email (case-insensitive).

        Args:
            email: Email address

        Returns:
            User entity if found, None otherwise
        """
        pass

    @abstractmethod
    async def get_user_by_reset_token(self, token_hash: str) -> Optional[User]:
        """Get user holding the given password reset token digest."""
        pass

    @abstractmethod
    async def get_user_by_verification_token(self, token_hash: str) -> Optional[User]:
        """Get user holding the given email verification token digest."""
        pass

    @abstractmethod
    async def create_user(self, user: User) -> User:
        """
        Create new user.

        Args:
            user: User entity to create

        Returns:
            Created user entity
        """
        pass

    @abstractmethod
    async def update_user(self, user: User) -> User:
        """
        Update existing user.

        Args:
            user: User entity to update

        Returns:
            Updated user entity
        """
        pass

    @abstractmethod
    async def delete_user(self, user_id: str) -> bool:
        """
        Delete user by ID.

        Args:
            user_id: User identifier

        Returns:
            True if user was deleted, False if not found
        """
        pass

    @abstractmethod
    async def touch_last_active(self, user_id: str, when: datetime) -> None:
        """Record the last authenticated activity of a user."""
        pass

    @abstractmethod
    async def commit(self) -> None:
        """Make pending writes visible to other sessions."""
        pass

    @abstractmethod
    async def clear_expired_one_time_tokens(self, now: datetime) -> int:
        """
        Clear reset and verification token fields that have expired.

        Returns:
            Number of users updated
        """
        pass


class TokenRegistryInterface(ABC):
    """
    Interface for the best-effort token revocation registry.

    Implementations must never raise on store failure: writes degrade to
    no-ops and reads fail open.
    """

    @abstractmethod
    async def revoke(self, token: str, expires_at: datetime, kind: TokenType) -> bool:
        """
        Mark a raw token value as revoked until it expires.

        Args:
            token: Raw token value
            expires_at: Token expiry, bounds the entry TTL
            kind: Access or refresh token

        Returns:
            True if the entry was written
        """
        pass

    @abstractmethod
    async def is_revoked(self, token: str, kind: TokenType) -> bool:
        """Check whether a raw token value was revoked (False on failure)."""
        pass

    @abstractmethod
    async def store_refresh_token(self, user_id: str, token: str) -> bool:
        """Record the current refresh token of a user."""
        pass

    @abstractmethod
    async def clear_refresh_token(self, user_id: str) -> bool:
        """Forget the current refresh token of a user."""
        pass

    @abstractmethod
    async def revoke_all_sessions(self, user_id: str, at: datetime) -> bool:
        """Reject every token of the user issued before ``at``."""
        pass

    @abstractmethod
    async def revoked_by_epoch(self, user_id: str, issued_at: float) -> bool:
        """Check whether a token issued at ``issued_at`` predates the session epoch."""
        pass


class SessionCacheInterface(ABC):
    """Interface for the best-effort user profile cache."""

    @abstractmethod
    async def get(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Get cached profile or None when absent or unavailable."""
        pass

    @abstractmethod
    async def set(self, user_id: str, profile: Dict[str, Any]) -> bool:
        """Cache a profile with the configured TTL."""
        pass

    @abstractmethod
    async def invalidate(self, user_id: str) -> bool:
        """Drop the cached profile of a user."""
        pass

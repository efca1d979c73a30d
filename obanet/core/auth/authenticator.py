"""Request authentication pipeline."""

import logging
from typing import Any, Callable, Dict, Optional

from obanet.core.domain.enums import TokenType, UserRole, UserStatus
from obanet.core.exceptions import DomainException
from .entities import AuthenticatedUser
from .exceptions import (
    AccountNotActiveException,
    RevokedTokenException,
    UnauthenticatedException,
    UserNotFoundException,
)
from .interfaces import (
    SessionCacheInterface,
    TokenRegistryInterface,
    TokenServiceInterface,
    UserRepositoryInterface,
)

logger = logging.getLogger("obanet.auth")

LastActiveUpdater = Callable[[str], Any]


class RequestAuthenticator:
    """
    Turns a bearer credential into an authenticated identity.

    The checks run in a fixed order and the first failure wins:
    missing token, signature/structure, expiry, revocation (registry or
    session epoch), user existence, account status. Identity fields come
    from the verified claims; the cached or stored profile only supplies
    status and display data.
    """

    def __init__(
        self,
        token_service: TokenServiceInterface,
        token_registry: TokenRegistryInterface,
        session_cache: SessionCacheInterface,
        user_repository: UserRepositoryInterface,
        last_active_updater: Optional[LastActiveUpdater] = None,
    ) -> None:
        """
        Initialize request authenticator.

        Args:
            token_service: Access token verification
            token_registry: Revocation lookups
            session_cache: Cached user profiles
            user_repository: Authoritative user store
            last_active_updater: Schedules a detached last-active update;
                must not block the caller
        """
        self._token_service = token_service
        self._token_registry = token_registry
        self._session_cache = session_cache
        self._user_repository = user_repository
        self._last_active_updater = last_active_updater

    async def authenticate(self, token: Optional[str]) -> AuthenticatedUser:
        """
        Authenticate a request.

        Args:
            token: Raw bearer token, None when the header was absent

        Returns:
            Authenticated identity

        Raises:
            AuthenticationException: Subclass naming the failed check
            ServiceUnavailableException: If the user store is unreachable
        """
        if not token:
            raise UnauthenticatedException()

        payload = self._token_service.decode_access_token(token)

        if await self._token_registry.is_revoked(token, TokenType.ACCESS):
            raise RevokedTokenException()
        if await self._token_registry.revoked_by_epoch(payload.sub, payload.iat):
            raise RevokedTokenException()

        profile = await self._load_profile(payload.sub)
        if profile is None:
            raise UserNotFoundException(payload.sub)

        status = UserStatus(profile.get("status", UserStatus.ACTIVE.value))
        if status != UserStatus.ACTIVE:
            raise AccountNotActiveException(status.value)

        if self._last_active_updater is not None:
            self._last_active_updater(payload.sub)

        return AuthenticatedUser(
            id=payload.sub,
            email=payload.email,
            username=payload.username,
            role=UserRole(payload.role),
            status=status,
            token=payload,
            is_email_verified=bool(profile.get("is_email_verified", False)),
            profile=profile,
        )

    async def authenticate_optional(
        self, token: Optional[str]
    ) -> Optional[AuthenticatedUser]:
        """Authenticate if possible; any failure yields an anonymous caller."""
        if not token:
            return None
        try:
            return await self.authenticate(token)
        except DomainException as e:
            logger.debug("Optional authentication failed: %s", e.code)
            return None

    async def _load_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        cached = await self._session_cache.get(user_id)
        if cached is not None:
            return cached

        user = await self._user_repository.get_user_by_id(user_id)
        if user is None:
            return None

        profile = user.public_profile()
        await self._session_cache.set(user_id, profile)
        return profile

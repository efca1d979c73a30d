"""FastAPI dependency injection setup."""

from typing import AsyncGenerator, Callable, Optional

from fastapi import Depends, Request, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from obanet.core.auth.authenticator import RequestAuthenticator
from obanet.core.auth.entities import AuthenticatedUser
from obanet.core.auth.exceptions import (
    DiasporaProfileIncompleteException,
    EmailNotVerifiedException,
    InsufficientPermissionsException,
)
from obanet.core.auth.services import AuthenticationService
from obanet.core.domain.enums import UserRole
from obanet.infrastructure.database.repositories.user_repository import SqlUserRepository
from obanet.infrastructure.resources import AppResources

security = HTTPBearer(auto_error=False)


def get_resources(request: Request) -> AppResources:
    """Shared clients built by the application lifespan."""
    return request.app.state.resources


async def get_database_session(
        resources: AppResources = Depends(get_resources),
) -> AsyncGenerator[AsyncSession, None]:
    """
    Provide database session for dependency injection.

    The session commits when the request succeeds and rolls back otherwise.

    Yields:
        AsyncSession: Database session
    """
    async with resources.database.get_session() as session:
        yield session


async def get_user_repository(
        session: AsyncSession = Depends(get_database_session),
) -> SqlUserRepository:
    return SqlUserRepository(session)


async def get_auth_service(
        resources: AppResources = Depends(get_resources),
        user_repository: SqlUserRepository = Depends(get_user_repository),
) -> AuthenticationService:
    """
    Provide authentication service for dependency injection.

    Args:
        resources: Shared application resources
        user_repository: Request-scoped user repository

    Returns:
        AuthenticationService: Authentication service instance
    """
    return AuthenticationService(
        user_repository,
        resources.password_service,
        resources.token_service,
        resources.token_registry,
        resources.session_cache,
        resources.settings,
        clock=resources.clock,
    )


async def get_authenticator(
        resources: AppResources = Depends(get_resources),
        user_repository: SqlUserRepository = Depends(get_user_repository),
) -> RequestAuthenticator:
    return RequestAuthenticator(
        resources.token_service,
        resources.token_registry,
        resources.session_cache,
        user_repository,
        last_active_updater=resources.schedule_last_active_touch,
    )


async def get_bearer_token(
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[str]:
    """Raw bearer token, or None when the header is absent or not a bearer."""
    if credentials is None:
        return None
    return credentials.credentials or None


async def get_current_user(
        token: Optional[str] = Depends(get_bearer_token),
        authenticator: RequestAuthenticator = Depends(get_authenticator),
) -> AuthenticatedUser:
    """
    Get current authenticated user from JWT token.

    Args:
        token: Raw bearer token
        authenticator: Request authentication pipeline

    Returns:
        AuthenticatedUser: Current authenticated identity

    Raises:
        AuthenticationException: If any authentication check fails
    """
    return await authenticator.authenticate(token)


async def get_optional_user(
        token: Optional[str] = Depends(get_bearer_token),
        authenticator: RequestAuthenticator = Depends(get_authenticator),
) -> Optional[AuthenticatedUser]:
    """
    Get current user if token is provided and valid, None otherwise.

    Returns:
        AuthenticatedUser or None: Current identity if authenticated
    """
    return await authenticator.authenticate_optional(token)


def require_roles(*roles: UserRole) -> Callable:
    """
    Build a dependency that admits only the given roles.

    The role is read from the verified token claims.
    """
    allowed = {UserRole(role) for role in roles}

    async def role_checker(
            current_user: AuthenticatedUser = Depends(get_current_user),
    ) -> AuthenticatedUser:
        if current_user.role not in allowed:
            raise InsufficientPermissionsException(tuple(role.value for role in allowed))
        return current_user

    return role_checker


async def require_verified_email(
        current_user: AuthenticatedUser = Depends(get_current_user),
) -> AuthenticatedUser:
    if not current_user.is_email_verified:
        raise EmailNotVerifiedException()
    return current_user


async def require_diaspora_profile(
        current_user: AuthenticatedUser = Depends(get_current_user),
) -> AuthenticatedUser:
    """Admit only users whose profile names a current country and an origin city."""
    diaspora = current_user.profile.get("diaspora_profile") or {}
    if not diaspora.get("current_country") or not diaspora.get("origin_city"):
        raise DiasporaProfileIncompleteException()
    return current_user


def client_address(request: Request) -> str:
    """Client IP, honouring the first X-Forwarded-For hop."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def rate_limit(
        limit: int,
        window_seconds: int,
        scope: str,
        per_user: bool = False,
) -> Callable:
    """
    Build a rate limiting dependency.

    Args:
        limit: Maximum requests per window
        window_seconds: Window size in seconds
        scope: Counter scope, one per route
        per_user: Key on the authenticated user instead of the client address

    Raises:
        RateLimitExceededException: When the caller exceeded the quota
    """
    if per_user:
        async def user_limiter(
                response: Response,
                current_user: AuthenticatedUser = Depends(get_current_user),
                resources: AppResources = Depends(get_resources),
        ) -> None:
            result = await resources.rate_limiter.check(
                f"user:{current_user.id}", limit, window_seconds, scope
            )
            response.headers.update(result.headers(resources.clock))

        return user_limiter

    async def address_limiter(
            request: Request,
            response: Response,
            resources: AppResources = Depends(get_resources),
    ) -> None:
        result = await resources.rate_limiter.check(
            f"ip:{client_address(request)}", limit, window_seconds, scope
        )
        response.headers.update(result.headers(resources.clock))

    return address_limiter

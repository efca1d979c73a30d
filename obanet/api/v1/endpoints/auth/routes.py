"""Authentication API routes."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.exceptions import RequestValidationError

from obanet.api.dependencies import (
    client_address,
    get_auth_service,
    get_bearer_token,
    get_current_user,
    get_resources,
    rate_limit,
    require_roles,
)
from obanet.core.auth.entities import AuthenticatedUser, AuthResult
from obanet.core.auth.services import AuthenticationService
from obanet.core.domain.enums import UserRole
from obanet.infrastructure.resources import AppResources
from .schemas import (
    AuthData,
    DiasporaProfileRequest,
    AuthEnvelope,
    ChangePasswordRequest,
    CurrentUserResponse,
    DeactivateAccountRequest,
    EmailRequest,
    ErrorResponse,
    MessageData,
    MessageEnvelope,
    ReactivateAccountRequest,
    RefreshTokenRequest,
    ResetPasswordRequest,
    TokenResponse,
    TokensData,
    TokensEnvelope,
    UpdateUserStatusRequest,
    UserData,
    UserEnvelope,
    UserLoginRequest,
    UserRegistrationRequest,
    UserResponse,
)

logger = logging.getLogger("obanet.auth")

router = APIRouter(prefix="/auth", tags=["Authentication"])

MINUTE = 60
HOUR = 60 * MINUTE
DAY = 24 * HOUR

RESET_LINK_SENT = "If an account exists for this email, a password reset link has been sent"
VERIFICATION_LINK_SENT = "If an account exists for this email, a verification link has been sent"

AUTH_ERRORS = {
    401: {"model": ErrorResponse, "description": "Authentication failed"},
    403: {"model": ErrorResponse, "description": "Account not active"},
}


def _auth_envelope(
    message: str,
    result: AuthResult,
    debug_token: Optional[str] = None,
) -> AuthEnvelope:
    return AuthEnvelope(
        message=message,
        data=AuthData(
            user=UserResponse.from_entity(result.user),
            tokens=TokenResponse.from_pair(result.tokens),
            debug_token=debug_token,
        ),
    )


def _check_supported_country(resources: AppResources, profile: DiasporaProfileRequest) -> None:
    if profile.current_country not in resources.settings.supported_countries:
        raise RequestValidationError(
            [
                {
                    "type": "value_error",
                    "loc": ("body", "diasporaProfile", "currentCountry"),
                    "msg": "Unsupported country",
                    "input": profile.current_country,
                }
            ]
        )


def _debug_data(resources: AppResources, token: Optional[str]) -> Optional[MessageData]:
    # TODO: deliver one-time tokens by email once an SMTP sender is configured
    if resources.settings.debug and token:
        return MessageData(debug_token=token)
    return None


@router.post(
    "/register",
    response_model=AuthEnvelope,
    status_code=status.HTTP_201_CREATED,
    summary="Register new user",
    description="Create a new account and log it in.",
    responses={
        400: {"model": ErrorResponse, "description": "Invalid input or email/username taken"},
        429: {"model": ErrorResponse, "description": "Too many registrations"},
    },
    dependencies=[Depends(rate_limit(5, 15 * MINUTE, "register"))],
)
async def register_user(
    user_data: UserRegistrationRequest,
    auth_service: AuthenticationService = Depends(get_auth_service),
    resources: AppResources = Depends(get_resources),
) -> AuthEnvelope:
    """
    Register a new user account.

    Username and email must be unique. An email verification token is
    issued alongside the login tokens.
    """
    _check_supported_country(resources, user_data.diaspora_profile)
    result = await auth_service.register(
        first_name=user_data.first_name,
        last_name=user_data.last_name,
        username=user_data.username,
        email=user_data.email,
        password=user_data.password,
        diaspora_profile=user_data.diaspora_profile.to_entity(),
    )
    debug_token = result.verification_token if resources.settings.debug else None
    return _auth_envelope("Registration successful", result, debug_token)


@router.post(
    "/login",
    response_model=AuthEnvelope,
    summary="User login",
    description="Authenticate with email and password and return access and refresh tokens.",
    responses={**AUTH_ERRORS, 429: {"model": ErrorResponse, "description": "Too many attempts"}},
    dependencies=[Depends(rate_limit(10, 15 * MINUTE, "login"))],
)
async def login(
    request: Request,
    credentials: UserLoginRequest,
    auth_service: AuthenticationService = Depends(get_auth_service),
) -> AuthEnvelope:
    """
    Authenticate user and return JWT tokens.

    Unknown email and wrong password produce the same error.
    """
    result = await auth_service.login(
        email=credentials.email,
        password=credentials.password,
        ip=client_address(request),
        user_agent=request.headers.get("user-agent"),
    )
    return _auth_envelope("Login successful", result)


@router.post(
    "/refresh-token",
    response_model=TokensEnvelope,
    summary="Refresh access token",
    description="Exchange a refresh token for a new token pair. The old refresh token is revoked.",
    responses=AUTH_ERRORS,
    dependencies=[Depends(rate_limit(5, MINUTE, "refresh"))],
)
async def refresh_token(
    body: RefreshTokenRequest,
    auth_service: AuthenticationService = Depends(get_auth_service),
) -> TokensEnvelope:
    tokens = await auth_service.refresh(body.refresh_token)
    return TokensEnvelope(
        message="Token refreshed",
        data=TokensData(tokens=TokenResponse.from_pair(tokens)),
    )


@router.post(
    "/logout",
    response_model=MessageEnvelope,
    summary="Logout",
    description="Revoke the presented access token and end the current session.",
    responses=AUTH_ERRORS,
)
async def logout(
    current_user: AuthenticatedUser = Depends(get_current_user),
    token: str = Depends(get_bearer_token),
    auth_service: AuthenticationService = Depends(get_auth_service),
) -> MessageEnvelope:
    await auth_service.logout(current_user, token)
    return MessageEnvelope(message="Logout successful")


@router.post(
    "/logout-all",
    response_model=MessageEnvelope,
    summary="Logout from all devices",
    description="End every session of the caller, on every device.",
    responses=AUTH_ERRORS,
)
async def logout_all(
    current_user: AuthenticatedUser = Depends(get_current_user),
    token: str = Depends(get_bearer_token),
    auth_service: AuthenticationService = Depends(get_auth_service),
) -> MessageEnvelope:
    await auth_service.logout_all(current_user, token)
    return MessageEnvelope(message="Logged out from all devices")


@router.get(
    "/me",
    response_model=UserEnvelope,
    summary="Get current user",
    description="Get the full profile of the authenticated user.",
    responses=AUTH_ERRORS,
)
async def get_current_user_info(
    current_user: AuthenticatedUser = Depends(get_current_user),
    auth_service: AuthenticationService = Depends(get_auth_service),
) -> UserEnvelope:
    user = await auth_service.get_profile(current_user.id)
    return UserEnvelope(data=UserData(user=CurrentUserResponse.from_entity(user)))


@router.post(
    "/forgot-password",
    response_model=MessageEnvelope,
    summary="Request password reset",
    description="Issue a password reset token. The answer never reveals whether the email exists.",
    dependencies=[Depends(rate_limit(3, HOUR, "forgot-password"))],
)
async def forgot_password(
    body: EmailRequest,
    auth_service: AuthenticationService = Depends(get_auth_service),
    resources: AppResources = Depends(get_resources),
) -> MessageEnvelope:
    raw_token = await auth_service.forgot_password(body.email)
    return MessageEnvelope(message=RESET_LINK_SENT, data=_debug_data(resources, raw_token))


@router.post(
    "/reset-password/{token}",
    response_model=AuthEnvelope,
    summary="Reset password",
    description="Set a new password with a reset token and log in.",
    responses={400: {"model": ErrorResponse, "description": "Invalid or expired reset token"}},
    dependencies=[Depends(rate_limit(5, HOUR, "reset-password"))],
)
async def reset_password(
    token: str,
    body: ResetPasswordRequest,
    auth_service: AuthenticationService = Depends(get_auth_service),
) -> AuthEnvelope:
    result = await auth_service.reset_password(token, body.password)
    return _auth_envelope("Password reset successful", result)


@router.get(
    "/verify-email/{token}",
    response_model=UserEnvelope,
    summary="Verify email address",
    responses={400: {"model": ErrorResponse, "description": "Invalid or expired verification token"}},
)
async def verify_email(
    token: str,
    auth_service: AuthenticationService = Depends(get_auth_service),
) -> UserEnvelope:
    user = await auth_service.verify_email(token)
    return UserEnvelope(
        message="Email verified successfully",
        data=UserData(user=CurrentUserResponse.from_entity(user)),
    )


@router.post(
    "/resend-verification",
    response_model=MessageEnvelope,
    summary="Resend verification email",
    responses={400: {"model": ErrorResponse, "description": "Email already verified"}},
    dependencies=[Depends(rate_limit(3, HOUR, "resend-verification"))],
)
async def resend_verification(
    body: EmailRequest,
    auth_service: AuthenticationService = Depends(get_auth_service),
    resources: AppResources = Depends(get_resources),
) -> MessageEnvelope:
    raw_token = await auth_service.resend_verification(body.email)
    return MessageEnvelope(message=VERIFICATION_LINK_SENT, data=_debug_data(resources, raw_token))


@router.post(
    "/change-password",
    response_model=MessageEnvelope,
    summary="Change password",
    responses={**AUTH_ERRORS, 400: {"model": ErrorResponse, "description": "Current password is incorrect"}},
    dependencies=[Depends(rate_limit(5, HOUR, "change-password", per_user=True))],
)
async def change_password(
    body: ChangePasswordRequest,
    current_user: AuthenticatedUser = Depends(get_current_user),
    auth_service: AuthenticationService = Depends(get_auth_service),
) -> MessageEnvelope:
    await auth_service.change_password(current_user.id, body.current_password, body.new_password)
    return MessageEnvelope(message="Password changed successfully")


@router.post(
    "/deactivate-account",
    response_model=MessageEnvelope,
    summary="Deactivate account",
    responses=AUTH_ERRORS,
    dependencies=[Depends(rate_limit(1, DAY, "deactivate", per_user=True))],
)
async def deactivate_account(
    body: DeactivateAccountRequest,
    current_user: AuthenticatedUser = Depends(get_current_user),
    token: str = Depends(get_bearer_token),
    auth_service: AuthenticationService = Depends(get_auth_service),
) -> MessageEnvelope:
    await auth_service.deactivate_account(current_user, token, body.reason)
    return MessageEnvelope(message="Account deactivated")


@router.post(
    "/reactivate-account",
    response_model=AuthEnvelope,
    summary="Reactivate account",
    description="Reactivate a deactivated account by re-proving its credentials.",
    responses={**AUTH_ERRORS, 400: {"model": ErrorResponse, "description": "Account already active"}},
    dependencies=[Depends(rate_limit(3, DAY, "reactivate"))],
)
async def reactivate_account(
    body: ReactivateAccountRequest,
    auth_service: AuthenticationService = Depends(get_auth_service),
) -> AuthEnvelope:
    result = await auth_service.reactivate_account(body.email, body.password)
    return _auth_envelope("Account reactivated", result)


@router.patch(
    "/admin/users/{user_id}/status",
    response_model=UserEnvelope,
    summary="Change account status",
    responses={**AUTH_ERRORS, 404: {"model": ErrorResponse, "description": "User not found"}},
)
async def update_user_status(
    user_id: str,
    body: UpdateUserStatusRequest,
    admin: AuthenticatedUser = Depends(require_roles(UserRole.ADMIN)),
    auth_service: AuthenticationService = Depends(get_auth_service),
) -> UserEnvelope:
    user = await auth_service.update_user_status(user_id, body.status)
    logger.info("Admin %s set status of %s to %s", admin.id, user_id, body.status.value)
    return UserEnvelope(
        message="User status updated",
        data=UserData(user=CurrentUserResponse.from_entity(user)),
    )


@router.delete(
    "/admin/users/{user_id}",
    response_model=MessageEnvelope,
    summary="Delete user",
    responses={**AUTH_ERRORS, 404: {"model": ErrorResponse, "description": "User not found"}},
)
async def delete_user(
    user_id: str,
    admin: AuthenticatedUser = Depends(require_roles(UserRole.ADMIN)),
    auth_service: AuthenticationService = Depends(get_auth_service),
) -> MessageEnvelope:
    await auth_service.delete_user(user_id)
    logger.info("Admin %s deleted user %s", admin.id, user_id)
    return MessageEnvelope(message="User deleted")

"""Authentication exceptions."""

from typing import Any, Dict

from obanet.core.exceptions import DomainException


class AuthenticationException(DomainException):
    """Base exception for authentication errors."""

    code = "AUTHENTICATION_ERROR"
    status_code = 401


class UnauthenticatedException(AuthenticationException):
    """Raised when no bearer credential was supplied."""

    code = "NO_TOKEN"

    def __init__(self) -> None:
        super().__init__("No valid token provided")


class InvalidTokenException(AuthenticationException):
    """Raised when token is invalid or malformed."""

    code = "INVALID_TOKEN"

    def __init__(self, reason: str = "Token is malformed or invalid") -> None:
        super().__init__(reason)


class ExpiredTokenException(AuthenticationException):
    """Raised when token has expired."""

    code = "TOKEN_EXPIRED"

    def __init__(self) -> None:
        super().__init__("Token has expired, please refresh your token")


class RevokedTokenException(AuthenticationException):
    """Raised when token has been revoked."""

    code = "TOKEN_REVOKED"

    def __init__(self) -> None:
        super().__init__("This token has been revoked")


class UserNotFoundException(AuthenticationException):
    """Raised when user is not found."""

    code = "USER_NOT_FOUND"

    def __init__(self, identifier: str, status_code: int = 401) -> None:
        super().__init__("User not found", f"User: {identifier}")
        self.identifier = identifier
        self.status_code = status_code


class AccountNotActiveException(AuthenticationException):
    """Raised when user account is suspended or deactivated."""

    code = "ACCOUNT_NOT_ACTIVE"
    status_code = 403

    def __init__(self, status: str) -> None:
        super().__init__(f"Your account is {status}")
        self.status = status

    def extra(self) -> Dict[str, Any]:
        return {"status": self.status}


class InvalidCredentialsException(AuthenticationException):
    """Raised when login credentials are invalid."""

    code = "INVALID_CREDENTIALS"

    def __init__(self) -> None:
        super().__init__("Invalid email or password")


class InsufficientPermissionsException(AuthenticationException):
    """Raised when the caller's role is not allowed."""

    code = "INSUFFICIENT_PERMISSIONS"
    status_code = 403

    def __init__(self, required_roles: tuple) -> None:
        super().__init__(f"Requires one of: {', '.join(required_roles)}")
        self.required_roles = required_roles


class EmailNotVerifiedException(AuthenticationException):
    """Raised when a route needs a verified email address."""

    code = "EMAIL_NOT_VERIFIED"
    status_code = 403

    def __init__(self) -> None:
        super().__init__("Please verify your email address to access this feature")


class DiasporaProfileIncompleteException(AuthenticationException):
    """Raised when a route needs a completed diaspora profile."""

    code = "DIASPORA_PROFILE_INCOMPLETE"
    status_code = 403

    def __init__(self) -> None:
        super().__init__("Please complete your diaspora profile to access this feature")


class AccountStateException(DomainException):
    """Base exception for account lifecycle conflicts (HTTP 400)."""


class EmailExistsException(AccountStateException):
    """Raised when registering with an email that is taken."""

    code = "EMAIL_EXISTS"

    def __init__(self, email: str) -> None:
        super().__init__("This email address is already in use")
        self.email = email


class UsernameExistsException(AccountStateException):
    """Raised when registering with a username that is taken."""

    code = "USERNAME_EXISTS"

    def __init__(self, username: str) -> None:
        super().__init__("This username is already in use")
        self.username = username


class InvalidOrExpiredTokenException(AccountStateException):
    """Raised when a one-time reset or verification token does not match."""

    code = "INVALID_OR_EXPIRED_TOKEN"

    def __init__(self, purpose: str) -> None:
        super().__init__(f"Invalid or expired {purpose} token")
        self.purpose = purpose
        self.code = f"INVALID_{purpose.upper()}_TOKEN"


class InvalidCurrentPasswordException(AccountStateException):
    """Raised when a password change fails to re-prove the current password."""

    code = "INVALID_CURRENT_PASSWORD"

    def __init__(self) -> None:
        super().__init__("Current password is incorrect")


class EmailAlreadyVerifiedException(AccountStateException):
    """Raised when requesting verification for a verified address."""

    code = "EMAIL_ALREADY_VERIFIED"

    def __init__(self) -> None:
        super().__init__("Email address is already verified")


class AccountAlreadyActiveException(AccountStateException):
    """Raised when reactivating an account that is not deactivated."""

    code = "ACCOUNT_ALREADY_ACTIVE"

    def __init__(self) -> None:
        super().__init__("Account is already active")

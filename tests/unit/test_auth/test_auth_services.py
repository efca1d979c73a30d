"""Tests for authentication services."""

import hashlib
from dataclasses import replace
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest

from obanet.core.auth.entities import AuthenticatedUser, LoginRecord
from obanet.core.auth.exceptions import (
    AccountAlreadyActiveException,
    AccountNotActiveException,
    EmailAlreadyVerifiedException,
    EmailExistsException,
    InvalidCredentialsException,
    InvalidCurrentPasswordException,
    InvalidOrExpiredTokenException,
    InvalidTokenException,
    RevokedTokenException,
    UserNotFoundException,
    UsernameExistsException,
)
from obanet.core.auth.services import (
    AuthenticationService,
    OneTimeTokenService,
    PasswordService,
    TokenService,
)
from obanet.core.domain.enums import TokenType, UserStatus
from obanet.infrastructure.cache.cache_service import SessionCache
from obanet.infrastructure.cache.token_registry import TokenRegistry

PASSWORD = "Secret123"


@pytest.fixture(scope="module")
def password_service():
    """Create password service with a cheap work factor."""
    return PasswordService(rounds=4)


@pytest.fixture(scope="module")
def password_hash(password_service):
    return password_service.hash_password(PASSWORD)


@pytest.fixture
def stored_user(make_user, password_hash):
    """User as returned by the repository."""
    return make_user(hashed_password=password_hash)


@pytest.fixture
def mock_user_repository():
    """Create mock user repository that echoes writes."""
    repository = AsyncMock()
    repository.get_user_by_email.return_value = None
    repository.get_user_by_username.return_value = None
    repository.get_user_by_id.return_value = None
    repository.create_user.side_effect = lambda user: user
    repository.update_user.side_effect = lambda user: user
    return repository


@pytest.fixture
def token_service(test_settings, frozen_clock):
    return TokenService(test_settings, clock=frozen_clock)


@pytest.fixture
def token_registry(redis_client, test_settings, frozen_clock):
    return TokenRegistry(redis_client, test_settings.refresh_token_ttl_seconds, clock=frozen_clock)


@pytest.fixture
def session_cache(redis_client):
    return SessionCache(redis_client)


@pytest.fixture
def auth_service(
    mock_user_repository,
    password_service,
    token_service,
    token_registry,
    session_cache,
    test_settings,
    frozen_clock,
):
    """Create authentication service with mocked repository."""
    return AuthenticationService(
        mock_user_repository,
        password_service,
        token_service,
        token_registry,
        session_cache,
        test_settings,
        clock=frozen_clock,
    )


def identity_for(token_service, user, access_token):
    payload = token_service.decode_access_token(access_token)
    return AuthenticatedUser(
        id=user.id,
        email=user.email,
        username=user.username,
        role=user.role,
        status=user.status,
        token=payload,
    )


def last_written(repository):
    return repository.update_user.call_args.args[0]


class TestPasswordService:
    """Test cases for PasswordService."""

    def test_hash_password(self, password_service):
        """Test password hashing."""
        hashed = password_service.hash_password(PASSWORD)

        assert hashed != PASSWORD
        assert hashed.startswith("$2b$")

    def test_verify_password_correct(self, password_service, password_hash):
        assert password_service.verify_password(PASSWORD, password_hash) is True

    def test_verify_password_incorrect(self, password_service, password_hash):
        assert password_service.verify_password("Wrong1234", password_hash) is False

    def test_hash_password_different_results(self, password_service):
        """Test that same password produces different hashes."""
        first = password_service.hash_password(PASSWORD)
        second = password_service.hash_password(PASSWORD)

        assert first != second

    def test_dummy_verify_never_matches(self, password_service):
        assert password_service.dummy_verify(PASSWORD) is False


class TestOneTimeTokenService:
    """Test cases for reset and verification tokens."""

    def test_issue_stores_digest_only(self, frozen_clock):
        service = OneTimeTokenService(frozen_clock)

        token = service.issue(timedelta(minutes=30))

        assert len(token.raw) == 64
        assert token.hashed == hashlib.sha256(token.raw.encode()).hexdigest()
        assert token.hashed != token.raw
        assert token.expires_at == frozen_clock() + timedelta(minutes=30)

    def test_issued_tokens_are_unique(self, frozen_clock):
        service = OneTimeTokenService(frozen_clock)

        assert service.issue(timedelta(hours=1)).raw != service.issue(timedelta(hours=1)).raw


class TestRegistration:
    """Test cases for registration."""

    @pytest.mark.asyncio
    async def test_register_creates_user_and_session(
        self, auth_service, mock_user_repository, diaspora_profile, fake_redis, frozen_clock
    ):
        """Test successful registration."""
        result = await auth_service.register(
            first_name=" Ayşe ",
            last_name="Yılmaz",
            username="Ayse_Berlin",
            email="Ayse@Example.com",
            password=PASSWORD,
            diaspora_profile=diaspora_profile,
        )

        user = result.user
        assert user.email == "ayse@example.com"
        assert user.username == "ayse_berlin"
        assert user.first_name == "Ayşe"
        assert user.status == UserStatus.ACTIVE
        assert user.is_email_verified is False
        assert user.hashed_password != PASSWORD
        assert user.email_verification_token == OneTimeTokenService.hash_token(result.verification_token)
        assert user.email_verification_expires == frozen_clock() + timedelta(hours=24)
        mock_user_repository.create_user.assert_awaited_once()

        assert result.tokens.access_token
        assert await fake_redis.get(f"refresh_token:{user.id}") is not None
        assert await fake_redis.get(f"session:user:{user.id}") is not None

    @pytest.mark.asyncio
    async def test_register_duplicate_email(
        self, auth_service, mock_user_repository, stored_user, diaspora_profile
    ):
        """Test registration with taken email."""
        mock_user_repository.get_user_by_email.return_value = stored_user

        with pytest.raises(EmailExistsException):
            await auth_service.register(
                "Ali", "Demir", "ali", stored_user.email, PASSWORD, diaspora_profile
            )

        mock_user_repository.create_user.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_register_duplicate_username(
        self, auth_service, mock_user_repository, stored_user, diaspora_profile
    ):
        """Test registration with taken username."""
        mock_user_repository.get_user_by_username.return_value = stored_user

        with pytest.raises(UsernameExistsException):
            await auth_service.register(
                "Ali", "Demir", stored_user.username, "ali@example.com", PASSWORD, diaspora_profile
            )


class TestLogin:
    """Test cases for login."""

    @pytest.mark.asyncio
    async def test_login_success_records_history(
        self, auth_service, mock_user_repository, stored_user, token_service, frozen_clock
    ):
        """Test successful login."""
        mock_user_repository.get_user_by_email.return_value = stored_user

        result = await auth_service.login(
            "AYSE@example.com", PASSWORD, ip="10.0.0.1", user_agent="pytest"
        )

        mock_user_repository.get_user_by_email.assert_awaited_once_with("ayse@example.com")
        record = result.user.login_history[0]
        assert record.ip == "10.0.0.1"
        assert record.user_agent == "pytest"
        assert record.location == "Unknown"
        assert result.user.last_active == frozen_clock()
        assert token_service.decode_access_token(result.tokens.access_token).sub == stored_user.id

    @pytest.mark.asyncio
    async def test_login_history_is_bounded(
        self, auth_service, mock_user_repository, stored_user, frozen_clock
    ):
        """Test that only the most recent logins are kept."""
        old = [LoginRecord(timestamp=frozen_clock() - timedelta(days=i + 1)) for i in range(10)]
        mock_user_repository.get_user_by_email.return_value = replace(stored_user, login_history=old)

        result = await auth_service.login(stored_user.email, PASSWORD, ip="10.0.0.2")

        assert len(result.user.login_history) == 10
        assert result.user.login_history[0].ip == "10.0.0.2"
        assert result.user.login_history[-1] == old[8]

    @pytest.mark.asyncio
    async def test_login_wrong_password(self, auth_service, mock_user_repository, stored_user):
        """Test login with wrong password."""
        mock_user_repository.get_user_by_email.return_value = stored_user

        with pytest.raises(InvalidCredentialsException):
            await auth_service.login(stored_user.email, "Wrong1234")

        mock_user_repository.update_user.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_login_unknown_email_spends_a_hash(self, auth_service, password_service):
        """Test that unknown emails fail the same way as wrong passwords."""
        with patch.object(password_service, "dummy_verify", return_value=False) as dummy:
            with pytest.raises(InvalidCredentialsException) as exc_info:
                await auth_service.login("nobody@example.com", PASSWORD)

        dummy.assert_called_once_with(PASSWORD)
        assert exc_info.value.message == "Invalid email or password"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [UserStatus.SUSPENDED, UserStatus.DEACTIVATED])
    async def test_login_inactive_account(self, auth_service, mock_user_repository, stored_user, status):
        """Test login into an account that is not active."""
        mock_user_repository.get_user_by_email.return_value = replace(stored_user, status=status)

        with pytest.raises(AccountNotActiveException) as exc_info:
            await auth_service.login(stored_user.email, PASSWORD)

        assert exc_info.value.status_code == 403
        assert exc_info.value.extra() == {"status": status.value}


class TestRefreshAndLogout:
    """Test cases for refresh rotation and logout."""

    @pytest.mark.asyncio
    async def test_refresh_rotates_token(
        self, auth_service, mock_user_repository, stored_user, token_registry, fake_redis
    ):
        """Test that a refresh token can only be used once."""
        mock_user_repository.get_user_by_email.return_value = stored_user
        mock_user_repository.get_user_by_id.return_value = stored_user
        login = await auth_service.login(stored_user.email, PASSWORD)

        tokens = await auth_service.refresh(login.tokens.refresh_token)

        assert tokens.refresh_token != login.tokens.refresh_token
        assert await token_registry.is_revoked(login.tokens.refresh_token, TokenType.REFRESH)
        assert await token_registry.get_refresh_token(stored_user.id) == tokens.refresh_token

        with pytest.raises(RevokedTokenException):
            await auth_service.refresh(login.tokens.refresh_token)

    @pytest.mark.asyncio
    async def test_refresh_with_access_token(self, auth_service, token_service, stored_user):
        access = token_service.create_access_token(stored_user)

        with pytest.raises(InvalidTokenException):
            await auth_service.refresh(access)

    @pytest.mark.asyncio
    async def test_refresh_for_deleted_user(self, auth_service, token_service, stored_user):
        refresh = token_service.create_refresh_token(stored_user.id)

        with pytest.raises(UserNotFoundException):
            await auth_service.refresh(refresh)

    @pytest.mark.asyncio
    async def test_refresh_for_suspended_user(
        self, auth_service, mock_user_repository, token_service, stored_user
    ):
        mock_user_repository.get_user_by_id.return_value = replace(stored_user, status=UserStatus.SUSPENDED)
        refresh = token_service.create_refresh_token(stored_user.id)

        with pytest.raises(AccountNotActiveException):
            await auth_service.refresh(refresh)

    @pytest.mark.asyncio
    async def test_logout_revokes_access_token(
        self, auth_service, token_service, token_registry, session_cache, stored_user
    ):
        """Test logout."""
        tokens = token_service.create_token_pair(stored_user)
        await token_registry.store_refresh_token(stored_user.id, tokens.refresh_token)
        await session_cache.set(stored_user.id, stored_user.public_profile())

        await auth_service.logout(
            identity_for(token_service, stored_user, tokens.access_token), tokens.access_token
        )

        assert await token_registry.is_revoked(tokens.access_token, TokenType.ACCESS)
        assert await token_registry.get_refresh_token(stored_user.id) is None
        assert await session_cache.get(stored_user.id) is None

    @pytest.mark.asyncio
    async def test_logout_all_revokes_older_tokens(
        self, auth_service, mock_user_repository, token_service, token_registry, stored_user, frozen_clock
    ):
        """Test that logging out everywhere rejects every earlier token."""
        mock_user_repository.get_user_by_id.return_value = stored_user
        other_device = token_service.create_token_pair(stored_user)
        current = token_service.create_token_pair(stored_user)
        frozen_clock.advance(seconds=5)

        await auth_service.logout_all(
            identity_for(token_service, stored_user, current.access_token), current.access_token
        )

        payload = token_service.decode_access_token(other_device.access_token)
        assert await token_registry.revoked_by_epoch(stored_user.id, payload.iat)
        with pytest.raises(RevokedTokenException):
            await auth_service.refresh(other_device.refresh_token)

        fresh = token_service.create_access_token(stored_user)
        fresh_payload = token_service.decode_access_token(fresh)
        assert not await token_registry.revoked_by_epoch(stored_user.id, fresh_payload.iat)


class TestPasswordReset:
    """Test cases for forgot/reset password."""

    @pytest.mark.asyncio
    async def test_forgot_password_unknown_email(self, auth_service, mock_user_repository):
        assert await auth_service.forgot_password("nobody@example.com") is None
        mock_user_repository.update_user.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_forgot_password_issues_token(
        self, auth_service, mock_user_repository, stored_user, frozen_clock
    ):
        """Test that only the digest of the reset token is stored."""
        mock_user_repository.get_user_by_email.return_value = stored_user

        raw = await auth_service.forgot_password(stored_user.email)

        written = last_written(mock_user_repository)
        assert raw
        assert written.password_reset_token == OneTimeTokenService.hash_token(raw)
        assert written.password_reset_expires == frozen_clock() + timedelta(minutes=30)

    @pytest.mark.asyncio
    async def test_reset_password_success(
        self, auth_service, mock_user_repository, stored_user, password_service, frozen_clock
    ):
        """Test completing a reset."""
        raw = "a" * 64
        mock_user_repository.get_user_by_reset_token.return_value = replace(
            stored_user,
            password_reset_token=OneTimeTokenService.hash_token(raw),
            password_reset_expires=frozen_clock() + timedelta(minutes=10),
        )

        result = await auth_service.reset_password(raw, "NewSecret456")

        mock_user_repository.get_user_by_reset_token.assert_awaited_once_with(
            OneTimeTokenService.hash_token(raw)
        )
        assert password_service.verify_password("NewSecret456", result.user.hashed_password)
        assert result.user.password_reset_token is None
        assert result.user.password_reset_expires is None
        assert result.tokens.access_token

    @pytest.mark.asyncio
    async def test_reset_password_expired_token(
        self, auth_service, mock_user_repository, stored_user, frozen_clock
    ):
        """Test reset token at its expiry instant."""
        mock_user_repository.get_user_by_reset_token.return_value = replace(
            stored_user,
            password_reset_token="digest",
            password_reset_expires=frozen_clock(),
        )

        with pytest.raises(InvalidOrExpiredTokenException) as exc_info:
            await auth_service.reset_password("a" * 64, "NewSecret456")

        assert exc_info.value.code == "INVALID_RESET_TOKEN"
        mock_user_repository.update_user.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reset_password_unknown_token(self, auth_service, mock_user_repository):
        mock_user_repository.get_user_by_reset_token.return_value = None

        with pytest.raises(InvalidOrExpiredTokenException):
            await auth_service.reset_password("b" * 64, "NewSecret456")


class TestEmailVerification:
    """Test cases for email verification."""

    @pytest.mark.asyncio
    async def test_verify_email_awards_bonus(
        self, auth_service, mock_user_repository, stored_user, frozen_clock
    ):
        """Test successful verification."""
        mock_user_repository.get_user_by_verification_token.return_value = replace(
            stored_user,
            email_verification_token="digest",
            email_verification_expires=frozen_clock() + timedelta(hours=1),
        )

        user = await auth_service.verify_email("c" * 64)

        assert user.is_email_verified is True
        assert user.email_verification_token is None
        assert user.diaspora_score == 150

    @pytest.mark.asyncio
    async def test_verify_email_invalid_token(self, auth_service, mock_user_repository):
        mock_user_repository.get_user_by_verification_token.return_value = None

        with pytest.raises(InvalidOrExpiredTokenException) as exc_info:
            await auth_service.verify_email("c" * 64)

        assert exc_info.value.code == "INVALID_VERIFICATION_TOKEN"

    @pytest.mark.asyncio
    async def test_resend_verification_for_verified_email(
        self, auth_service, mock_user_repository, stored_user
    ):
        mock_user_repository.get_user_by_email.return_value = replace(stored_user, is_email_verified=True)

        with pytest.raises(EmailAlreadyVerifiedException):
            await auth_service.resend_verification(stored_user.email)

    @pytest.mark.asyncio
    async def test_resend_verification_issues_fresh_token(
        self, auth_service, mock_user_repository, stored_user
    ):
        mock_user_repository.get_user_by_email.return_value = stored_user

        raw = await auth_service.resend_verification(stored_user.email)

        assert last_written(mock_user_repository).email_verification_token == OneTimeTokenService.hash_token(raw)

    @pytest.mark.asyncio
    async def test_resend_verification_unknown_email(self, auth_service):
        assert await auth_service.resend_verification("nobody@example.com") is None


class TestAccountLifecycle:
    """Test cases for password change, deactivation and admin operations."""

    @pytest.mark.asyncio
    async def test_change_password(self, auth_service, mock_user_repository, stored_user, password_service):
        mock_user_repository.get_user_by_id.return_value = stored_user

        await auth_service.change_password(stored_user.id, PASSWORD, "NewSecret456")

        written = last_written(mock_user_repository)
        assert password_service.verify_password("NewSecret456", written.hashed_password)

    @pytest.mark.asyncio
    async def test_change_password_wrong_current(self, auth_service, mock_user_repository, stored_user):
        mock_user_repository.get_user_by_id.return_value = stored_user

        with pytest.raises(InvalidCurrentPasswordException) as exc_info:
            await auth_service.change_password(stored_user.id, "Wrong1234", "NewSecret456")

        assert exc_info.value.status_code == 400
        mock_user_repository.update_user.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_deactivate_account(
        self, auth_service, mock_user_repository, stored_user, token_service, token_registry, frozen_clock
    ):
        """Test self-deactivation ends every session."""
        mock_user_repository.get_user_by_id.return_value = stored_user
        access = token_service.create_access_token(stored_user)
        other_device = token_service.create_access_token(stored_user)
        frozen_clock.advance(seconds=1)

        await auth_service.deactivate_account(
            identity_for(token_service, stored_user, access), access, reason="moving on"
        )

        written = last_written(mock_user_repository)
        assert written.status == UserStatus.DEACTIVATED
        assert written.deactivated_at == frozen_clock()
        assert written.deactivation_reason == "moving on"
        assert await token_registry.is_revoked(access, TokenType.ACCESS)
        mock_user_repository.commit.assert_awaited_once()
        other_payload = token_service.decode_access_token(other_device)
        assert await token_registry.revoked_by_epoch(stored_user.id, other_payload.iat)

    @pytest.mark.asyncio
    async def test_reactivate_deactivated_account(self, auth_service, mock_user_repository, stored_user):
        mock_user_repository.get_user_by_email.return_value = replace(
            stored_user, status=UserStatus.DEACTIVATED, deactivation_reason="break"
        )

        result = await auth_service.reactivate_account(stored_user.email, PASSWORD)

        assert result.user.status == UserStatus.ACTIVE
        assert result.user.deactivated_at is None
        assert result.user.deactivation_reason is None
        assert result.tokens.refresh_token

    @pytest.mark.asyncio
    async def test_reactivate_active_account(self, auth_service, mock_user_repository, stored_user):
        mock_user_repository.get_user_by_email.return_value = stored_user

        with pytest.raises(AccountAlreadyActiveException):
            await auth_service.reactivate_account(stored_user.email, PASSWORD)

    @pytest.mark.asyncio
    async def test_reactivate_suspended_account(self, auth_service, mock_user_repository, stored_user):
        """Test that suspension cannot be lifted by the user."""
        mock_user_repository.get_user_by_email.return_value = replace(stored_user, status=UserStatus.SUSPENDED)

        with pytest.raises(AccountNotActiveException):
            await auth_service.reactivate_account(stored_user.email, PASSWORD)

    @pytest.mark.asyncio
    async def test_reactivate_wrong_password(self, auth_service, mock_user_repository, stored_user):
        mock_user_repository.get_user_by_email.return_value = replace(stored_user, status=UserStatus.DEACTIVATED)

        with pytest.raises(InvalidCredentialsException):
            await auth_service.reactivate_account(stored_user.email, "Wrong1234")

    @pytest.mark.asyncio
    async def test_suspend_user_ends_sessions(
        self, auth_service, mock_user_repository, stored_user, token_service, token_registry, frozen_clock
    ):
        """Test admin suspension."""
        mock_user_repository.get_user_by_id.return_value = stored_user
        access = token_service.create_access_token(stored_user)
        issued_at = token_service.decode_access_token(access).iat
        frozen_clock.advance(seconds=1)

        user = await auth_service.update_user_status(stored_user.id, UserStatus.SUSPENDED)

        assert user.status == UserStatus.SUSPENDED
        assert await token_registry.revoked_by_epoch(stored_user.id, issued_at)

    @pytest.mark.asyncio
    async def test_update_status_unknown_user(self, auth_service):
        with pytest.raises(UserNotFoundException) as exc_info:
            await auth_service.update_user_status("missing", UserStatus.SUSPENDED)

        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_delete_user(self, auth_service, mock_user_repository, stored_user, token_registry):
        mock_user_repository.delete_user.return_value = True
        await token_registry.store_refresh_token(stored_user.id, "refresh")

        await auth_service.delete_user(stored_user.id)

        mock_user_repository.delete_user.assert_awaited_once_with(stored_user.id)
        assert await token_registry.get_refresh_token(stored_user.id) is None

    @pytest.mark.asyncio
    async def test_delete_unknown_user(self, auth_service, mock_user_repository):
        mock_user_repository.delete_user.return_value = False

        with pytest.raises(UserNotFoundException) as exc_info:
            await auth_service.delete_user("missing")

        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_get_profile_unknown_user(self, auth_service):
        with pytest.raises(UserNotFoundException) as exc_info:
            await auth_service.get_profile("missing")

        assert exc_info.value.status_code == 404

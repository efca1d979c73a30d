"""Tests for the access gates built on the authenticated user."""

from unittest.mock import AsyncMock

import pytest

from obanet.api.dependencies import (
    get_optional_user,
    require_diaspora_profile,
    require_roles,
    require_verified_email,
)
from obanet.core.auth.entities import AuthenticatedUser, TokenPayload
from obanet.core.auth.exceptions import (
    DiasporaProfileIncompleteException,
    EmailNotVerifiedException,
    InsufficientPermissionsException,
)
from obanet.core.domain.enums import TokenType, UserRole, UserStatus


@pytest.fixture
def make_identity(make_user):
    def _make_identity(**overrides) -> AuthenticatedUser:
        user = make_user()
        values = dict(
            id=user.id,
            email=user.email,
            username=user.username,
            role=UserRole.USER,
            status=UserStatus.ACTIVE,
            token=TokenPayload(
                sub=user.id,
                token_type=TokenType.ACCESS,
                iat=0.0,
                exp=900.0,
                jti="a1",
                email=user.email,
                username=user.username,
                role=UserRole.USER,
            ),
            is_email_verified=True,
            profile=user.public_profile(),
        )
        values.update(overrides)
        return AuthenticatedUser(**values)

    return _make_identity


class TestRequireDiasporaProfile:
    """Test cases for the diaspora profile gate."""

    @pytest.mark.asyncio
    async def test_complete_profile_admitted(self, make_identity):
        identity = make_identity()

        assert await require_diaspora_profile(identity) is identity

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "diaspora",
        [
            None,
            {"current_country": "Germany", "origin_city": ""},
            {"current_country": "", "origin_city": "Trabzon"},
        ],
    )
    async def test_incomplete_profile_rejected(self, make_identity, diaspora):
        identity = make_identity(profile={"diaspora_profile": diaspora})

        with pytest.raises(DiasporaProfileIncompleteException) as exc_info:
            await require_diaspora_profile(identity)

        assert exc_info.value.code == "DIASPORA_PROFILE_INCOMPLETE"
        assert exc_info.value.status_code == 403


class TestOtherGates:
    """Test cases for role and email gates."""

    @pytest.mark.asyncio
    async def test_unverified_email_rejected(self, make_identity):
        with pytest.raises(EmailNotVerifiedException) as exc_info:
            await require_verified_email(make_identity(is_email_verified=False))

        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_verified_email_admitted(self, make_identity):
        identity = make_identity()

        assert await require_verified_email(identity) is identity

    @pytest.mark.asyncio
    async def test_role_gate(self, make_identity):
        checker = require_roles(UserRole.ADMIN, UserRole.MODERATOR)

        with pytest.raises(InsufficientPermissionsException):
            await checker(make_identity())
        moderator = make_identity(role=UserRole.MODERATOR)
        assert await checker(moderator) is moderator

    @pytest.mark.asyncio
    async def test_optional_user_delegates(self):
        authenticator = AsyncMock()
        authenticator.authenticate_optional.return_value = None

        assert await get_optional_user("garbage", authenticator) is None
        authenticator.authenticate_optional.assert_awaited_once_with("garbage")

"""Common fixtures for integration tests."""

import copy
from dataclasses import replace
from typing import Any, Dict

import pytest
from fastapi.testclient import TestClient

from obanet.core.domain.enums import UserRole
from obanet.infrastructure.database.repositories.user_repository import SqlUserRepository
from obanet.main import create_app

PASSWORD = "Secret123"

REGISTRATION = {
    "firstName": "Ayşe",
    "lastName": "Yılmaz",
    "username": "ayse_berlin",
    "email": "ayse@example.com",
    "password": PASSWORD,
    "confirmPassword": PASSWORD,
    "diasporaProfile": {
        "currentCountry": "Germany",
        "currentCity": "Berlin",
        "originCity": "Trabzon",
        "diasporaGeneration": "2nd",
        "yearsInDiaspora": 12,
        "languages": [{"language": "tr", "level": "native"}],
    },
}


@pytest.fixture
def app_settings(test_settings):
    """Debug settings so one-time tokens are returned in responses."""
    return test_settings.model_copy(update={"debug": True, "rate_limit_enabled": False})


@pytest.fixture
def client(app_settings, fake_redis, frozen_clock):
    """Create test client running the full lifespan."""
    app = create_app(app_settings, redis_client=fake_redis, clock=frozen_clock)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def limited_client(app_settings, fake_redis, frozen_clock):
    """Create test client with rate limiting enabled."""
    settings = app_settings.model_copy(update={"rate_limit_enabled": True})
    app = create_app(settings, redis_client=fake_redis, clock=frozen_clock)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def registration_payload():
    """Valid camelCase registration body."""
    return copy.deepcopy(REGISTRATION)


@pytest.fixture
def auth_header():
    def _auth_header(token: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    return _auth_header


@pytest.fixture
def register_user(client, registration_payload):
    """Register a user and return the response data."""

    def _register(**overrides: Any) -> Dict[str, Any]:
        payload = {**registration_payload, **overrides}
        response = client.post("/api/v1/auth/register", json=payload)
        assert response.status_code == 201, response.text
        return response.json()["data"]

    return _register


@pytest.fixture
def login_user(client):
    """Log in and return the response data."""

    def _login(email: str = REGISTRATION["email"], password: str = PASSWORD) -> Dict[str, Any]:
        response = client.post("/api/v1/auth/login", json={"email": email, "password": password})
        assert response.status_code == 200, response.text
        return response.json()["data"]

    return _login


@pytest.fixture
def promote_to_admin(client):
    """Give a stored user the admin role."""
    resources = client.app.state.resources

    def _promote(user_id: str) -> None:
        async def promote():
            async with resources.database.get_session() as session:
                repository = SqlUserRepository(session)
                user = await repository.get_user_by_id(user_id)
                await repository.update_user(replace(user, role=UserRole.ADMIN))

        client.portal.call(promote)

    return _promote


@pytest.fixture
def registered(register_user):
    """Registered user data: user, tokens and verification token."""
    return register_user()


@pytest.fixture
def admin_tokens(register_user, login_user, promote_to_admin):
    """Tokens of a freshly promoted administrator."""
    data = register_user(
        username="admin_user",
        email="admin@example.com",
        firstName="Admin",
        lastName="Obanet",
    )
    promote_to_admin(data["user"]["id"])
    return login_user("admin@example.com")["tokens"]

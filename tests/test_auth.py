"""
Tests for UserRepository, password handling and the auth endpoints
"""
import pytest
from unittest.mock import patch

from auth_utils import create_jwt, create_expired_jwt, hash_password, verify_password
from crud.user import UserRepository
from tests.conftest import TEST_PASSWORD, auth_headers


@pytest.mark.asyncio
async def test_create_and_get_user(test_db):
    """
    Test creating a new user and retrieving it by email.
    Emails are stored lowercased and roles are created on demand.
    """
    user_repo = UserRepository(test_db)

    created_user = await user_repo.create_user({
        "email": "Test@Example.com",
        "hashed_password": hash_password("test_password_123"),
        "roles": ["user"],
    })
    await test_db.commit()

    assert created_user.email == "test@example.com"
    assert created_user.is_active is True
    assert created_user.role_names == ["user"]

    retrieved_user = await user_repo.get_user_by_email("TEST@example.com")
    assert retrieved_user is not None
    assert retrieved_user.id == created_user.id


@pytest.mark.asyncio
async def test_login_verification(test_db):
    user_repo = UserRepository(test_db)
    await user_repo.create_user({
        "email": "login_test@example.com",
        "hashed_password": hash_password("secure_password_456"),
    })
    await test_db.commit()

    retrieved_user = await user_repo.get_user_by_email("login_test@example.com")

    assert verify_password("secure_password_456", retrieved_user.hashed_password) is True
    assert verify_password("wrong_password", retrieved_user.hashed_password) is False


@pytest.mark.asyncio
async def test_sync_roles_reuses_role_rows(test_db):
    user_repo = UserRepository(test_db)
    first = await user_repo.create_user({"email": "a@example.com", "hashed_password": "x", "roles": ["premium"]})
    second = await user_repo.create_user({"email": "b@example.com", "hashed_password": "x", "roles": ["user"]})

    await user_repo.sync_roles(second, ["admin", "premium"])

    assert second.role_names == ["admin", "premium"]
    assert [r.id for r in first.roles] == [r.id for r in second.roles if r.name == "premium"]


@pytest.mark.asyncio
async def test_signup_assigns_user_role(client, fetch_user):
    response = await client.post(
        "/api/auth/signup",
        json={"email": "new@example.com", "password": TEST_PASSWORD},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert "auth_token" in response.headers["set-cookie"]

    stored = await fetch_user(int(body["user_id"]))
    assert stored.role_names == ["user"]
    assert stored.stripe_id is None


@pytest.mark.asyncio
async def test_signup_rejects_weak_password(client):
    response = await client.post(
        "/api/auth/signup",
        json={"email": "weak@example.com", "password": "ShortPass1!"},
    )

    assert response.status_code == 400
    assert "12 characters" in response.json()["detail"]


@pytest.mark.asyncio
async def test_signup_rejects_duplicate_email(client, make_user):
    await make_user(email="taken@example.com")

    response = await client.post(
        "/api/auth/signup",
        json={"email": "taken@example.com", "password": TEST_PASSWORD},
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Email already registered"


@pytest.mark.asyncio
async def test_login_and_me(client, make_user):
    user = await make_user(email="me@example.com", roles=["admin"])

    login = await client.post("/api/auth/login", json={"email": "me@example.com", "password": TEST_PASSWORD})
    assert login.status_code == 200
    assert login.json()["user_id"] == str(user.id)

    response = await client.get("/api/auth/me", headers=auth_headers(user))

    assert response.status_code == 200
    me = response.json()["user"]
    assert me["email"] == "me@example.com"
    assert me["roles"] == ["admin"]
    assert "hashed_password" not in me
    assert "stripe_id" not in me


@pytest.mark.asyncio
async def test_login_with_wrong_password(client, make_user):
    await make_user(email="me@example.com")

    response = await client.post("/api/auth/login", json={"email": "me@example.com", "password": "WrongPass123!"})

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_expired_token_is_rejected(client, make_user):
    user = await make_user()
    expired_token = create_expired_jwt(str(user.id), expired_seconds_ago=1)

    response = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {expired_token}"})

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid or expired token"


@pytest.mark.asyncio
async def test_token_for_deleted_user_is_rejected(client):
    response = await client.get("/api/subscription", headers={"Authorization": f"Bearer {create_jwt('999')}"})

    assert response.status_code == 401
    assert response.json()["detail"] == "User not found"


def test_jwt_requires_secret_key():
    with patch("auth_utils.settings.jwt_secret_key", None):
        with pytest.raises(ValueError, match="JWT_SECRET_KEY is not set"):
            create_jwt("1")

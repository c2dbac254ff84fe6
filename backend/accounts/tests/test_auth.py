import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

User = get_user_model()


@pytest.fixture
def client():
    return APIClient()


@pytest.fixture
def user(db):
    return User.objects.create_user(
        username="guest@example.com",
        email="guest@example.com",
        password="examplepass",
        first_name="Greta",
        last_name="Guest",
    )


def test_login_returns_tokens_and_user_payload(db, client, user):
    response = client.post(
        "/api/auth/login/",
        {"email": "guest@example.com", "password": "examplepass"},
        format="json",
    )

    assert response.status_code == 200
    body = response.json()
    assert "access" in body and "refresh" in body
    assert body["user"]["email"] == "guest@example.com"
    assert body["user"]["role"] == User.GUEST


def test_login_with_wrong_password_is_rejected(db, client, user):
    response = client.post(
        "/api/auth/login/",
        {"email": "guest@example.com", "password": "wrong"},
        format="json",
    )

    assert response.status_code == 401
    assert response.json()["success"] is False


def test_access_token_authenticates_api_requests(db, client, user):
    tokens = client.post(
        "/api/auth/login/",
        {"email": "guest@example.com", "password": "examplepass"},
        format="json",
    ).json()

    client.credentials(HTTP_AUTHORIZATION=f"Bearer {tokens['access']}")
    response = client.get("/api/auth/me/")

    assert response.status_code == 200
    assert response.json()["data"]["username"] == "guest@example.com"


def test_platform_admin_role():
    assert User(role=User.ADMIN).is_platform_admin
    assert User(is_superuser=True).is_platform_admin
    assert not User(role=User.HOST).is_platform_admin

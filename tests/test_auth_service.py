import pytest
from fastapi.testclient import TestClient

from stockwatch import auth, models
from stockwatch.services.auth.main import app


@pytest.fixture
def client():
    return TestClient(app)


def register(client, username="alice", email="alice@stockwatch.io", password="Secret123"):
    return client.post(
        "/api/auth/register",
        json={"username": username, "email": email, "password": password},
    )


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["service"] == "auth-service"


def test_register_returns_token_for_new_user(client):
    response = register(client, email="Alice@StockWatch.io")

    assert response.status_code == 201
    body = response.json()
    assert body["user"]["username"] == "alice"
    assert body["user"]["email"] == "alice@stockwatch.io"
    assert body["user"]["role"] == "user"
    assert "password_hash" not in body["user"]
    claims = auth.decode_access_token(body["token"])
    assert claims.user_id == body["user"]["id"]
    assert claims.username == "alice"


def test_register_rejects_duplicate_username_or_email(client):
    register(client)

    same_email = register(client, username="alice2")
    same_username = register(client, email="other@stockwatch.io")

    assert same_email.status_code == 400
    assert same_email.json() == {"error": "User with this username or email already exists"}
    assert same_username.status_code == 400


@pytest.mark.parametrize(
    "payload, field",
    [
        ({"username": "al", "email": "al@stockwatch.io", "password": "Secret123"}, "username"),
        ({"username": "bad name", "email": "b@stockwatch.io", "password": "Secret123"}, "username"),
        ({"username": "carol", "email": "not-an-email", "password": "Secret123"}, "email"),
        ({"username": "carol", "email": "c@stockwatch.io", "password": "secret123"}, "password"),
        ({"username": "carol", "email": "c@stockwatch.io", "password": "S1a"}, "password"),
    ],
)
def test_register_validation_errors(client, payload, field):
    response = client.post("/api/auth/register", json=payload)

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Validation failed"
    assert field in [detail["field"] for detail in body["details"]]


def test_login_with_correct_password(client):
    register(client)

    response = client.post("/api/auth/login", json={"email": "ALICE@stockwatch.io", "password": "Secret123"})

    assert response.status_code == 200
    assert response.json()["message"] == "Login successful"
    assert response.json()["token"]


def test_repeated_wrong_password_is_rejected_without_token(client):
    register(client)

    for _ in range(2):
        response = client.post("/api/auth/login", json={"email": "alice@stockwatch.io", "password": "Wrong123"})
        assert response.status_code == 401
        assert response.json() == {"error": "Invalid email or password"}
        assert "token" not in response.json()


def test_login_unknown_email_looks_like_wrong_password(client):
    response = client.post("/api/auth/login", json={"email": "nobody@stockwatch.io", "password": "Secret123"})

    assert response.status_code == 401
    assert response.json() == {"error": "Invalid email or password"}


def test_me_requires_token(client):
    response = client.get("/api/auth/me")

    assert response.status_code == 401
    assert response.json() == {"error": "Access token required"}


def test_me_rejects_tampered_token(client):
    token = register(client).json()["token"]

    response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}x"})

    assert response.status_code == 403
    assert response.json() == {"error": "Invalid or expired token"}


def test_me_returns_current_user(client, make_user, auth_headers):
    user = make_user("bob")

    response = client.get("/api/auth/me", headers=auth_headers(user))

    assert response.status_code == 200
    assert response.json()["user"] == {
        "id": user.id,
        "username": "bob",
        "email": "bob@stockwatch.io",
        "role": "user",
    }


def test_me_for_deleted_user(client, db, make_user, auth_headers):
    user = make_user("bob")
    headers = auth_headers(user)
    db.delete(user)
    db.commit()

    response = client.get("/api/auth/me", headers=headers)

    assert response.status_code == 401
    assert response.json() == {"error": "User no longer exists"}


def test_update_profile(client, db, make_user, auth_headers):
    user = make_user("bob")

    response = client.put(
        "/api/auth/profile",
        json={"username": "robert", "email": "Robert@StockWatch.io"},
        headers=auth_headers(user),
    )

    assert response.status_code == 200
    assert response.json()["user"]["username"] == "robert"
    assert response.json()["user"]["email"] == "robert@stockwatch.io"
    db.expire_all()
    assert db.get(models.User, user.id).username == "robert"


def test_update_profile_rejects_taken_email_and_username(client, make_user, auth_headers):
    make_user("alice")
    bob = make_user("bob")

    email_taken = client.put(
        "/api/auth/profile",
        json={"username": "bob", "email": "alice@stockwatch.io"},
        headers=auth_headers(bob),
    )
    username_taken = client.put(
        "/api/auth/profile",
        json={"username": "alice", "email": "bob@stockwatch.io"},
        headers=auth_headers(bob),
    )

    assert email_taken.status_code == 400
    assert email_taken.json() == {"error": "Email is already taken"}
    assert username_taken.status_code == 400
    assert username_taken.json() == {"error": "Username is already taken"}


def test_change_password(client, make_user, auth_headers):
    user = make_user("bob", password="Secret123")
    headers = auth_headers(user)

    wrong = client.post(
        "/api/auth/change-password",
        json={"currentPassword": "Nope1234", "newPassword": "Better456"},
        headers=headers,
    )
    changed = client.post(
        "/api/auth/change-password",
        json={"currentPassword": "Secret123", "newPassword": "Better456"},
        headers=headers,
    )

    assert wrong.status_code == 400
    assert wrong.json() == {"error": "Current password is incorrect"}
    assert changed.status_code == 200
    assert client.post("/api/auth/login", json={"email": "bob@stockwatch.io", "password": "Secret123"}).status_code == 401
    assert client.post("/api/auth/login", json={"email": "bob@stockwatch.io", "password": "Better456"}).status_code == 200


def test_unknown_route(client):
    response = client.get("/api/auth/nowhere")

    assert response.status_code == 404
    assert response.json() == {"error": "Route not found"}

from conftest import register


def test_register_and_me(client):
    headers, user = register(client, "dana@example.com")
    assert user["role"] == "student"

    resp = client.get("/api/auth/me", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["email"] == "dana@example.com"


def test_duplicate_email_conflicts(client):
    register(client, "dana@example.com")
    resp = client.post(
        "/api/auth/register",
        json={"name": "Dana", "email": "DANA@example.com", "password": "secret123"},
    )
    assert resp.status_code == 409
    assert resp.json()["success"] is False


def test_login(client):
    register(client, "erin@example.com", password="hunter22")

    ok = client.post("/api/auth/login", json={"email": "erin@example.com", "password": "hunter22"})
    assert ok.status_code == 200
    assert ok.json()["data"]["token_type"] == "bearer"

    bad = client.post("/api/auth/login", json={"email": "erin@example.com", "password": "nope"})
    assert bad.status_code == 401
    assert bad.json()["message"] == "Incorrect email or password"


def test_missing_token_is_401(client):
    assert client.get("/api/auth/me").status_code == 401


def test_short_password_is_400(client):
    resp = client.post(
        "/api/auth/register",
        json={"name": "x", "email": "x@example.com", "password": "123"},
    )
    assert resp.status_code == 400
    fields = [e["field"] for e in resp.json()["details"]["errors"]]
    assert "password" in fields


def test_health(client):
    resp = client.get("/health")
    assert resp.json()["status"] == "healthy"

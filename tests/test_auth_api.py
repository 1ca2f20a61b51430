PASSWORD = "correct-horse"


def _register(client, **overrides):
    body = {"username": "alice", "email": "alice@example.com", "password": PASSWORD}
    body.update(overrides)
    return client.post("/api/auth/register", json=body)


def test_register(client):
    r = _register(client, username="Alice", displayName="Alice A.")
    assert r.status_code == 201
    assert r.json()["username"] == "alice"
    assert r.json()["displayName"] == "Alice A."


def test_register_conflicts(client):
    assert _register(client).status_code == 201
    assert _register(client, email="other@example.com").status_code == 409
    assert _register(client, username="alice2").status_code == 409


def test_register_validation(client):
    assert _register(client, password="short").status_code == 400
    assert _register(client, username="al").status_code == 400
    assert _register(client, username="al ice").status_code == 400
    assert _register(client, email="not-an-email").status_code == 400


def test_login_sets_cookie(client):
    _register(client)
    r = client.post(
        "/api/auth/login", json={"usernameOrEmail": "alice@example.com", "password": PASSWORD}
    )
    assert r.status_code == 200
    assert r.json()["token_type"] == "bearer"
    assert "token" in r.cookies

    me = client.get("/api/auth/me")
    assert me.status_code == 200
    assert me.json()["username"] == "alice"

    r = client.post("/api/auth/logout")
    assert r.status_code == 204
    assert "token=" in r.headers["set-cookie"]


def test_bad_credentials(client):
    _register(client)
    r = client.post("/api/auth/token", data={"username": "alice", "password": "wrong-password"})
    assert r.status_code == 401
    r = client.post("/api/auth/login", json={"usernameOrEmail": "bob", "password": PASSWORD})
    assert r.status_code == 401


def test_invalid_token(client):
    r = client.get("/api/auth/me", headers={"Authorization": "Bearer garbage"})
    assert r.status_code == 401
    assert r.json() == {"detail": "Invalid token"}


def test_health(client):
    assert client.get("/api/health").json() == {"ok": True, "hasDbUrl": True}

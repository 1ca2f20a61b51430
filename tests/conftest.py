import pytest
from fastapi.testclient import TestClient

from sharedbudget.config import Settings
from sharedbudget.data.base import Database
from sharedbudget.data.repositories.budget_repository import add_member
from sharedbudget.data.repositories.user_repository import create_user
from sharedbudget.domain.services.budget_service import create_budget
from sharedbudget.main import create_app

PASSWORD = "correct-horse"


@pytest.fixture
def settings():
    return Settings(database_url="sqlite://", secret_key="test-secret", log_level="WARNING")


@pytest.fixture
def client(settings):
    with TestClient(create_app(settings)) as c:
        yield c


def _register(client, username, email=None):
    r = client.post(
        "/api/auth/register",
        json={
            "username": username,
            "email": email or f"{username}@example.com",
            "password": PASSWORD,
        },
    )
    assert r.status_code == 201, r.text
    user_id = r.json()["id"]
    r = client.post("/api/auth/token", data={"username": username, "password": PASSWORD})
    assert r.status_code == 200, r.text
    return {
        "id": user_id,
        "username": username,
        "headers": {"Authorization": f"Bearer {r.json()['access_token']}"},
    }


@pytest.fixture
def make_user(client):
    def _make(username, email=None):
        return _register(client, username, email)

    return _make


def _join_budget(client, slug, inviter, user):
    r = client.post(
        f"/api/budgets/{slug}/invites", json={"to": user["username"]}, headers=inviter["headers"]
    )
    assert r.status_code == 201, r.text
    r = client.post(f"/api/invites/{r.json()['id']}/accept", headers=user["headers"])
    assert r.status_code == 200, r.text


@pytest.fixture
def join(client):
    def _join(slug, inviter, user):
        _join_budget(client, slug, inviter, user)

    return _join


@pytest.fixture
def household(client, make_user):
    """Budget "home" owned by alice with bob as member and two categories."""
    alice = make_user("alice")
    bob = make_user("bob")
    r = client.post(
        "/api/budgets",
        json={
            "name": "Home",
            "categories": [
                {"name": "Groceries", "color": "34, 197, 94"},
                {"name": "Rent", "color": "59, 130, 246", "planMonthly": 900},
            ],
        },
        headers=alice["headers"],
    )
    assert r.status_code == 201, r.text
    budget = r.json()
    _join_budget(client, budget["slug"], alice, bob)
    categories = {c["name"]: c["id"] for c in budget["categories"]}
    return {"slug": budget["slug"], "alice": alice, "bob": bob, "categories": categories}


@pytest.fixture
def db():
    database = Database("sqlite://")
    database.create_tables()
    session = database.session()
    try:
        yield session
    finally:
        session.close()
        database.dispose()


@pytest.fixture
def make_budget(db):
    """Budget with the given usernames as members, the first one owning it."""

    def _make(*usernames):
        users = []
        for name in usernames:
            users.append(create_user(db, name, f"{name}@example.com", "not-a-real-hash"))
        db.commit()
        budget = create_budget(
            db, users[0].id, "Flat", [{"name": "Bills", "color": "1, 2, 3"}]
        )
        for user in users[1:]:
            add_member(db, budget, user.id)
        db.commit()
        return budget, users

    return _make

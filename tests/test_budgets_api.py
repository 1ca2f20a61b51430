def test_create_budget_seeds_categories(client, make_user):
    alice = make_user("alice")
    r = client.post(
        "/api/budgets",
        json={
            "name": "Summer Trip",
            "categories": [
                {"name": "Food", "color": "10, 20, 30"},
                {"name": "Food", "color": "10, 20, 30", "planMonthly": 150},
                {"name": "Hotel"},
            ],
        },
        headers=alice["headers"],
    )
    assert r.status_code == 201, r.text
    budget = r.json()

    assert budget["slug"] == "summer-trip"
    assert budget["myRole"] == "OWNER"
    assert [m["userId"] for m in budget["members"]] == [alice["id"]]
    assert [c["slug"] for c in budget["categories"]] == ["food", "food-2", "hotel"]
    assert budget["categories"][1]["planMonthly"] == 150.0
    assert budget["categories"][2]["color"] == "100, 116, 139"


def test_budget_slugs_are_unique(client, make_user):
    alice = make_user("alice")
    slugs = [
        client.post("/api/budgets", json={"name": "Home"}, headers=alice["headers"]).json()["slug"]
        for _ in range(2)
    ]
    assert slugs == ["home", "home-2"]


def test_list_budgets_with_counts(client, household):
    r = client.get("/api/budgets", headers=household["bob"]["headers"])
    assert r.status_code == 200
    [row] = r.json()
    assert row["slug"] == household["slug"]
    assert row["role"] == "MEMBER"
    assert row["counts"] == {"members": 2, "categories": 2, "purchases": 0}


def test_outsiders_get_not_found(client, household, make_user):
    carol = make_user("carol")
    assert client.get(f"/api/budgets/{household['slug']}", headers=carol["headers"]).status_code == 404
    assert client.get("/api/budgets/nope", headers=household["alice"]["headers"]).status_code == 404


def test_requires_authentication(client):
    r = client.get("/api/budgets")
    assert r.status_code == 401
    assert r.json() == {"detail": "Not authenticated"}


def test_only_owner_or_admin_adds_categories(client, household):
    url = f"/api/budgets/{household['slug']}/categories"
    r = client.post(url, json={"name": "Pets"}, headers=household["bob"]["headers"])
    assert r.status_code == 403

    r = client.post(url, json={"name": "Pets", "color": "1, 1, 1"}, headers=household["alice"]["headers"])
    assert r.status_code == 201
    assert r.json()["slug"] == "pets"
    assert r.json()["sortOrder"] == 2


def test_role_changes(client, household, make_user, join):
    alice, bob = household["alice"], household["bob"]
    carol = make_user("carol")
    dave = make_user("dave")
    join(household["slug"], alice, carol)
    join(household["slug"], alice, dave)
    url = f"/api/budgets/{household['slug']}/members"

    # members cannot manage anybody
    assert client.patch(f"{url}/{bob['id']}", json={"role": "ADMIN"}, headers=carol["headers"]).status_code == 403

    r = client.patch(f"{url}/{bob['id']}", json={"role": "ADMIN"}, headers=alice["headers"])
    assert r.status_code == 200
    roles = {m["userId"]: m["role"] for m in r.json()}
    assert roles[bob["id"]] == "ADMIN"

    # an admin manages members, not other admins or the owner
    assert client.patch(f"{url}/{carol['id']}", json={"role": "ADMIN"}, headers=bob["headers"]).status_code == 200
    assert client.patch(f"{url}/{carol['id']}", json={"role": "MEMBER"}, headers=bob["headers"]).status_code == 403
    assert client.patch(f"{url}/{alice['id']}", json={"role": "MEMBER"}, headers=bob["headers"]).status_code == 400

    assert client.patch(f"{url}/{dave['id']}", json={"role": "OWNER"}, headers=alice["headers"]).status_code == 400
    assert client.patch(f"{url}/999", json={"role": "ADMIN"}, headers=alice["headers"]).status_code == 404


def test_remove_member(client, household, make_user, join):
    alice, bob = household["alice"], household["bob"]
    carol = make_user("carol")
    join(household["slug"], alice, carol)
    url = f"/api/budgets/{household['slug']}/members"

    assert client.delete(f"{url}/{carol['id']}", headers=bob["headers"]).status_code == 403
    assert client.delete(f"{url}/{alice['id']}", headers=alice["headers"]).status_code == 400

    r = client.delete(f"{url}/{carol['id']}", headers=alice["headers"])
    assert r.status_code == 200
    assert carol["id"] not in [m["userId"] for m in r.json()]
    assert client.get(f"/api/budgets/{household['slug']}", headers=carol["headers"]).status_code == 404

from conftest import bearer


def test_my_activity(client, register, login):
    data = register()
    client.post("/api/v1/auth/login", json={"email": "a@x.com", "password": "wrong-one"})
    login()

    resp = client.get("/api/v1/logs/my-activity", headers=bearer(data["access_token"]))
    body = resp.get_json()

    assert resp.status_code == 200
    assert body["meta"]["total"] == 3
    assert [entry["success"] for entry in body["data"]].count(False) == 1
    assert {entry["action"] for entry in body["data"]} == {"login"}


def test_all_activity_requires_admin(client, register):
    data = register()
    resp = client.get("/api/v1/logs/all-activity", headers=bearer(data["access_token"]))
    assert resp.status_code == 403


def test_all_activity_filters(client, register, admin):
    user = register()
    client.post("/api/v1/auth/refresh", json={"refresh_token": user["refresh_token"]})
    headers = bearer(admin["access_token"])

    refreshes = client.get("/api/v1/logs/all-activity?action=token_refresh", headers=headers).get_json()
    by_user = client.get(f"/api/v1/logs/all-activity?user_id={user['user']['id']}", headers=headers).get_json()

    assert [entry["user_id"] for entry in refreshes["data"]] == [user["user"]["id"]]
    assert refreshes["meta"]["filters"]["action"] == "token_refresh"
    assert by_user["meta"]["total"] == 2


def test_all_activity_unknown_action(client, admin):
    resp = client.get("/api/v1/logs/all-activity?action=teleport", headers=bearer(admin["access_token"]))
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "BAD_REQUEST"


def test_stats(client, register, admin):
    register()
    body = client.get("/api/v1/logs/stats", headers=bearer(admin["access_token"])).get_json()["data"]

    assert body["today"] == 2
    assert body["by_action"] == [{"action": "login", "count": 2}]
    assert {row["email"] for row in body["most_active_users"]} == {"a@x.com", "admin@x.com"}


def _audited_ip(client):
    data = client.post(
        "/api/v1/auth/register",
        json={"name": "User A", "email": "a@x.com", "password": "secret1"},
        headers={"X-Forwarded-For": "203.0.113.9"},
    ).get_json()["data"]
    entries = client.get("/api/v1/logs/my-activity", headers=bearer(data["access_token"])).get_json()["data"]
    return entries[0]["ip_address"]


def test_forwarded_for_is_ignored_without_a_trusted_proxy(make_app):
    assert _audited_ip(make_app().test_client()) == "127.0.0.1"


def test_forwarded_for_is_used_behind_a_trusted_proxy(make_app):
    assert _audited_ip(make_app(PROXY_FIX_X_FOR=1).test_client()) == "203.0.113.9"

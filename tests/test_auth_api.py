from conftest import bearer


def error_of(resp):
    body = resp.get_json()
    return resp.status_code, body["error"]


class TestRegisterAndLogin:
    def test_register_login_refresh_logout_scenario(self, client, register, login):
        registered = register("a@x.com", "secret1")
        assert registered["user"]["role"] == "user"
        assert registered["token_type"] == "bearer"

        session = login("a@x.com", "secret1")
        me = client.get("/api/v1/auth/me", headers=bearer(session["access_token"]))
        assert me.status_code == 200
        user = me.get_json()["data"]["user"]
        assert user["email"] == "a@x.com"
        assert "password" not in user and "password_hash" not in user
        assert "refresh_tokens" not in user

        refreshed = client.post("/api/v1/auth/refresh", json={"refresh_token": session["refresh_token"]})
        assert refreshed.status_code == 200
        assert refreshed.get_json()["data"]["access_token"]

        out = client.post(
            "/api/v1/auth/logout",
            json={"refresh_token": session["refresh_token"]},
            headers=bearer(session["access_token"]),
        )
        assert out.status_code == 200

        again = client.post("/api/v1/auth/refresh", json={"refresh_token": session["refresh_token"]})
        assert error_of(again) == (401, "INVALID_REFRESH_TOKEN")

    def test_duplicate_email(self, client, register):
        register("a@x.com")
        resp = client.post(
            "/api/v1/auth/register", json={"name": "Again", "email": "A@X.com", "password": "secret1"}
        )
        assert error_of(resp) == (409, "CONFLICT")

    def test_role_in_payload_is_ignored(self, client):
        resp = client.post(
            "/api/v1/auth/register",
            json={"name": "Eve", "email": "eve@x.com", "password": "secret1", "role": "admin"},
        )
        assert resp.status_code == 201
        assert resp.get_json()["data"]["user"]["role"] == "user"

    def test_validation_error(self, client):
        resp = client.post("/api/v1/auth/register", json={"name": "", "email": "nope", "password": "123"})
        body = resp.get_json()

        assert error_of(resp) == (422, "VALIDATION_ERROR")
        assert set(body["details"]) == {"name", "email", "password"}

    def test_bad_credentials(self, client, register):
        register("a@x.com", "secret1")
        wrong = client.post("/api/v1/auth/login", json={"email": "a@x.com", "password": "nope-nope"})
        unknown = client.post("/api/v1/auth/login", json={"email": "b@x.com", "password": "secret1"})

        assert error_of(wrong) == (401, "INVALID_CREDENTIALS")
        assert wrong.get_json()["message"] == unknown.get_json()["message"]


class TestAccessGuard:
    def test_missing_header(self, client):
        resp = client.get("/api/v1/auth/me")
        assert error_of(resp) == (401, "UNAUTHENTICATED")
        assert resp.get_json()["message"] == "Access denied. No token provided."

    def test_wrong_scheme(self, client, register):
        token = register()["access_token"]
        resp = client.get("/api/v1/auth/me", headers={"Authorization": f"Token {token}"})
        assert resp.status_code == 401

    def test_expired_access_token(self, client, store, past_codec, register):
        user = store.get_user(register()["user"]["id"])
        resp = client.get("/api/v1/auth/me", headers=bearer(past_codec.mint_access(user)))

        assert resp.status_code == 401
        assert resp.get_json()["message"] == "Token expired."

    def test_refresh_token_is_not_an_access_token(self, client, register):
        data = register()
        resp = client.get("/api/v1/auth/me", headers=bearer(data["refresh_token"]))
        assert resp.get_json()["message"] == "Invalid token."

    def test_deleted_user(self, client, store, register):
        data = register()
        store.delete_user(store.get_user(data["user"]["id"]))

        resp = client.get("/api/v1/auth/me", headers=bearer(data["access_token"]))
        assert resp.get_json()["message"] == "Invalid token. User not found."

    def test_role_gate(self, client, register, admin):
        user = register()
        denied = client.get("/api/v1/users", headers=bearer(user["access_token"]))
        allowed = client.get("/api/v1/users", headers=bearer(admin["access_token"]))

        assert error_of(denied) == (403, "FORBIDDEN")
        assert denied.get_json()["message"] == "Access denied. Required role: admin."
        assert allowed.status_code == 200


class TestLogout:
    def test_logout_without_body_revokes_every_device(self, client, register, login):
        first = register()
        second = login()

        resp = client.post("/api/v1/auth/logout", headers=bearer(first["access_token"]))
        assert resp.get_json()["message"] == "Logged out from all devices"

        for token in (first["refresh_token"], second["refresh_token"]):
            assert client.post("/api/v1/auth/refresh", json={"refresh_token": token}).status_code == 401

    def test_logout_all(self, client, register, login):
        first = register()
        login()

        resp = client.post("/api/v1/auth/logout-all", headers=bearer(first["access_token"]))
        assert resp.get_json()["data"]["tokens_cleared"] == 2

    def test_unknown_token_still_succeeds(self, client, register):
        data = register()
        resp = client.post(
            "/api/v1/auth/logout", json={"refresh_token": "whatever"}, headers=bearer(data["access_token"])
        )
        assert resp.status_code == 200
        assert client.post("/api/v1/auth/refresh", json={"refresh_token": data["refresh_token"]}).status_code == 200


class TestTokenManagement:
    def test_tokens_lists_previews(self, client, register, login):
        data = register()
        login()

        resp = client.get("/api/v1/auth/tokens", headers=bearer(data["access_token"]))
        body = resp.get_json()["data"]

        assert body["total_refresh_tokens"] == 2
        assert body["tokens"][0]["token_preview"] == data["refresh_token"][:20] + "..."

    def test_token_stats_for_a_user(self, client, store, past_codec, register):
        data = register()
        user = store.get_user(data["user"]["id"])
        store.add_refresh_token(user, past_codec.mint_refresh(user))

        stats = client.get("/api/v1/auth/token-stats", headers=bearer(data["access_token"])).get_json()["data"]

        assert stats["scope"] == "self"
        assert (stats["total_tokens"], stats["valid_tokens"], stats["expired_tokens"]) == (2, 1, 1)
        assert stats["cleanup_needed"] is True

    def test_token_stats_for_an_admin(self, client, register, admin):
        register()
        stats = client.get("/api/v1/auth/token-stats", headers=bearer(admin["access_token"])).get_json()["data"]
        assert stats["scope"] == "global"
        assert stats["total_users"] == 2

    def test_cleanup_self(self, client, store, past_codec, register):
        data = register()
        user = store.get_user(data["user"]["id"])
        store.add_refresh_token(user, past_codec.mint_refresh(user))

        resp = client.post("/api/v1/auth/cleanup-tokens", json={}, headers=bearer(data["access_token"]))

        assert resp.get_json()["data"] == {"scope": "self", "user_id": data["user"]["id"], "tokens_cleaned": 1}

    def test_cleanup_other_scopes_require_admin(self, client, register):
        data = register()
        for scope in ("user", "all"):
            resp = client.post(
                "/api/v1/auth/cleanup-tokens", json={"scope": scope}, headers=bearer(data["access_token"])
            )
            assert error_of(resp) == (403, "FORBIDDEN")

    def test_cleanup_all(self, client, store, past_codec, register, admin):
        data = register()
        user = store.get_user(data["user"]["id"])
        store.add_refresh_token(user, past_codec.mint_refresh(user))

        resp = client.post("/api/v1/auth/cleanup-tokens", json={"scope": "all"}, headers=bearer(admin["access_token"]))
        result = resp.get_json()["data"]

        assert result["scope"] == "global"
        assert result["expired_tokens_cleaned"] == 1
        assert result["users_processed"] == 2
        assert result["skipped"] is False

    def test_cleanup_user_not_found(self, client, admin):
        resp = client.post(
            "/api/v1/auth/cleanup-tokens",
            json={"scope": "user", "user_id": "missing"},
            headers=bearer(admin["access_token"]),
        )
        assert error_of(resp) == (404, "NOT_FOUND")

    def test_clear_tokens(self, client, register, admin):
        user = register()
        other = register("b@x.com")

        denied = client.post(
            "/api/v1/auth/clear-tokens", json={"user_id": other["user"]["id"]}, headers=bearer(user["access_token"])
        )
        cleared = client.post(
            "/api/v1/auth/clear-tokens", json={"user_id": other["user"]["id"]}, headers=bearer(admin["access_token"])
        )

        assert error_of(denied) == (403, "FORBIDDEN")
        assert cleared.get_json()["data"]["tokens_cleared"] == 1
        assert client.post("/api/v1/auth/refresh", json={"refresh_token": other["refresh_token"]}).status_code == 401


class TestPasswordChange:
    def test_change_password(self, client, register):
        data = register()
        headers = bearer(data["access_token"])

        wrong = client.put(
            "/api/v1/auth/password", json={"current_password": "nope", "new_password": "new-secret"}, headers=headers
        )
        ok = client.put(
            "/api/v1/auth/password", json={"current_password": "secret1", "new_password": "new-secret"}, headers=headers
        )

        assert error_of(wrong) == (401, "INVALID_CREDENTIALS")
        assert ok.get_json()["data"]["tokens_revoked"] == 1
        assert client.post("/api/v1/auth/refresh", json={"refresh_token": data["refresh_token"]}).status_code == 401
        assert client.post("/api/v1/auth/login", json={"email": "a@x.com", "password": "new-secret"}).status_code == 200


def test_unknown_route(client):
    resp = client.get("/api/v1/nope")
    assert resp.get_json() == {"error": "NOT_FOUND", "message": "Route not found", "status": 404}


def test_health(client):
    body = client.get("/api/v1/health").get_json()
    assert body["status"] == "ok"
    assert body["database"] == "ok"
    assert body["token_sweep_scheduler"] == "stopped"

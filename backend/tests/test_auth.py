"""
Test Auth & Users

Tests for:
1. POST /api/auth/login (success, bad password, deactivated account)
2. GET /api/auth/me with and without token
3. PUT /api/auth/password
4. User CRUD (users.manage), professor access denied
"""

from tests.conftest import ADMIN_EMAIL, PROFESSOR_EMAIL, PASSWORD, auth_h, login, run


class TestLogin:
    def test_01_login_success(self, client, admin_user):
        """POST /api/auth/login returns token + user permissions"""
        r = client.post("/api/auth/login", json={"email": ADMIN_EMAIL, "password": PASSWORD})
        assert r.status_code == 200
        data = r.json()
        assert data["token"]
        assert data["user"]["email"] == ADMIN_EMAIL
        assert data["user"]["role"] == "admin"
        assert data["user"]["permissions"]["users.manage"] is True
        assert "password" not in data["user"]

    def test_02_login_is_case_insensitive_on_email(self, client, admin_user):
        r = client.post("/api/auth/login", json={"email": ADMIN_EMAIL.upper(), "password": PASSWORD})
        assert r.status_code == 200

    def test_03_wrong_password(self, client, admin_user):
        r = client.post("/api/auth/login", json={"email": ADMIN_EMAIL, "password": "nope"})
        assert r.status_code == 401

    def test_04_unknown_user(self, client):
        r = client.post("/api/auth/login", json={"email": "ghost@abc-cours.test", "password": PASSWORD})
        assert r.status_code == 401

    def test_05_deactivated_account(self, client, db, admin_user):
        run(db.users.update_one({"id": admin_user["id"]}, {"$set": {"is_active": False}}))
        r = client.post("/api/auth/login", json={"email": ADMIN_EMAIL, "password": PASSWORD})
        assert r.status_code == 403

    def test_06_missing_fields_is_validation_error(self, client):
        r = client.post("/api/auth/login", json={"email": ADMIN_EMAIL})
        assert r.status_code == 400
        data = r.json()
        assert data["error"] == "Validation failed"
        assert any(d["path"] == "password" for d in data["details"])


class TestSession:
    def test_01_me(self, client, admin_headers):
        """GET /api/auth/me returns the connected user without password"""
        r = client.get("/api/auth/me", headers=admin_headers)
        assert r.status_code == 200
        assert r.json()["email"] == ADMIN_EMAIL
        assert "password" not in r.json()

    def test_02_no_token(self, client):
        r = client.get("/api/auth/me")
        assert r.status_code == 401
        assert r.json()["detail"] == "Token d'accès requis"

    def test_03_invalid_token(self, client):
        r = client.get("/api/auth/me", headers=auth_h("not-a-real-token"))
        assert r.status_code == 401

    def test_04_expired_session(self, client, db, admin_user):
        token = login(client, ADMIN_EMAIL)
        run(db.sessions.update_one({"token": token}, {"$set": {"expires_at": "2000-01-01T00:00:00+00:00"}}))
        r = client.get("/api/auth/me", headers=auth_h(token))
        assert r.status_code == 401

    def test_05_logout_invalidates_token(self, client, admin_headers):
        assert client.post("/api/auth/logout", headers=admin_headers).status_code == 200
        assert client.get("/api/auth/me", headers=admin_headers).status_code == 401

    def test_06_change_password(self, client, admin_headers):
        r = client.put(
            "/api/auth/password",
            json={"current_password": PASSWORD, "new_password": "NewSecret456"},
            headers=admin_headers,
        )
        assert r.status_code == 200
        r = client.post("/api/auth/login", json={"email": ADMIN_EMAIL, "password": "NewSecret456"})
        assert r.status_code == 200

    def test_07_change_password_wrong_current(self, client, admin_headers):
        r = client.put(
            "/api/auth/password",
            json={"current_password": "wrong", "new_password": "NewSecret456"},
            headers=admin_headers,
        )
        assert r.status_code == 400


class TestUsers:
    def test_01_create_professor_user(self, client, admin_headers):
        """POST /api/auth/users applies the role preset"""
        r = client.post("/api/auth/users", json={
            "email": "Nouveau.Prof@ABC-cours.test",
            "password": "secret1",
            "first_name": "Paul",
            "last_name": "Martin",
            "role": "professor",
        }, headers=admin_headers)
        assert r.status_code == 201, r.text
        user = r.json()["user"]
        assert user["email"] == "nouveau.prof@abc-cours.test"
        assert user["permissions"]["coupons.use"] is True
        assert user["permissions"]["settlement_notes.create"] is False
        assert "password" not in user

    def test_02_duplicate_email(self, client, admin_headers, professor_user):
        r = client.post("/api/auth/users", json={
            "email": PROFESSOR_EMAIL,
            "password": "secret1",
            "first_name": "Paul",
            "last_name": "Martin",
        }, headers=admin_headers)
        assert r.status_code == 400

    def test_03_invalid_role(self, client, admin_headers):
        r = client.post("/api/auth/users", json={
            "email": "x@abc-cours.test",
            "password": "secret1",
            "first_name": "X",
            "last_name": "Y",
            "role": "superuser",
        }, headers=admin_headers)
        assert r.status_code == 400

    def test_04_list_users(self, client, admin_headers, professor_user):
        r = client.get("/api/auth/users", headers=admin_headers)
        assert r.status_code == 200
        assert r.json()["count"] == 2
        assert all("password" not in u for u in r.json()["users"])

    def test_05_professor_cannot_manage_users(self, client, professor_headers):
        r = client.get("/api/auth/users", headers=professor_headers)
        assert r.status_code == 403

    def test_06_deactivate_user_kills_sessions(self, client, admin_headers, professor_user, professor_headers):
        r = client.delete(f"/api/auth/users/{professor_user['id']}", headers=admin_headers)
        assert r.status_code == 200
        assert client.get("/api/auth/me", headers=professor_headers).status_code == 401

    def test_07_cannot_deactivate_self(self, client, admin_headers, admin_user):
        r = client.delete(f"/api/auth/users/{admin_user['id']}", headers=admin_headers)
        assert r.status_code == 400

    def test_08_update_role_resets_permissions(self, client, admin_headers, professor_user):
        r = client.put(
            f"/api/auth/users/{professor_user['id']}",
            json={"role": "admin"},
            headers=admin_headers,
        )
        assert r.status_code == 200
        assert r.json()["user"]["permissions"]["users.manage"] is True

    def test_09_permission_keys(self, client, admin_headers):
        r = client.get("/api/auth/permission-keys", headers=admin_headers)
        assert r.status_code == 200
        assert "coupons.use" in r.json()["keys"]
        assert set(r.json()["roles"]) == {"admin", "professor"}

    def test_10_login_is_logged(self, client, admin_headers):
        r = client.get("/api/auth/activity-logs", headers=admin_headers)
        assert r.status_code == 200
        actions = [log["action"] for log in r.json()["logs"]]
        assert "login" in actions

    def test_11_cannot_deactivate_self_through_update(self, client, admin_headers, admin_user):
        """PUT /api/auth/users/{own id} with is_active=false is refused, session kept"""
        r = client.put(f"/api/auth/users/{admin_user['id']}", json={"is_active": False}, headers=admin_headers)
        assert r.status_code == 400
        assert client.get("/api/auth/me", headers=admin_headers).status_code == 200

    def test_12_cannot_demote_self(self, client, admin_headers, admin_user):
        r = client.put(f"/api/auth/users/{admin_user['id']}", json={"role": "professor"}, headers=admin_headers)
        assert r.status_code == 400
        assert client.get("/api/auth/me", headers=admin_headers).json()["role"] == "admin"

    def test_13_update_own_profile(self, client, admin_headers, admin_user):
        r = client.put(f"/api/auth/users/{admin_user['id']}", json={"phone": "0611223344"}, headers=admin_headers)
        assert r.status_code == 200
        assert r.json()["user"]["phone"] == "0611223344"

from app.crud.subscription import SubscriptionCRUD
from app.crud.user import UserCRUD
from app.services.email.email_service import get_email_queue

from conftest import PASSWORD, auth_headers


def _register(client, **overrides):
    payload = {
        "name": "Lily Star",
        "email": "lily@example.com",
        "password": PASSWORD,
        "age": 10,
        "parent_email": "parent@example.com",
        "agreed_to_terms": True,
    }
    payload.update(overrides)
    return client.post("/api/v1/auth/register", json=payload)


def _queued(template):
    return [item for item in get_email_queue().items if item.template == template]


class TestRegister:
    def test_creates_pending_child_with_free_plan(self, client, db):
        response = _register(client)
        assert response.status_code == 201
        data = response.json()["data"]
        assert data["access_token"] and data["refresh_token"]
        assert data["user"]["role"] == "child"
        assert data["user"]["account_status"] == "pending_verification"
        assert "password_hash" not in data["user"]

        subscription = SubscriptionCRUD(db).get_by_user(data["user"]["id"])
        assert subscription.tier == "free"
        assert {"welcome", "email_verification", "parent_consent"} <= {
            item.template for item in get_email_queue().items
        }

    def test_duplicate_email_conflicts(self, client):
        assert _register(client).status_code == 201
        response = _register(client, email="LILY@example.com")
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "CONFLICT"

    def test_under_thirteen_needs_parent_email(self, client):
        response = _register(client, parent_email=None)
        assert response.status_code == 422
        body = response.json()
        assert body["success"] is False
        assert body["error"]["details"]["field"] == "parent_email"

    def test_teen_needs_no_parent_email(self, client):
        response = _register(client, age=14, parent_email=None)
        assert response.status_code == 201
        assert _queued("parent_consent") == []

    def test_weak_password_rejected(self, client):
        response = _register(client, password="alllowercase1")
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_terms_must_be_accepted(self, client):
        assert _register(client, agreed_to_terms=False).status_code == 422

    def test_fourth_registration_from_one_ip_is_rate_limited(self, client):
        for n in range(3):
            assert _register(client, email=f"kid{n}@example.com", age=14).status_code == 201
        response = _register(client, email="kid9@example.com", age=14)
        assert response.status_code == 429
        assert response.json()["error"]["code"] == "RATE_LIMIT_EXCEEDED"
        assert "Retry-After" in response.headers

    def test_sixth_login_attempt_is_rate_limited(self, client, make_user):
        user = make_user()
        for n in range(5):
            response = client.post("/api/v1/auth/login", json={"email": user.email, "password": PASSWORD})
            assert response.status_code == 200
            assert response.headers["X-RateLimit-Remaining"] == str(4 - n)

        response = client.post("/api/v1/auth/login", json={"email": user.email, "password": PASSWORD})
        assert response.status_code == 429
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "RATE_LIMIT_EXCEEDED"
        assert body["error"]["details"]["limit"] == "login"
        assert int(response.headers["Retry-After"]) == body["error"]["details"]["retry_after"] > 0
        assert response.headers["X-RateLimit-Remaining"] == "0"

    def test_fourth_password_reset_request_is_rate_limited(self, client):
        for _ in range(3):
            assert client.post("/api/v1/auth/forgot-password", json={"email": "ghost@example.com"}).status_code == 200
        response = client.post("/api/v1/auth/forgot-password", json={"email": "ghost@example.com"})
        assert response.status_code == 429
        assert response.json()["error"]["details"]["limit"] == "forgot_password"
        assert "Retry-After" in response.headers

    def test_malformed_emails_are_rejected(self, client):
        assert _register(client, email="lily@").json()["error"]["code"] == "VALIDATION_ERROR"
        assert _register(client, age=14, parent_email=None, email="lily at example.com").status_code == 422
        assert _register(client, parent_email="parent.example.com").status_code == 422
        login = client.post("/api/v1/auth/login", json={"email": "not-an-email", "password": PASSWORD})
        assert login.status_code == 422
        forgot = client.post("/api/v1/auth/forgot-password", json={"email": "@example.com"})
        assert forgot.status_code == 422


class TestVerification:
    def test_verify_email_then_parent_consent_activates(self, client, db):
        user_id = _register(client).json()["data"]["user"]["id"]
        token = _queued("email_verification")[0].data["token"]

        response = client.post("/api/v1/auth/verify-email", json={"token": token})
        assert response.status_code == 200
        assert response.json()["data"]["account_status"] == "pending_verification"

        child = UserCRUD(db).get_model(user_id)
        response = client.post(
            "/api/v1/users/parent-consent",
            json={"child_id": user_id, "parent_email": "parent@example.com"},
            headers=auth_headers(child),
        )
        assert response.status_code == 200
        assert response.json()["data"]["account_status"] == "active"

    def test_parent_email_must_match(self, client, db):
        user_id = _register(client).json()["data"]["user"]["id"]
        child = UserCRUD(db).get_model(user_id)
        response = client.post(
            "/api/v1/users/parent-consent",
            json={"child_id": user_id, "parent_email": "someone@example.com"},
            headers=auth_headers(child),
        )
        assert response.status_code == 422

    def test_unknown_verification_token(self, client):
        response = client.post("/api/v1/auth/verify-email", json={"token": "nope"})
        assert response.status_code == 422


class TestLogin:
    def test_login_returns_tokens(self, client, make_user):
        user = make_user()
        response = client.post("/api/v1/auth/login", json={"email": user.email, "password": PASSWORD})
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["user"]["id"] == user.id
        assert data["token_type"] == "bearer"

    def test_bad_password_and_unknown_email_look_the_same(self, client, make_user):
        user = make_user()
        wrong = client.post("/api/v1/auth/login", json={"email": user.email, "password": "Wrong1234"})
        unknown = client.post("/api/v1/auth/login", json={"email": "ghost@example.com", "password": PASSWORD})
        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json()["message"] == unknown.json()["message"]

    def test_fifth_failure_locks_the_account(self, client, db, make_user):
        user = make_user()
        for _ in range(5):
            response = client.post("/api/v1/auth/login", json={"email": user.email, "password": "Wrong1234"})
            assert response.status_code == 401

        stored = UserCRUD(db).get_model(user.id)
        assert stored.login_attempts == 5
        assert stored.is_locked()

        response = client.get("/api/v1/users/profile", headers=auth_headers(user))
        assert response.status_code == 403
        assert response.json()["error"]["details"]["locked"] is True

    def test_suspended_account_cannot_log_in(self, client, make_user):
        user = make_user(account_status="suspended")
        response = client.post("/api/v1/auth/login", json={"email": user.email, "password": PASSWORD})
        assert response.status_code == 403

    def test_refresh_issues_new_pair(self, client, make_user):
        user = make_user()
        tokens = client.post(
            "/api/v1/auth/login", json={"email": user.email, "password": PASSWORD}
        ).json()["data"]

        response = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert response.status_code == 200
        assert response.json()["data"]["access_token"]

    def test_access_token_is_not_a_refresh_token(self, client, make_user):
        user = make_user()
        access = auth_headers(user)["Authorization"].split()[1]
        response = client.post("/api/v1/auth/refresh", json={"refresh_token": access})
        assert response.status_code == 401


class TestPasswordReset:
    def test_forgot_then_reset(self, client, make_user):
        user = make_user()
        response = client.post("/api/v1/auth/forgot-password", json={"email": user.email})
        assert response.status_code == 200
        token = _queued("password_reset")[0].data["token"]

        response = client.post(
            "/api/v1/auth/reset-password",
            json={"token": token, "password": "NewSecret9", "confirm_password": "NewSecret9"},
        )
        assert response.status_code == 200

        old = client.post("/api/v1/auth/login", json={"email": user.email, "password": PASSWORD})
        new = client.post("/api/v1/auth/login", json={"email": user.email, "password": "NewSecret9"})
        assert old.status_code == 401
        assert new.status_code == 200

    def test_reset_token_is_single_use(self, client, make_user):
        user = make_user()
        client.post("/api/v1/auth/forgot-password", json={"email": user.email})
        token = _queued("password_reset")[0].data["token"]
        body = {"token": token, "password": "NewSecret9", "confirm_password": "NewSecret9"}

        assert client.post("/api/v1/auth/reset-password", json=body).status_code == 200
        assert client.post("/api/v1/auth/reset-password", json=body).status_code == 422

    def test_unknown_email_still_succeeds(self, client):
        response = client.post("/api/v1/auth/forgot-password", json={"email": "ghost@example.com"})
        assert response.status_code == 200
        assert _queued("password_reset") == []

    def test_mismatched_confirmation(self, client):
        response = client.post(
            "/api/v1/auth/reset-password",
            json={"token": "abc", "password": "NewSecret9", "confirm_password": "Other1234"},
        )
        assert response.status_code == 422


class TestAccess:
    def test_protected_route_needs_token(self, client):
        response = client.get("/api/v1/stories")
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "AUTHENTICATION_ERROR"

    def test_garbage_token_rejected(self, client):
        response = client.get("/api/v1/stories", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_child_cannot_reach_admin_or_mentor_routes(self, client, make_user):
        headers = auth_headers(make_user())
        for path in ("/api/v1/admin/users", "/api/v1/mentor/students"):
            response = client.get(path, headers=headers)
            assert response.status_code == 403
            assert response.json()["error"]["code"] == "AUTHORIZATION_ERROR"

    def test_security_headers_present(self, client):
        response = client.get("/api/v1/health")
        assert response.headers["X-Content-Type-Options"] == "nosniff"

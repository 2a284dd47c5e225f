import json
import time
from datetime import datetime, timedelta

from app.crud.ai_keys import AIKeyCRUD
from app.crud.notification import NotificationCRUD
from app.crud.story import StoryCRUD
from app.crud.subscription import SubscriptionCRUD
from app.crud.user import UserCRUD
from app.services.billing import compute_signature
from app.services.email.email_service import get_email_queue
from app.services.maintenance import MaintenanceSweep

from conftest import PASSWORD, auth_headers, long_text

WEBHOOK_SECRET = "whsec_test"


def _signed_post(client, event, secret=WEBHOOK_SECRET):
    payload = json.dumps(event).encode("utf-8")
    timestamp = int(time.time())
    header = f"t={timestamp},v1={compute_signature(payload, timestamp, secret)}"
    return client.post(
        "/api/v1/subscriptions/webhook",
        content=payload,
        headers={"Stripe-Signature": header, "Content-Type": "application/json"},
    )


class TestProfile:
    def test_profile_and_update(self, client, db, make_user):
        user = make_user(age=10)
        headers = auth_headers(user)
        assert client.get("/api/v1/users/profile", headers=headers).json()["data"]["email"] == user.email

        response = client.put("/api/v1/users/profile", json={"age": 14, "bio": "<b>I love dragons</b>"}, headers=headers)
        data = response.json()["data"]
        assert data["age_group"] == "13-15"
        assert data["bio"] == "I love dragons"

    def test_preferences_merge(self, client, db, make_user):
        user = make_user()
        response = client.put(
            "/api/v1/users/preferences",
            json={"theme": "dark", "email_notifications": {"marketing": True}},
            headers=auth_headers(user),
        )
        assert response.status_code == 200
        prefs = UserCRUD(db).get_model(user.id).preferences
        assert prefs.theme == "dark"
        assert prefs.email_notifications.marketing is True
        assert prefs.email_notifications.mentor_comments is True

    def test_change_password(self, client, make_user):
        user = make_user()
        headers = auth_headers(user)
        wrong = client.post(
            "/api/v1/users/change-password",
            json={"current_password": "Nope12345", "new_password": "Fresh1234"},
            headers=headers,
        )
        assert wrong.status_code == 401

        ok = client.post(
            "/api/v1/users/change-password",
            json={"current_password": PASSWORD, "new_password": "Fresh1234"},
            headers=headers,
        )
        assert ok.status_code == 200
        login = client.post("/api/v1/auth/login", json={"email": user.email, "password": "Fresh1234"})
        assert login.status_code == 200

    def test_requests_record_last_active(self, client, db, make_user):
        user = make_user()
        assert UserCRUD(db).get_model(user.id).last_active_at is None

        client.get("/api/v1/users/profile", headers=auth_headers(user))
        first = UserCRUD(db).get_model(user.id).last_active_at
        assert first is not None

        client.get("/api/v1/users/profile", headers=auth_headers(user))
        assert UserCRUD(db).get_model(user.id).last_active_at == first


class TestSubscriptions:
    def test_tiers_are_public(self, client):
        response = client.get("/api/v1/subscriptions/tiers")
        assert response.status_code == 200
        assert "free" in json.dumps(response.json()["data"])

    def test_usage_reports_remaining(self, client, make_user, make_story):
        user = make_user()
        make_story(user)
        data = client.get("/api/v1/subscriptions/usage", headers=auth_headers(user)).json()["data"]
        assert data["tier"] == "free"
        assert data["remaining"]["stories"] == 49

    def test_upgrade_then_cancel_at_period_end(self, client, db, make_user):
        user = make_user()
        headers = auth_headers(user)

        upgraded = client.post(
            "/api/v1/subscriptions/upgrade", json={"tier": "premium", "billing_interval": "year"}, headers=headers
        )
        assert upgraded.status_code == 200
        data = upgraded.json()["data"]
        assert data["tier"] == "premium"
        assert data["amount"] == 9990
        assert UserCRUD(db).get_model(user.id).subscription_tier == "premium"

        again = client.post(
            "/api/v1/subscriptions/upgrade", json={"tier": "premium", "billing_interval": "year"}, headers=headers
        )
        assert again.status_code == 409

        canceled = client.post("/api/v1/subscriptions/cancel", json={}, headers=headers)
        assert canceled.status_code == 200
        data = canceled.json()["data"]
        assert data["cancel_at_period_end"] is True
        assert data["tier"] == "premium"

        reactivated = client.post("/api/v1/subscriptions/reactivate", headers=headers)
        assert reactivated.json()["data"]["cancel_at_period_end"] is False

    def test_immediate_cancel_drops_to_free(self, client, db, make_user):
        user = make_user(tier="basic")
        response = client.post("/api/v1/subscriptions/cancel", json={"immediate": True}, headers=auth_headers(user))
        assert response.json()["data"]["tier"] == "free"
        assert SubscriptionCRUD(db).get_by_user(user.id).tier == "free"

    def test_free_plan_cannot_cancel_or_upgrade_to_free(self, client, make_user):
        headers = auth_headers(make_user())
        assert client.post("/api/v1/subscriptions/cancel", json={}, headers=headers).status_code == 422
        assert client.post("/api/v1/subscriptions/upgrade", json={"tier": "free"}, headers=headers).status_code == 422

    def test_upgrade_without_stripe_lapses_at_period_end(self, client, db, make_user):
        user = make_user()
        response = client.post(
            "/api/v1/subscriptions/upgrade", json={"tier": "basic", "billing_interval": "month"},
            headers=auth_headers(user),
        )
        assert response.status_code == 200
        assert response.json()["data"]["days_in_current_period"] == 30

        subscription = SubscriptionCRUD(db).get_by_user(user.id)
        assert subscription.end_date == subscription.current_period_end
        now = datetime.utcnow()
        assert not subscription.is_expired(now)
        assert subscription.is_expired(now + timedelta(days=31))

        result = MaintenanceSweep(db).run(now + timedelta(days=31))
        assert result["subscriptions_expired"] == 1
        assert SubscriptionCRUD(db).get_by_user(user.id).tier == "free"
        assert UserCRUD(db).get_model(user.id).subscription_tier == "free"

    def test_webhook_applies_subscription_update(self, client, db, make_user):
        user = make_user()
        now = int(time.time())
        event = {
            "type": "customer.subscription.updated",
            "data": {"object": {
                "id": "sub_123",
                "customer": "cus_123",
                "status": "active",
                "metadata": {"user_id": user.id, "tier": "pro"},
                "items": {"data": [{"price": {"id": "price_pro", "unit_amount": 1999, "recurring": {"interval": "month"}}}]},
                "current_period_start": now,
                "current_period_end": now + 30 * 86400,
            }},
        }
        response = _signed_post(client, event)
        assert response.status_code == 200
        assert response.json()["data"]["handled"] is True

        subscription = SubscriptionCRUD(db).get_by_stripe_id("sub_123")
        assert subscription.user_id == user.id
        assert subscription.tier == "pro"
        assert UserCRUD(db).get_model(user.id).subscription_tier == "pro"

    def test_webhook_rejects_bad_signature(self, client):
        response = _signed_post(client, {"type": "invoice.payment_failed"}, secret="whsec_other")
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "PAYMENT_WEBHOOK_ERROR"

    def test_webhook_ignores_unhandled_events(self, client):
        response = _signed_post(client, {"type": "charge.refunded", "data": {"object": {}}})
        assert response.status_code == 200
        assert response.json()["data"]["handled"] is False


class TestNotifications:
    def test_list_read_and_clear(self, client, db, make_user):
        user = make_user()
        other = make_user()
        admin = make_user(role="admin", age=18)
        headers = auth_headers(user)

        sent = client.post(
            "/api/v1/admin/notifications",
            json={"title": "Contest", "message": "Write a spooky tale", "user_ids": [user.id, user.id]},
            headers=auth_headers(admin),
        )
        assert sent.json()["data"] == {"sent": 1, "requested": 1}

        listed = client.get("/api/v1/notifications", headers=headers).json()["data"]
        assert listed["unread_count"] == 1
        notification_id = listed["items"][0]["id"]

        assert client.put(f"/api/v1/notifications/{notification_id}/read", headers=auth_headers(other)).status_code == 404
        assert client.put(f"/api/v1/notifications/{notification_id}/read", headers=headers).status_code == 200
        count = client.get("/api/v1/notifications/unread-count", headers=headers).json()["data"]
        assert count == {"unread_count": 0}

        client.delete("/api/v1/notifications", headers=headers)
        assert NotificationCRUD(db).unread_count(user.id) == 0


class TestAdmin:
    def test_moderation_approve(self, client, db, make_user, make_story):
        admin = make_user(role="admin", age=18)
        child = make_user()
        story = make_story(child, content=long_text(), status="needs_review", moderation_status="pending")
        headers = auth_headers(admin)

        queue = client.get("/api/v1/admin/moderation", headers=headers).json()["data"]
        assert [item["id"] for item in queue["items"]] == [story.id]

        response = client.post(
            "/api/v1/admin/moderation", json={"story_id": story.id, "action": "approve"}, headers=headers
        )
        assert response.status_code == 200
        stored = StoryCRUD(db).get_model(story.id)
        assert stored.status == "published"
        assert stored.moderated_by == admin.id
        author = UserCRUD(db).get_model(child.id)
        assert author.stats.stories_published == 1
        assert sorted(author.stats.achievements_unlocked) == ["Prolific Writer", "Published Author"]
        # approval plus one notification per badge
        assert NotificationCRUD(db).unread_count(child.id) == 3

    def test_moderation_reject_returns_to_draft(self, client, db, make_user, make_story):
        admin = make_user(role="admin", age=18)
        story = make_story(make_user(), content=long_text(), status="needs_review", moderation_status="pending")
        client.post(
            "/api/v1/admin/moderation",
            json={"story_id": story.id, "action": "reject", "notes": "Please remove the phone number"},
            headers=auth_headers(admin),
        )
        stored = StoryCRUD(db).get_model(story.id)
        assert stored.status == "draft"
        assert stored.moderation_notes == "Please remove the phone number"

    def test_ai_keys_are_stored_encrypted(self, client, db, make_user):
        headers = auth_headers(make_user(role="admin", age=18))
        response = client.post(
            "/api/v1/admin/ai-keys",
            json={"provider": "groq", "key_name": "primary", "api_key": "gsk_secret_value"},
            headers=headers,
        )
        assert response.status_code == 201
        data = response.json()["data"]
        assert "encrypted_key" not in data
        assert "gsk_secret_value" not in json.dumps(data)

        stored = AIKeyCRUD(db).get_model(data["id"])
        assert stored.get_api_key() == "gsk_secret_value"

        duplicate = client.post(
            "/api/v1/admin/ai-keys",
            json={"provider": "groq", "key_name": "primary", "api_key": "gsk_other_value"},
            headers=headers,
        )
        assert duplicate.status_code == 409

        listed = client.get("/api/v1/admin/ai-keys", headers=headers).json()["data"]
        assert listed["total"] == 1
        assert client.delete(f"/api/v1/admin/ai-keys/{data['id']}", headers=headers).status_code == 200

    def test_assign_mentor_and_deactivate(self, client, db, make_user):
        admin = make_user(role="admin", age=18)
        mentor = make_user(role="mentor")
        child = make_user()
        headers = auth_headers(admin)

        response = client.patch(f"/api/v1/admin/users/{child.id}", json={"mentor_id": mentor.id}, headers=headers)
        assert response.json()["data"]["mentor_id"] == mentor.id

        bad = client.patch(f"/api/v1/admin/users/{child.id}", json={"mentor_id": child.id}, headers=headers)
        assert bad.status_code == 422

        assert client.delete(f"/api/v1/admin/users/{admin.id}", headers=headers).status_code == 422
        assert client.delete(f"/api/v1/admin/users/{child.id}", headers=headers).status_code == 200
        stored = UserCRUD(db).get_model(child.id)
        assert stored.account_status == "inactive"
        assert client.get("/api/v1/users/profile", headers=auth_headers(child)).status_code == 403

    def test_list_users_search(self, client, make_user):
        headers = auth_headers(make_user(role="admin", age=18))
        make_user(name="Zara Moon")
        make_user(name="Tom Sun")
        data = client.get("/api/v1/admin/users?search=zara", headers=headers).json()["data"]
        assert [item["name"] for item in data["items"]] == ["Zara Moon"]

    def test_mentor_is_not_admin(self, client, make_user):
        response = client.get("/api/v1/admin/analytics", headers=auth_headers(make_user(role="mentor")))
        assert response.status_code == 403

    def test_reset_usage_clears_counters(self, client, db, make_user):
        admin = make_user(role="admin", age=18)
        child = make_user()
        subscriptions = SubscriptionCRUD(db)
        subscription = subscriptions.get_or_create_for_user(child.id)
        subscription.usage.stories_today = 3
        subscription.usage.ai_requests_this_month = 40
        subscription.usage.total_stories_created = 12
        subscriptions.save_model(subscription)

        response = client.patch(
            f"/api/v1/admin/users/{child.id}", json={"reset_usage": True}, headers=auth_headers(admin)
        )
        assert response.status_code == 200
        usage = subscriptions.get_by_user(child.id).usage
        assert usage.stories_today == 0
        assert usage.ai_requests_this_month == 0
        assert usage.total_stories_created == 12

    def test_announcement_to_one_tier_by_email(self, client, db, make_user, monkeypatch):
        admin = make_user(role="admin", age=18)
        basic = make_user(tier="basic")
        make_user(tier="premium")
        make_user()
        mailed = []

        async def fake_send(to, template, data):
            mailed.append((to, template, data["title"]))
            return True

        monkeypatch.setattr(get_email_queue().service, "send_email", fake_send)
        response = client.post(
            "/api/v1/admin/notifications",
            json={"title": "Basic perks", "message": "Exports in Word", "tier": "basic", "send_email": True},
            headers=auth_headers(admin),
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["sent"] == data["requested"] == 1
        assert data["email"] == {"success": 1, "failed": 0, "errors": []}
        assert mailed == [(basic.email, "announcement", "Basic perks")]
        assert NotificationCRUD(db).unread_count(basic.id) == 1


class TestHealth:
    def test_api_health_needs_no_token(self, client):
        response = client.get("/api/v1/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["storage"] == "local"
        assert data["ai_configured"] is False

    def test_root_endpoints(self, client):
        assert client.get("/health").json()["status"] == "healthy"
        assert client.get("/").json()["success"] is True

import asyncio
import io
import json
import time
from datetime import datetime, timedelta

import pytest
from docx import Document

from app.config import get_settings
from app.crud.ai_keys import AIKeyCRUD
from app.crud.notification import NotificationCRUD
from app.crud.subscription import SubscriptionCRUD
from app.crud.user import UserCRUD
from app.models.ai_keys import AIKeyModel
from app.models.notification import NotificationModel, NotificationType
from app.models.story import AIAssessment, StoryElements, StoryModel
from app.models.user import UserModel
from app.services.achievements import (
    ACHIEVEMENTS,
    AchievementService,
    achievement_progress,
    assessment_achievements,
)
from app.services.ai.story_assistant import StoryAssistant, fallback_assessment
from app.services.billing import BillingService, compute_signature, verify_stripe_signature
from app.services.content_filter import ContentFilter, InputSanitizer
from app.services.email.email_service import EmailQueue, EmailService
from app.services.email.templates import render_template
from app.services.export_service import DOCX_MEDIA_TYPE, export_story
from app.services.local_store import LocalStore
from app.services.maintenance import MaintenanceSweep
from app.services.notification_service import NotificationService
from app.services.rate_limit import RateLimiter
from app.utils.exceptions import EmailDeliveryError, PaymentWebhookError

from conftest import ELEMENTS


class TestContentFilter:
    def test_clean_text(self):
        result = ContentFilter.filter_content("The dragon flew over the castle and found a friend.")
        assert result.is_clean
        assert result.violations == []

    def test_masks_inappropriate_words(self):
        result = ContentFilter.filter_content("There was Violence in the village")
        assert not result.is_clean
        assert "Inappropriate word: violence" in result.violations
        assert "***" in result.cleaned_content

    def test_detects_personal_information(self):
        result = ContentFilter.filter_content("Call me at 555-123-4567 or mail kid@example.com")
        assert "Personal information: phone number" in result.violations
        assert "Personal information: email address" in result.violations

    def test_shouting_and_spam(self):
        assert "Excessive capitalization" in ContentFilter.filter_content("THIS IS A VERY LOUD STORY").violations
        assert "Repeated character spam" in ContentFilter.filter_content("Hellooooooo").violations

    def test_sanitize_story_content_strips_markup(self):
        dirty = '<script>alert(1)</script><b onclick="x()">Hello</b> <a href="javascript:evil()">there</a>'
        assert InputSanitizer.sanitize_story_content(dirty) == "Hello there"

    def test_sanitize_filename(self):
        assert InputSanitizer.sanitize_filename('My "Best" Story: Part 1?') == "My_Best_Story_Part_1"
        assert InputSanitizer.sanitize_filename("Dragón") == "Dragn"
        assert InputSanitizer.sanitize_filename("???") == "story"


class TestRateLimiter:
    def test_sliding_window(self):
        limiter = RateLimiter(max_requests=2, window_seconds=60)
        assert limiter.check("k", now=0).allowed
        assert limiter.check("k", now=10).allowed
        blocked = limiter.check("k", now=20)
        assert not blocked.allowed
        assert blocked.retry_after == 40
        assert blocked.headers()["Retry-After"] == "40"
        assert limiter.check("k", now=61).allowed

    def test_keys_are_independent(self):
        limiter = RateLimiter(max_requests=1, window_seconds=60)
        assert limiter.is_allowed("a")
        assert limiter.is_allowed("b")
        assert not limiter.is_allowed("a")


class TestLocalStore:
    def test_query_operators_and_persistence(self, tmp_path):
        store = LocalStore(str(tmp_path))
        users = store.collection("users")
        users.document("a").set({"name": "Ann", "age": 8, "tags": ["x"], "joined": datetime(2024, 1, 1)})
        users.document("b").set({"name": "Ben", "age": 12, "tags": ["y"]})

        assert [d.id for d in users.where("age", ">", 10).get()] == ["b"]
        assert [d.id for d in users.where("tags", "array_contains", "x").get()] == ["a"]
        assert [d.id for d in users.where("name", "in", ["Ann", "Zed"]).get()] == ["a"]
        assert [d.id for d in users.order_by("age", "DESCENDING").limit(1).get()] == ["b"]

        reloaded = LocalStore(str(tmp_path))
        doc = reloaded.collection("users").document("a").get()
        assert doc.exists
        assert doc.get("joined") == datetime(2024, 1, 1)

    def test_update_and_delete(self, tmp_path):
        store = LocalStore(str(tmp_path))
        ref = store.collection("stories").document("s1")
        ref.set({"title": "One", "likes": 0})
        ref.update({"likes": 3})
        ref.set({"status": "draft"}, merge=True)
        assert ref.get().to_dict() == {"id": "s1", "title": "One", "likes": 3, "status": "draft"}
        ref.delete()
        assert not ref.get().exists


class FakeEmailService:
    def __init__(self, results):
        self.results = list(results)
        self.sent = []

    async def send_email(self, to, template, data):
        self.sent.append((to, template))
        return self.results.pop(0)


class TestEmailQueue:
    def test_sent_item_leaves_queue(self):
        queue = EmailQueue(FakeEmailService([True]))
        queue.enqueue("kid@example.com", "welcome", {"name": "Kid"})
        assert asyncio.run(queue.process_once()) == 1
        assert queue.items == []

    def test_failed_item_retries_after_five_minutes_then_drops(self):
        queue = EmailQueue(FakeEmailService([False, False, False]))
        queue.enqueue("kid@example.com", "welcome", {"name": "Kid"})
        now = datetime.utcnow() + timedelta(seconds=1)

        asyncio.run(queue.process_once(now))
        assert queue.items[0].attempts == 1
        assert asyncio.run(queue.process_once(now + timedelta(minutes=4))) == 0

        asyncio.run(queue.process_once(now + timedelta(minutes=5)))
        asyncio.run(queue.process_once(now + timedelta(minutes=10)))
        assert queue.items == []
        assert len(queue.service.sent) == 3

    def test_delayed_item_waits(self):
        queue = EmailQueue(FakeEmailService([True]))
        queue.enqueue("kid@example.com", "welcome", {}, delay_seconds=60)
        assert asyncio.run(queue.process_once()) == 0
        assert queue.status()["queue_length"] == 1

    def test_render_reset_template_links_token(self):
        rendered = render_template("password_reset", {"name": "Kid", "token": "abc123"})
        assert "reset-password?token=abc123" in rendered["text"]
        assert rendered["subject"].startswith("Reset")

    def test_render_unknown_template(self):
        with pytest.raises(KeyError):
            render_template("nope", {})

    def test_smtp_failure_is_reported_not_raised(self, monkeypatch):
        def refuse(*args, **kwargs):
            raise ConnectionRefusedError("connection refused")

        monkeypatch.setattr("app.services.email.email_service.smtplib.SMTP", refuse)
        service = EmailService()
        monkeypatch.setattr(service.settings, "smtp_host", "smtp.invalid")

        message = service._build_message(["kid@example.com"], render_template("welcome", {"name": "Kid"}))
        with pytest.raises(EmailDeliveryError) as exc:
            service._deliver(message)
        assert exc.value.status_code == 502
        assert asyncio.run(service.send_email("kid@example.com", "welcome", {"name": "Kid"})) is False

    def test_invalid_recipient_is_refused(self, monkeypatch):
        service = EmailService()
        monkeypatch.setattr(service.settings, "smtp_host", "smtp.invalid")
        delivered = []
        monkeypatch.setattr(service, "_deliver", delivered.append)

        assert asyncio.run(service.send_email("kid at example dot com", "welcome", {"name": "Kid"})) is False
        assert asyncio.run(service.send_email(["kid@example.com", "kid@"], "welcome", {"name": "Kid"})) is False
        assert delivered == []

    def test_bulk_email_counts_each_recipient(self, monkeypatch):
        service = EmailService()
        attempted = []

        async def fake_send(to, template, data):
            attempted.append(to)
            return to != "bounce@example.com"

        monkeypatch.setattr(service, "send_email", fake_send)
        monkeypatch.setattr("app.services.email.email_service.BULK_BATCH_PAUSE_SECONDS", 0)
        recipients = [f"kid{n}@example.com" for n in range(11)] + ["bounce@example.com"]

        result = asyncio.run(service.send_bulk_email(recipients, "announcement", {"title": "Hi", "message": "News"}))
        assert result["success"] == 11
        assert result["failed"] == 1
        assert result["errors"] == ["Failed to send to bounce@example.com"]
        assert attempted == recipients

    def test_render_announcement(self):
        rendered = render_template("announcement", {"title": "New themes", "message": "Space stories are here"})
        assert rendered["text"] == "New themes\n\nSpace stories are here"
        assert "/dashboard" in rendered["html"]

    def test_loop_keeps_running_after_a_failed_pass(self, monkeypatch):
        queue = EmailQueue(FakeEmailService([]))
        calls = []

        async def flaky(now=None):
            calls.append(now)
            if len(calls) == 1:
                raise RuntimeError("store unavailable")
            return 0

        monkeypatch.setattr(queue, "process_once", flaky)
        monkeypatch.setattr(get_settings(), "email_queue_poll_seconds", 0)

        async def run_until_third_pass():
            task = asyncio.create_task(queue.process_loop())
            while len(calls) < 3:
                await asyncio.sleep(0)
            assert queue.is_processing
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(run_until_third_pass())
        assert len(calls) >= 3
        assert not queue.is_processing


class TestNotificationService:
    def test_notify_queues_email_when_opted_in(self, db, make_user):
        user = make_user()
        queue = EmailQueue(FakeEmailService([]))
        notifier = NotificationService(db, queue)
        notification = notifier.notify(
            user.id,
            NotificationType.MENTOR_COMMENT,
            "New comment",
            "Your mentor commented",
            email_data={"mentor_name": "Ms Lee", "story_title": "T", "story_id": "s1", "comment": "Nice"},
        )
        assert notification is not None
        assert NotificationCRUD(db).unread_count(user.id) == 1
        assert [item.template for item in queue.items] == ["mentor_comment"]

    def test_notify_respects_preferences(self, db, make_user):
        user = make_user()
        user.preferences.email_notifications.mentor_comments = False
        UserCRUD(db).save_model(user)
        queue = EmailQueue(FakeEmailService([]))
        NotificationService(db, queue).notify(
            user.id, NotificationType.MENTOR_COMMENT, "New comment", "Hi", email_data={"comment": "x"},
        )
        assert queue.items == []

    def test_notify_unknown_user(self, db):
        assert NotificationService(db).notify("missing", NotificationType.WELCOME, "Hi", "Hello") is None


class TestStoryAssistantFallback:
    def _assistant(self, db):
        return StoryAssistant(db)

    def test_opening_without_providers(self, db):
        result = asyncio.run(self._assistant(db).generate_opening(StoryElements(**ELEMENTS), 9))
        assert result["is_fallback"]
        assert result["opening"].startswith("Once upon a time, in a enchanted forest")
        assert set(result["prompts"]) == {"continue", "twist", "character", "challenge"}

    def test_assessment_without_providers(self, db):
        assessment = asyncio.run(self._assistant(db).assess_story("A story " * 20, 9))
        assert assessment.is_fallback
        assert assessment.overall_score == 78


class TestStoryAssistantParsing:
    def _assess_with_reply(self, db, monkeypatch, reply):
        assistant = StoryAssistant(db)

        async def answer(system, prompt, max_tokens, temperature):
            return json.dumps(reply)

        monkeypatch.setattr(assistant, "_generate", answer)
        return asyncio.run(assistant.assess_story("The brave fox crossed the river at dawn.", 9))

    def test_scores_are_clamped(self, db, monkeypatch):
        assessment = self._assess_with_reply(db, monkeypatch, {
            "grammar_score": 120, "creativity_score": "88", "overall_score": -4,
            "suggestions": ["Add dialogue"], "strengths": ["Vivid verbs"],
        })
        assert not assessment.is_fallback
        assert (assessment.grammar_score, assessment.creativity_score, assessment.overall_score) == (100, 88, 0)
        assert assessment.suggestions == ["Add dialogue"]

    def test_string_suggestions_stay_whole(self, db, monkeypatch):
        assessment = self._assess_with_reply(db, monkeypatch, {
            "grammar_score": 80, "creativity_score": 80, "overall_score": 80,
            "suggestions": "Describe the river more",
            "strengths": {"voice": "lively"},
            "improvements": None,
        })
        assert assessment.suggestions == ["Describe the river more"]
        assert assessment.strengths == []
        assert assessment.improvements == []


class TestExport:
    def _story(self):
        story = StoryModel(
            title="Dragon's Secret",
            author_id="u1",
            author_name="Kid",
            elements=StoryElements(**ELEMENTS),
        )
        story.apply_content("First paragraph.\nSecond paragraph (with brackets).")
        story.ai_assessment = AIAssessment(grammar_score=80, creativity_score=90, overall_score=85)
        return story

    def test_txt_includes_sections_and_feedback(self):
        exported = export_story(self._story(), "txt", [{"commenter_name": "Ms Lee", "content": "Lovely!"}])
        text = exported.content.decode("utf-8")
        assert exported.filename.startswith("Dragon's_Secret_")
        assert exported.filename.endswith(".txt")
        assert "STORY ELEMENTS" in text
        assert "Ms Lee: Lovely!" in text
        assert "Overall: 85" in text

    def test_pdf_is_a_pdf(self):
        exported = export_story(self._story(), "pdf")
        assert exported.media_type == "application/pdf"
        assert exported.filename.endswith(".pdf")
        assert exported.content.startswith(b"%PDF-")
        assert exported.content.rstrip().endswith(b"%%EOF")

    def test_pdf_tolerates_emoji(self):
        story = self._story()
        story.title = "My Dragon 🐉"
        story.apply_content("The dragon smiled 😀 and flew away.")
        exported = export_story(story, "pdf")
        assert exported.content.startswith(b"%PDF-")

    def test_word_is_docx(self):
        exported = export_story(self._story(), "word", [{"commenter_name": "Ms Lee", "content": "Lovely!"}])
        assert exported.media_type == DOCX_MEDIA_TYPE
        assert exported.filename.endswith(".docx")
        assert exported.content.startswith(b"PK")

        document = Document(io.BytesIO(exported.content))
        paragraphs = [p.text for p in document.paragraphs]
        assert paragraphs[0] == "Dragon's Secret"
        assert "Second paragraph (with brackets)." in paragraphs
        assert "Ms Lee: Lovely!" in paragraphs
        assert document.core_properties.author == "Kid"

    def test_unknown_format(self):
        with pytest.raises(ValueError):
            export_story(self._story(), "epub")


def _signed(payload: bytes, secret="whsec_test", timestamp=None):
    timestamp = int(time.time()) if timestamp is None else timestamp
    return f"t={timestamp},v1={compute_signature(payload, timestamp, secret)}"


class TestBilling:
    def test_signature_checks(self):
        payload = b'{"type": "ping"}'
        verify_stripe_signature(payload, _signed(payload), "whsec_test")
        with pytest.raises(PaymentWebhookError):
            verify_stripe_signature(payload, _signed(payload, secret="other"), "whsec_test")
        with pytest.raises(PaymentWebhookError):
            verify_stripe_signature(payload, _signed(payload, timestamp=int(time.time()) - 600), "whsec_test")
        with pytest.raises(PaymentWebhookError):
            verify_stripe_signature(payload, "garbage", "whsec_test")

    def test_subscription_updated_event_sets_tier(self, db, make_user):
        user = make_user()
        start = int(time.time())
        event = {
            "type": "customer.subscription.updated",
            "data": {"object": {
                "id": "sub_123",
                "customer": "cus_1",
                "status": "active",
                "metadata": {"user_id": user.id, "tier": "premium"},
                "items": {"data": [{"price": {"id": "price_1", "unit_amount": 999, "recurring": {"interval": "month"}}}]},
                "current_period_start": start,
                "current_period_end": start + 30 * 86400,
            }},
        }
        result = BillingService(db).handle_event(event)
        assert result["handled"]

        subscription = SubscriptionCRUD(db).get_by_user(user.id)
        assert subscription.tier == "premium"
        assert subscription.stripe_subscription_id == "sub_123"
        assert UserCRUD(db).get_model(user.id).subscription_tier == "premium"

    def test_payment_failed_marks_past_due(self, db, make_user):
        user = make_user(tier="basic")
        subscription = SubscriptionCRUD(db).get_by_user(user.id)
        subscription.stripe_subscription_id = "sub_9"
        SubscriptionCRUD(db).save_model(subscription)

        BillingService(db).handle_event({
            "type": "invoice.payment_failed",
            "data": {"object": {"id": "in_1", "subscription": "sub_9"}},
        })
        assert SubscriptionCRUD(db).get_by_user(user.id).status == "past_due"

    def test_parse_event_rejects_bad_json(self, db):
        payload = b"not json"
        with pytest.raises(PaymentWebhookError):
            BillingService(db).parse_event(payload, _signed(payload))

    def test_unhandled_event_is_ignored(self, db):
        assert BillingService(db).handle_event({"type": "charge.refunded"})["handled"] is False


class TestMaintenance:
    def test_removes_expired_notifications(self, db, make_user):
        user = make_user()
        old = NotificationModel(
            user_id=user.id, type=NotificationType.REMINDER, title="Old", message="Old",
            created_at=datetime.utcnow() - timedelta(days=2),
        )
        fresh = NotificationModel(user_id=user.id, type=NotificationType.WELCOME, title="New", message="New")
        crud = NotificationCRUD(db)
        crud.create_notification(old)
        crud.create_notification(fresh)

        result = MaintenanceSweep(db).run()
        assert result["notifications_removed"] == 1
        assert crud.unread_count(user.id) == 1

    def test_resets_key_counters_once_per_day(self, db):
        key = AIKeyModel(provider="groq", key_name="main", daily_usage=7, monthly_usage=40)
        key.set_api_key("gsk_test")
        AIKeyCRUD(db).create_key(key)

        day = datetime(2024, 5, 1, 10, 0)
        sweep = MaintenanceSweep(db, started_at=day)
        assert sweep.run(day + timedelta(hours=1))["ai_keys_reset"] == 0

        assert sweep.run(day + timedelta(days=1))["ai_keys_reset"] == 1
        stored = AIKeyCRUD(db).get_model(key.id)
        assert stored.daily_usage == 0
        assert stored.monthly_usage == 40
        assert sweep.run(day + timedelta(days=1, hours=2))["ai_keys_reset"] == 0

        sweep.run(datetime(2024, 6, 1, 0, 5))
        assert AIKeyCRUD(db).get_model(key.id).monthly_usage == 0

    def test_key_is_encrypted_at_rest(self, db):
        key = AIKeyModel(provider="anthropic", key_name="primary")
        key.set_api_key("sk-ant-secret")
        assert "sk-ant-secret" not in json.dumps(key.to_dict(), default=str)
        assert key.get_api_key() == "sk-ant-secret"
        assert "encrypted_key" not in key.to_public_dict()

    def test_lapsed_paid_plan_drops_to_free(self, db, make_user):
        user = make_user(tier="basic")
        subscriptions = SubscriptionCRUD(db)
        subscription = subscriptions.get_by_user(user.id)
        now = datetime.utcnow()
        subscription.start_paid_period(now, now + timedelta(days=30))
        subscriptions.save_model(subscription)

        sweep = MaintenanceSweep(db)
        assert sweep.run(now + timedelta(days=29))["subscriptions_expired"] == 0
        assert sweep.run(now + timedelta(days=31))["subscriptions_expired"] == 1
        assert subscriptions.get_by_user(user.id).tier == "free"
        assert UserCRUD(db).get_model(user.id).subscription_tier == "free"

    def test_renewal_reminders_at_seven_and_one_days(self, db, make_user):
        user = make_user(tier="premium")
        subscriptions = SubscriptionCRUD(db)
        subscription = subscriptions.get_by_user(user.id)
        subscription.stripe_subscription_id = "sub_renewing"
        now = datetime.utcnow()
        subscription.start_paid_period(now, now + timedelta(days=30))
        subscriptions.save_model(subscription)

        sweep = MaintenanceSweep(db, started_at=now)
        assert sweep.run(now + timedelta(days=23))["renewal_reminders"] == 1
        [note] = NotificationCRUD(db).list_for_user(user.id, notification_type="subscription_update")["items"]
        assert note["data"]["days_remaining"] == 7
        assert note["message"] == "Your Premium plan renews in 7 days."

        assert sweep.run(now + timedelta(days=23))["renewal_reminders"] == 0
        assert sweep.run(now + timedelta(days=25))["renewal_reminders"] == 0
        assert sweep.run(now + timedelta(days=29))["renewal_reminders"] == 1

    def test_weekly_digest_goes_to_writers_active_this_week(self, db, make_user, make_story):
        writer = make_user(name="Lily Star")
        make_user(name="Sam Quiet")
        opted_out = make_user(name="Max Busy")
        opted_out.preferences.email_notifications.weekly_progress = False
        UserCRUD(db).save_model(opted_out)
        story = make_story(writer, content="The fox ran home before the storm.")
        make_story(opted_out, content="A short tale.")

        queue = EmailQueue(FakeEmailService([]))
        now = datetime.utcnow()
        sweep = MaintenanceSweep(db, started_at=now - timedelta(days=7), email_queue=queue)
        assert sweep.run(now)["weekly_digests"] == 1
        assert sweep.run(now)["weekly_digests"] == 0

        [item] = queue.items
        assert item.template == "weekly_progress"
        assert item.to == [writer.email]
        assert item.data["stories_this_week"] == 1
        assert item.data["words_this_week"] == story.word_count


class TestAchievements:
    def _user(self, age=7):
        return UserModel(email="kid@example.com", name="Kid", password_hash="x", role="child", age=age)

    def test_strong_assessment_earns_top_tiers_only(self):
        assessment = AIAssessment(grammar_score=96, creativity_score=92, overall_score=91)
        assert assessment_achievements(assessment, 7) == [
            "Grammar Master", "Creative Genius", "Excellent Writer", "Young Talent",
        ]
        assert assessment_achievements(assessment, 11) == [
            "Grammar Master", "Creative Genius", "Excellent Writer", "Rising Star",
        ]
        assert assessment_achievements(assessment, 15)[-1] == "Excellent Writer"

    def test_award_is_once_per_badge(self, db):
        user = self._user()
        notifier = NotificationService(db)
        service = AchievementService(notifier)
        assessment = AIAssessment(grammar_score=86, creativity_score=70, overall_score=82)

        assert service.award(user, assessment, word_count=310) == [
            "Grammar Expert", "Great Storyteller", "Young Talent", "Detailed Storyteller",
        ]
        assert user.stats.experience_points == 25 + 25 + 25 + 15
        assert service.award(user, assessment, word_count=310) == []

    def test_fallback_scores_earn_no_score_badges(self, db):
        user = self._user()
        user.stats.stories_published = 1
        earned = AchievementService(NotificationService(db)).award(user, fallback_assessment(), word_count=40)
        assert earned == ["Published Author"]

    def test_progress_lists_unlocked_and_next(self):
        user = self._user()
        user.unlock_achievement("Word Explorer", 40)
        progress = achievement_progress(user)
        assert progress["unlocked_count"] == 1
        assert progress["unlocked"][0]["icon"]
        assert progress["total"] == len(ACHIEVEMENTS)
        assert "Word Explorer" not in [a["name"] for a in progress["available"]]
        assert user.stats.current_level == 1

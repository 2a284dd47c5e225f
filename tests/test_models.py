from datetime import datetime, timedelta, timezone

import pytest

from app.crud.user import UserCRUD
from app.models.comment import CommentModel
from app.models.notification import NotificationModel, NotificationType
from app.models.story import AIAssessment, StoryElements, StoryModel, StoryStatus
from app.models.subscription import SubscriptionModel, SubscriptionStatus, SubscriptionTier, UsageType
from app.models.user import AccountStatus, AgeGroup, UserModel
from app.utils.dates import to_naive_utc

from conftest import ELEMENTS


def _user(**fields):
    fields.setdefault("email", "Kid@Example.com")
    fields.setdefault("name", "Kid")
    return UserModel(**fields)


def _story(**fields):
    return StoryModel(title="Test", author_id="u1", elements=StoryElements(**ELEMENTS), **fields)


class TestUserModel:
    @pytest.mark.parametrize("age,group", [
        (2, AgeGroup.TODDLER), (5, AgeGroup.TODDLER), (6, AgeGroup.EARLY), (8, AgeGroup.EARLY),
        (9, AgeGroup.MIDDLE), (12, AgeGroup.MIDDLE), (13, AgeGroup.TEEN), (16, AgeGroup.OLDER_TEEN),
    ])
    def test_age_group(self, age, group):
        assert UserModel.calculate_age_group(age) == group

    def test_email_is_lowercased(self):
        assert _user().email == "kid@example.com"

    def test_defaults_are_stored_as_strings(self):
        data = _user().to_dict()
        assert data["role"] == "child"
        assert data["account_status"] == "pending_verification"
        assert type(data["role"]) is str

    def test_fifth_failed_login_locks_for_two_hours(self):
        user = _user()
        now = datetime(2024, 5, 1, 12, 0)
        locked = [user.increment_login_attempts(now) for _ in range(5)]
        assert locked == [False, False, False, False, True]
        assert user.locked_until == now + timedelta(hours=2)
        assert user.is_locked(now + timedelta(minutes=119))
        assert not user.can_sign_in(now)

    def test_expired_lock_restarts_count(self):
        user = _user(login_attempts=5, locked_until=datetime(2024, 5, 1, 12, 0))
        user.increment_login_attempts(datetime(2024, 5, 1, 15, 0))
        assert user.login_attempts == 1
        assert user.locked_until is None

    def test_password_reset_token_is_hashed_and_expires(self):
        user = _user()
        now = datetime(2024, 5, 1, 12, 0)
        raw = user.generate_password_reset_token(now)
        assert raw != user.reset_password_token_hash
        assert user.is_password_reset_token_valid(raw, now + timedelta(minutes=59))
        assert not user.is_password_reset_token_valid(raw, now + timedelta(minutes=61))
        assert not user.is_password_reset_token_valid("wrong", now)

    def test_verify_email_waits_for_parent_consent_under_13(self):
        user = _user(age=10)
        token = user.generate_email_verification_token()
        assert user.verify_email(token)
        assert user.email_verified
        assert user.account_status == AccountStatus.PENDING_VERIFICATION

        user.grant_parent_consent()
        assert user.account_status == AccountStatus.ACTIVE

    def test_verify_email_activates_teen(self):
        user = _user(age=14)
        token = user.generate_email_verification_token()
        assert user.verify_email(token)
        assert user.account_status == AccountStatus.ACTIVE

    def test_writing_streak(self):
        user = _user()
        day = datetime(2024, 5, 1, 9, 0)
        user.record_story_completed(100, day)
        user.record_story_completed(100, day + timedelta(days=1))
        assert user.stats.current_streak == 2
        user.record_story_completed(100, day + timedelta(days=4))
        assert user.stats.current_streak == 1
        assert user.stats.longest_streak == 2
        assert user.stats.total_word_count == 300

    def test_assessment_averages(self):
        user = _user()
        user.record_assessment(80, 60)
        user.record_assessment(60, 100)
        assert user.stats.average_grammar_score == 70.0
        assert user.stats.average_creativity_score == 80.0
        assert user.stats.assessed_stories == 2

    def test_public_dict_hides_secrets(self):
        user = _user(password_hash="x")
        user.generate_password_reset_token()
        public = user.to_public_dict()
        assert "password_hash" not in public
        assert "reset_password_token_hash" not in public
        assert "login_attempts" not in public


class TestStoryModel:
    def test_apply_content_counts_words_and_moves_to_in_progress(self):
        story = _story()
        story.apply_content("one two three " * 100)
        assert story.word_count == 300
        assert story.reading_time == 2
        assert story.status == StoryStatus.IN_PROGRESS

    def test_stage_stops_at_five(self):
        story = _story(stage=4)
        story.advance_stage()
        assert story.advance_stage() == 5

    def test_can_be_published_rules(self):
        story = _story(target_word_count=500)
        story.apply_content("word " * 400)
        story.mark_completed()
        assert not story.can_be_published()

        story.ai_assessment = AIAssessment(grammar_score=70, creativity_score=70, overall_score=60)
        assert story.can_be_published()

        story.ai_assessment = AIAssessment(grammar_score=70, creativity_score=70, overall_score=59)
        assert not story.can_be_published()

        story.ai_assessment.overall_score = 90
        story.apply_content("word " * 399)
        assert not story.can_be_published()

    def test_toggle_like(self):
        story = _story()
        assert story.toggle_like("a") is True
        assert story.toggle_like("b") is True
        assert story.toggle_like("a") is False
        assert story.likes == 1
        assert story.liked_by == ["b"]

    def test_target_word_count_bounds(self):
        with pytest.raises(ValueError):
            _story(target_word_count=200)


class TestSubscriptionModel:
    def test_free_tier_daily_story_limit(self):
        subscription = SubscriptionModel(user_id="u1")
        for _ in range(3):
            assert subscription.can_create_story(0)
            subscription.update_usage(UsageType.STORY_CREATED)
        assert "Daily story limit" in subscription.story_creation_block(3)

    def test_daily_window_resets_at_midnight(self):
        start = datetime(2024, 5, 1, 22, 0)
        subscription = SubscriptionModel(user_id="u1")
        subscription.usage.daily_reset_date = start
        subscription.usage.monthly_reset_date = start
        subscription.update_usage(UsageType.AI_REQUEST, now=start)
        assert subscription.usage.ai_requests_today == 1

        subscription.refresh_usage_windows(datetime(2024, 5, 2, 0, 1))
        assert subscription.usage.ai_requests_today == 0
        assert subscription.usage.ai_requests_this_month == 1
        assert subscription.usage.total_ai_requests == 1

    def test_monthly_window_resets_on_calendar_month(self):
        start = datetime(2024, 5, 31, 10, 0)
        subscription = SubscriptionModel(user_id="u1")
        subscription.usage.daily_reset_date = start
        subscription.usage.monthly_reset_date = start
        subscription.update_usage(UsageType.EXPORT_CREATED, now=start)
        assert not subscription.refresh_usage_windows(datetime(2024, 5, 31, 23, 0))
        assert subscription.refresh_usage_windows(datetime(2024, 6, 1, 0, 0))
        assert subscription.usage.exports_this_month == 0
        assert subscription.usage.total_exports == 1

    def test_export_formats_follow_tier(self):
        subscription = SubscriptionModel(user_id="u1")
        assert subscription.can_export_story("pdf")
        assert not subscription.can_export_story("word")
        subscription.change_tier("basic")
        assert subscription.can_export_story("word")
        assert not subscription.can_export_story("txt")

    def test_mentor_sessions_need_paid_tier(self):
        subscription = SubscriptionModel(user_id="u1")
        assert "not included" in subscription.mentor_session_block()
        subscription.change_tier("premium")
        assert subscription.can_start_mentor_session()

    def test_unlimited_tier_reports_minus_one(self):
        subscription = SubscriptionModel(user_id="u1", tier="pro")
        remaining = subscription.get_remaining_limits(0)
        assert remaining["ai_requests_today"] == -1
        assert remaining["stories"] == 300

    def test_yearly_price_is_ten_months(self):
        subscription = SubscriptionModel(user_id="u1")
        subscription.change_tier("basic", "year")
        assert subscription.amount == 4990
        assert subscription.billing_interval == "year"

    def test_cancel_at_period_end_keeps_access(self):
        subscription = SubscriptionModel(user_id="u1", tier="basic", amount=499)
        subscription.cancel()
        assert subscription.cancel_at_period_end
        assert subscription.end_date == subscription.current_period_end
        assert subscription.is_active()

    def test_expired_paid_plan_is_downgraded_on_save(self):
        subscription = SubscriptionModel(user_id="u1", tier="premium", amount=999)
        subscription.end_date = datetime.utcnow() - timedelta(days=1)
        subscription.prepare_for_save()
        assert subscription.tier == SubscriptionTier.FREE
        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.amount == 0

    def test_start_paid_period_without_stripe_sets_end_date(self):
        start = datetime(2024, 5, 1)
        subscription = SubscriptionModel(user_id="u1", tier="basic")
        subscription.start_paid_period(start, start + timedelta(days=30))
        assert subscription.end_date == start + timedelta(days=30)
        assert subscription.is_active(start + timedelta(days=29))
        assert subscription.is_expired(start + timedelta(days=31))
        assert subscription.to_public_dict()["days_in_current_period"] == 30

        linked = SubscriptionModel(user_id="u2", tier="basic", stripe_subscription_id="sub_1")
        linked.start_paid_period(start, start + timedelta(days=30))
        assert linked.end_date is None

    def test_ai_allowance_and_reset(self):
        subscription = SubscriptionModel(user_id="u1")
        limit = subscription.limits.max_ai_requests_per_day
        subscription.usage.ai_requests_today = limit
        assert not subscription.can_use_ai()
        subscription.reset_usage()
        assert subscription.can_use_ai()


class TestCommentModel:
    def _comment(self, content="Try adding more dialogue here"):
        return CommentModel(story_id="s1", commenter_id="m1", commenter_role="mentor", content=content)

    def test_category_from_keywords(self):
        comment = self._comment()
        comment.ensure_category()
        assert comment.category == "dialogue"

    def test_reactions_toggle_and_replace(self):
        comment = self._comment()
        assert comment.set_reaction("u1", "👍")
        assert comment.set_reaction("u1", "🌟")
        assert comment.reaction_counts() == {"🌟": 1}
        assert not comment.set_reaction("u1", "🌟")
        assert comment.reaction_counts() == {}

    def test_unknown_reaction_rejected(self):
        with pytest.raises(ValueError):
            self._comment().set_reaction("u1", "🍕")


class TestNotificationModel:
    def test_type_sets_category_icon_and_expiry(self):
        created = datetime(2024, 5, 1)
        notification = NotificationModel(
            user_id="u1", type=NotificationType.MENTOR_COMMENT, title="Hi", message="Hello", created_at=created,
        )
        assert notification.category == "mentor"
        assert notification.icon == "💬"
        assert notification.expires_at == created + timedelta(days=30)
        assert notification.is_expired(created + timedelta(days=30))


class TestAwareTimestamps:
    def test_models_accept_aware_timestamps(self):
        soon = datetime.now(timezone.utc) + timedelta(hours=1)
        user = UserModel.from_dict({"email": "kid@example.com", "name": "Kid", "locked_until": soon})
        assert user.locked_until.tzinfo is None
        assert user.is_locked()

        subscription = SubscriptionModel.from_dict({
            "user_id": "u1",
            "tier": "basic",
            "end_date": datetime(2024, 1, 1, 12, tzinfo=timezone(timedelta(hours=2))),
        })
        assert subscription.end_date == datetime(2024, 1, 1, 10)
        assert subscription.is_expired()

        renewed = SubscriptionModel.from_dict({
            "user_id": "u1",
            "usage": {"daily_reset_date": datetime.now(timezone.utc), "stories_today": 1},
        })
        assert renewed.can_create_story()
        assert renewed.usage.stories_today == 1

    def test_nested_values_are_converted(self):
        converted = to_naive_utc({"seen": [datetime(2024, 5, 1, tzinfo=timezone.utc)], "count": 1})
        assert converted == {"seen": [datetime(2024, 5, 1)], "count": 1}

    def test_stored_aware_timestamps_read_back_naive(self, db):
        locked = datetime.now(timezone.utc) + timedelta(hours=2)
        db.collection("users").document("aware").set({
            "email": "kid@example.com",
            "name": "Kid",
            "locked_until": locked,
            "created_at": locked - timedelta(days=3),
        })
        user = UserCRUD(db).get_model("aware")
        assert user.is_locked()
        assert user.locked_until == locked.replace(tzinfo=None)
        assert UserCRUD(db).get_by_id("aware")["created_at"].tzinfo is None

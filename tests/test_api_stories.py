from app.crud.comment import CommentCRUD
from app.crud.notification import NotificationCRUD
from app.crud.story import StoryCRUD
from app.crud.subscription import SubscriptionCRUD
from app.crud.user import UserCRUD
from app.models.story import AIAssessment
from app.services.ai.story_assistant import StoryAssistant

from conftest import ELEMENTS, auth_headers, long_text


def _create(client, user, **overrides):
    payload = {"title": "The Lost Map", "elements": ELEMENTS}
    payload.update(overrides)
    return client.post("/api/v1/stories", json=payload, headers=auth_headers(user))


class TestCreateStory:
    def test_fallback_opening_and_usage(self, client, db, make_user):
        user = make_user()
        response = _create(client, user)
        assert response.status_code == 201
        data = response.json()["data"]
        story = data["story"]
        assert story["content"]
        assert story["status"] == "in_progress"
        assert story["target_word_count"] == 600
        assert set(data["prompts"]) >= {"continue", "twist"}

        usage = SubscriptionCRUD(db).get_by_user(user.id).usage
        assert usage.stories_today == 1
        assert usage.ai_requests_today == 0
        assert UserCRUD(db).get_model(user.id).stats.stories_created == 1

    def test_without_opening_starts_as_draft(self, client, make_user):
        story = _create(client, make_user(), generate_opening=False).json()["data"]["story"]
        assert story["content"] == ""
        assert story["status"] == "draft"

    def test_target_is_capped_by_plan(self, client, make_user):
        story = _create(client, make_user(), target_word_count=1500).json()["data"]["story"]
        assert story["target_word_count"] == 600

    def test_free_plan_allows_three_a_day(self, client, make_user):
        user = make_user()
        for _ in range(3):
            assert _create(client, user).status_code == 201
        response = _create(client, user)
        assert response.status_code == 403
        body = response.json()
        assert body["error"]["code"] == "SUBSCRIPTION_LIMIT"
        assert body["error"]["details"]["tier"] == "free"

    def test_unknown_element_rejected(self, client, make_user):
        response = _create(client, make_user(), elements={**ELEMENTS, "genre": "horror"})
        assert response.status_code == 422

    def test_flagged_title_rejected(self, client, make_user):
        response = _create(client, make_user(), title="A story about violence")
        assert response.status_code == 422
        assert "Inappropriate word: violence" in response.json()["error"]["details"]["violations"]


class TestUpdateStory:
    def test_save_content_and_complete(self, client, db, make_user, make_story):
        user = make_user()
        story = make_story(user)
        headers = auth_headers(user)

        response = client.put(f"/api/v1/stories/{story.id}", json={"content": long_text(200)}, headers=headers)
        assert response.status_code == 200
        assert response.json()["data"]["word_count"] >= 200

        response = client.put(f"/api/v1/stories/{story.id}", json={"status": "completed"}, headers=headers)
        assert response.json()["data"]["status"] == "completed"

        author = UserCRUD(db).get_model(user.id)
        assert author.stats.current_streak == 1
        assert author.stats.total_word_count >= 200

    def test_markup_is_stripped(self, client, make_user, make_story):
        user = make_user()
        story = make_story(user)
        response = client.put(
            f"/api/v1/stories/{story.id}",
            json={"content": "<script>alert(1)</script><b>Once upon a time</b>"},
            headers=auth_headers(user),
        )
        assert response.json()["data"]["content"] == "Once upon a time"

    def test_content_longer_than_plan(self, client, make_user, make_story):
        user = make_user()
        story = make_story(user)
        response = client.put(
            f"/api/v1/stories/{story.id}", json={"content": "tale " * 700}, headers=auth_headers(user)
        )
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "SUBSCRIPTION_LIMIT"

    def test_free_plan_cannot_make_story_public(self, client, make_user, make_story):
        user = make_user()
        story = make_story(user)
        response = client.put(f"/api/v1/stories/{story.id}", json={"is_public": True}, headers=auth_headers(user))
        assert response.status_code == 403

    def test_only_author_can_edit(self, client, make_user, make_story):
        story = make_story(make_user())
        response = client.put(
            f"/api/v1/stories/{story.id}", json={"title": "Mine now"}, headers=auth_headers(make_user())
        )
        assert response.status_code == 403

    def test_published_story_is_locked(self, client, make_user, make_story):
        user = make_user()
        story = make_story(user, content=long_text(), status="published")
        response = client.put(f"/api/v1/stories/{story.id}", json={"content": "new"}, headers=auth_headers(user))
        assert response.status_code == 422

    def test_status_cannot_jump_to_published(self, client, make_user, make_story):
        user = make_user()
        story = make_story(user, content=long_text())
        response = client.put(
            f"/api/v1/stories/{story.id}", json={"status": "published"}, headers=auth_headers(user)
        )
        assert response.status_code == 422


class TestPublishStory:
    def test_long_clean_story_is_published(self, client, db, make_user, make_story):
        user = make_user()
        story = make_story(user, content=long_text(), target_word_count=600)

        response = client.post(f"/api/v1/stories/{story.id}/publish", headers=auth_headers(user))
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["published"] is True
        assert data["status"] == "published"
        assert data["assessment"]["overall_score"] == 78
        assert data["assessment"]["is_fallback"] is True

        stored = StoryCRUD(db).get_model(story.id)
        assert stored.moderation_status == "approved"
        assert stored.published_at is not None
        assert UserCRUD(db).get_model(user.id).stats.stories_published == 1

    def test_short_story_goes_to_review(self, client, make_user, make_story):
        user = make_user()
        story = make_story(user, content=long_text(100), target_word_count=600)
        data = client.post(f"/api/v1/stories/{story.id}/publish", headers=auth_headers(user)).json()["data"]
        assert data["published"] is False
        assert data["status"] == "needs_review"

    def test_flagged_story_goes_to_review_without_assessment(self, client, make_user, make_story):
        user = make_user()
        story = make_story(user, content=long_text() + " Call 555-123-4567 anytime.")
        data = client.post(f"/api/v1/stories/{story.id}/publish", headers=auth_headers(user)).json()["data"]
        assert data["status"] == "needs_review"
        assert data["assessment"] is None
        assert "Personal information: phone number" in data["violations"]

    def test_empty_story_cannot_be_published(self, client, make_user, make_story):
        user = make_user()
        story = make_story(user)
        response = client.post(f"/api/v1/stories/{story.id}/publish", headers=auth_headers(user))
        assert response.status_code == 422

    def test_story_waiting_for_review_cannot_be_republished(self, client, db, make_user, make_story):
        user = make_user()
        story = make_story(user, content=long_text(100), target_word_count=600)
        first = client.post(f"/api/v1/stories/{story.id}/publish", headers=auth_headers(user)).json()["data"]
        assert first["status"] == "needs_review"

        response = client.post(f"/api/v1/stories/{story.id}/publish", headers=auth_headers(user))
        assert response.status_code == 422
        assert response.json()["error"]["details"]["status"] == "needs_review"
        assert StoryCRUD(db).get_model(story.id).status == "needs_review"

    def test_escalated_story_stays_with_reviewers(self, client, db, make_user, make_story):
        user = make_user()
        story = make_story(user, content=long_text(), status="needs_review", moderation_status="escalated")
        response = client.post(f"/api/v1/stories/{story.id}/publish", headers=auth_headers(user))
        assert response.status_code == 422
        stored = StoryCRUD(db).get_model(story.id)
        assert stored.status == "needs_review"
        assert stored.moderation_status == "escalated"
        assert stored.published_at is None

    def test_publishing_unlocks_achievements(self, client, db, make_user, make_story):
        user = make_user()
        story = make_story(user, content=long_text(), target_word_count=600)
        client.post(f"/api/v1/stories/{story.id}/publish", headers=auth_headers(user))

        stats = UserCRUD(db).get_model(user.id).stats
        # fallback scores earn no score badges
        assert sorted(stats.achievements_unlocked) == ["Prolific Writer", "Published Author"]

        progress = client.get("/api/v1/users/stats", headers=auth_headers(user)).json()["data"]["achievements"]
        assert progress["unlocked_count"] == 2
        assert {a["name"] for a in progress["unlocked"]} == {"Prolific Writer", "Published Author"}
        assert len(progress["available"]) == 5

        notes = NotificationCRUD(db).list_for_user(user.id)["items"]
        assert sum(1 for n in notes if n["type"] == "achievement_unlocked") == 2


class TestDeleteAndView:
    def test_author_deletes_draft_with_comments(self, client, db, make_user, make_story):
        mentor = make_user(role="mentor")
        user = make_user(mentor_id=mentor.id)
        story = make_story(user, content="Once upon a time")
        client.post(
            "/api/v1/comments",
            json={"story_id": story.id, "content": "Lovely start"},
            headers=auth_headers(mentor),
        )

        response = client.delete(f"/api/v1/stories/{story.id}", headers=auth_headers(user))
        assert response.status_code == 200
        assert StoryCRUD(db).get_model(story.id) is None
        assert CommentCRUD(db).list_for_story(story.id) == []

    def test_completed_story_only_deleted_by_admin(self, client, make_user, make_story):
        user = make_user()
        story = make_story(user, content=long_text(), status="completed")
        assert client.delete(f"/api/v1/stories/{story.id}", headers=auth_headers(user)).status_code == 422

        admin = make_user(role="admin", age=18)
        assert client.delete(f"/api/v1/stories/{story.id}", headers=auth_headers(admin)).status_code == 200

    def test_missing_story(self, client, make_user):
        response = client.get("/api/v1/stories/nope", headers=auth_headers(make_user()))
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    def test_private_story_hidden_from_other_children(self, client, make_user, make_story):
        story = make_story(make_user(), content="Secret tale")
        response = client.get(f"/api/v1/stories/{story.id}", headers=auth_headers(make_user()))
        assert response.status_code == 403

    def test_assigned_mentor_can_read_and_view_is_counted(self, client, db, make_user, make_story):
        mentor = make_user(role="mentor")
        story = make_story(make_user(mentor_id=mentor.id), content="Secret tale")
        response = client.get(f"/api/v1/stories/{story.id}", headers=auth_headers(mentor))
        assert response.status_code == 200
        assert StoryCRUD(db).get_model(story.id).view_count == 1

    def test_approved_public_story_is_visible_and_likeable(self, client, make_user, make_story):
        story = make_story(
            make_user(), content="A happy tale", status="published", is_public=True, moderation_status="approved"
        )
        reader = make_user()
        headers = auth_headers(reader)
        assert client.get(f"/api/v1/stories/{story.id}", headers=headers).status_code == 200

        liked = client.post(f"/api/v1/stories/{story.id}/like", headers=headers).json()["data"]
        assert liked == {"liked": True, "likes": 1}
        unliked = client.post(f"/api/v1/stories/{story.id}/like", headers=headers).json()["data"]
        assert unliked == {"liked": False, "likes": 0}

        public = client.get("/api/v1/stories/public", headers=headers).json()["data"]
        assert [item["id"] for item in public["items"]] == [story.id]

    def test_list_is_scoped_to_the_caller(self, client, make_user, make_story):
        mentor = make_user(role="mentor")
        student = make_user(mentor_id=mentor.id)
        other = make_user()
        mine = make_story(student, title="Mine")
        make_story(other, title="Theirs")

        items = client.get("/api/v1/stories", headers=auth_headers(student)).json()["data"]["items"]
        assert [item["id"] for item in items] == [mine.id]

        items = client.get("/api/v1/stories", headers=auth_headers(mentor)).json()["data"]["items"]
        assert [item["id"] for item in items] == [mine.id]


class TestAIRoutes:
    def test_generate_counts_usage(self, client, db, make_user):
        user = make_user()
        response = client.post("/api/v1/ai/generate", json={"elements": ELEMENTS}, headers=auth_headers(user))
        assert response.status_code == 200
        assert response.json()["data"]["is_fallback"] is True
        assert SubscriptionCRUD(db).get_by_user(user.id).usage.ai_requests_today == 1

    def test_daily_ai_allowance(self, client, db, make_user):
        user = make_user()
        subscriptions = SubscriptionCRUD(db)
        subscription = subscriptions.get_or_create_for_user(user.id)
        subscription.usage.ai_requests_today = 10
        subscriptions.save_model(subscription)

        response = client.post("/api/v1/ai/generate", json={"elements": ELEMENTS}, headers=auth_headers(user))
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "SUBSCRIPTION_LIMIT"

    def test_collaborate_records_session(self, client, db, make_user, make_story):
        user = make_user()
        story = make_story(user, content="The explorer opened the old map.")
        response = client.post(
            "/api/v1/ai/collaborate",
            json={"story_id": story.id, "response_type": "twist"},
            headers=auth_headers(user),
        )
        assert response.status_code == 200
        assert response.json()["data"]["response_type"] == "twist"
        assert len(StoryCRUD(db).get_model(story.id).ai_sessions) == 1

    def test_assess_saved_story(self, client, db, make_user, make_story):
        user = make_user()
        story = make_story(user, content=long_text(60))
        response = client.post("/api/v1/ai/assess", json={"story_id": story.id}, headers=auth_headers(user))
        assert response.status_code == 200
        assert StoryCRUD(db).get_model(story.id).ai_assessment.overall_score == 78

    def test_assessing_own_story_unlocks_score_achievements(self, client, db, make_user, make_story, monkeypatch):
        user = make_user(age=7)
        story = make_story(user, content=long_text(320))

        async def strong_assessment(self, content, age, elements=None):
            return AIAssessment(grammar_score=96, creativity_score=92, overall_score=91)

        monkeypatch.setattr(StoryAssistant, "assess_story", strong_assessment)
        response = client.post("/api/v1/ai/assess", json={"story_id": story.id}, headers=auth_headers(user))
        assert response.status_code == 200
        earned = response.json()["data"]["achievements"]
        assert earned == ["Grammar Master", "Creative Genius", "Excellent Writer", "Young Talent", "Detailed Storyteller"]

        stored = UserCRUD(db).get_model(user.id)
        assert stored.stats.achievements_unlocked == earned
        assert stored.stats.experience_points == 50 + 50 + 50 + 25 + 15

        again = client.post("/api/v1/ai/assess", json={"story_id": story.id}, headers=auth_headers(user))
        assert again.json()["data"]["achievements"] == []

    def test_assess_needs_input(self, client, make_user):
        response = client.post("/api/v1/ai/assess", json={}, headers=auth_headers(make_user()))
        assert response.status_code == 422

import io

from docx import Document

from app.crud.notification import NotificationCRUD
from app.crud.story import StoryCRUD
from app.crud.subscription import SubscriptionCRUD
from app.services.email.email_service import get_email_queue
from app.services.export_service import DOCX_MEDIA_TYPE

from conftest import auth_headers, long_text


def _comment(client, mentor, story, content="Try adding more dialogue here", **extra):
    return client.post(
        "/api/v1/comments",
        json={"story_id": story.id, "content": content, **extra},
        headers=auth_headers(mentor),
    )


class TestComments:
    def test_assigned_mentor_comments_and_author_is_told(self, client, db, make_user, make_story):
        mentor = make_user(role="mentor", name="Ms Lee")
        child = make_user(mentor_id=mentor.id)
        story = make_story(child, content="Once upon a time")

        response = _comment(client, mentor, story)
        assert response.status_code == 201
        comment = response.json()["data"]
        assert comment["category"] == "dialogue"
        assert comment["commenter_role"] == "mentor"

        assert StoryCRUD(db).get_model(story.id).comment_count == 1
        assert NotificationCRUD(db).unread_count(child.id) == 1
        assert "mentor_comment" in [item.template for item in get_email_queue().items]

    def test_unassigned_mentor_cannot_comment(self, client, make_user, make_story):
        story = make_story(make_user(), content="Once upon a time")
        response = _comment(client, make_user(role="mentor"), story)
        assert response.status_code == 403

    def test_child_cannot_comment(self, client, make_user, make_story):
        child = make_user()
        story = make_story(child, content="Once upon a time")
        response = _comment(client, child, story)
        assert response.status_code == 403
        assert response.json()["error"]["details"]["required_roles"] == ["mentor", "admin"]

    def test_comment_text_is_filtered(self, client, make_user, make_story):
        mentor = make_user(role="mentor")
        story = make_story(make_user(mentor_id=mentor.id), content="Once upon a time")
        response = _comment(client, mentor, story, content="Email me at mentor@example.com")
        assert response.status_code == 422

    def test_reply_must_be_on_same_story(self, client, make_user, make_story):
        mentor = make_user(role="mentor")
        child = make_user(mentor_id=mentor.id)
        first = make_story(child, content="Story one")
        second = make_story(child, content="Story two")
        parent_id = _comment(client, mentor, first).json()["data"]["id"]

        response = _comment(client, mentor, second, parent_comment_id=parent_id)
        assert response.status_code == 422

    def test_author_reacts_replies_and_resolves(self, client, db, make_user, make_story):
        mentor = make_user(role="mentor")
        child = make_user(mentor_id=mentor.id)
        story = make_story(child, content="Once upon a time")
        comment_id = _comment(client, mentor, story).json()["data"]["id"]
        headers = auth_headers(child)

        reacted = client.post(f"/api/v1/comments/{comment_id}/reactions", json={"emoji": "👍"}, headers=headers)
        assert reacted.json()["data"] == {"reacted": True, "reaction_counts": {"👍": 1}}

        bad = client.post(f"/api/v1/comments/{comment_id}/reactions", json={"emoji": "🍕"}, headers=headers)
        assert bad.status_code == 422

        replied = client.post(
            f"/api/v1/comments/{comment_id}/response", json={"response": "Thank you!"}, headers=headers
        )
        assert replied.json()["data"]["child_response"] == "Thank you!"
        assert NotificationCRUD(db).unread_count(mentor.id) == 1

        resolved = client.put(f"/api/v1/comments/{comment_id}/resolve", headers=headers)
        assert resolved.json()["data"]["is_resolved"] is True

    def test_hidden_comment_only_visible_to_staff(self, client, make_user, make_story):
        mentor = make_user(role="mentor")
        child = make_user(mentor_id=mentor.id)
        story = make_story(child, content="Once upon a time")
        comment_id = _comment(client, mentor, story).json()["data"]["id"]

        hidden = client.post(
            f"/api/v1/comments/{comment_id}/hide", json={"reason": "Posted twice"}, headers=auth_headers(mentor)
        )
        assert hidden.status_code == 200

        as_child = client.get(f"/api/v1/comments?story_id={story.id}", headers=auth_headers(child)).json()
        as_mentor = client.get(f"/api/v1/comments?story_id={story.id}", headers=auth_headers(mentor)).json()
        assert as_child["data"]["total"] == 0
        assert as_mentor["data"]["total"] == 1


class TestMentor:
    def test_students_listed_with_counts(self, client, make_user, make_story):
        mentor = make_user(role="mentor")
        child = make_user(mentor_id=mentor.id)
        make_story(child, content=long_text(), status="completed")
        make_user()

        data = client.get("/api/v1/mentor/students", headers=auth_headers(mentor)).json()["data"]
        assert data["total"] == 1
        assert data["students"][0]["id"] == child.id
        assert data["students"][0]["stories_awaiting_feedback"] == 1

    def test_assessment_needs_paid_author(self, client, make_user, make_story):
        mentor = make_user(role="mentor")
        story = make_story(make_user(mentor_id=mentor.id), content=long_text())
        response = client.post(
            f"/api/v1/mentor/stories/{story.id}/assessment",
            json={"grammar_score": 80, "creativity_score": 90, "overall_score": 85},
            headers=auth_headers(mentor),
        )
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "SUBSCRIPTION_LIMIT"

    def test_assessment_uses_a_mentor_session(self, client, db, make_user, make_story):
        mentor = make_user(role="mentor")
        child = make_user(mentor_id=mentor.id, tier="basic")
        story = make_story(child, content=long_text())
        response = client.post(
            f"/api/v1/mentor/stories/{story.id}/assessment",
            json={"grammar_score": 80, "creativity_score": 90, "overall_score": 85, "feedback": "Great pacing"},
            headers=auth_headers(mentor),
        )
        assert response.status_code == 200
        assert StoryCRUD(db).get_model(story.id).mentor_assessment.overall_score == 85
        assert SubscriptionCRUD(db).get_by_user(child.id).usage.mentor_sessions_this_month == 1


class TestExport:
    def test_free_plan_exports_pdf(self, client, db, make_user, make_story):
        user = make_user()
        story = make_story(user, content=long_text(50), title="The Lost Map")
        response = client.get(f"/api/v1/export/{story.id}?format=pdf", headers=auth_headers(user))

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert response.content.startswith(b"%PDF-1.")
        assert 'filename="The_Lost_Map_' in response.headers["content-disposition"]
        assert SubscriptionCRUD(db).get_by_user(user.id).usage.exports_this_month == 1

    def test_free_plan_cannot_export_word(self, client, make_user, make_story):
        user = make_user()
        story = make_story(user, content="Once upon a time")
        response = client.get(f"/api/v1/export/{story.id}?format=word", headers=auth_headers(user))
        assert response.status_code == 403
        assert response.json()["error"]["details"]["allowed_formats"] == ["pdf"]

    def test_basic_plan_exports_word_with_feedback(self, client, db, make_user, make_story):
        mentor = make_user(role="mentor", name="Ms Lee")
        user = make_user(tier="basic", mentor_id=mentor.id)
        story = make_story(user, content="Once upon a time")
        _comment(client, mentor, story, content="Lovely opening line")

        response = client.get(f"/api/v1/export/{story.id}?format=word", headers=auth_headers(user))
        assert response.status_code == 200
        assert response.headers["content-type"] == DOCX_MEDIA_TYPE
        assert '.docx"' in response.headers["content-disposition"]
        paragraphs = [p.text for p in Document(io.BytesIO(response.content)).paragraphs]
        assert "Ms Lee: Lovely opening line" in paragraphs

    def test_monthly_export_limit(self, client, db, make_user, make_story):
        user = make_user()
        story = make_story(user, content="Once upon a time")
        subscriptions = SubscriptionCRUD(db)
        subscription = subscriptions.get_or_create_for_user(user.id)
        subscription.usage.exports_this_month = 5
        subscriptions.save_model(subscription)

        response = client.get(f"/api/v1/export/{story.id}", headers=auth_headers(user))
        assert response.status_code == 403

    def test_other_child_cannot_export(self, client, make_user, make_story):
        story = make_story(make_user(), content="Once upon a time")
        response = client.get(f"/api/v1/export/{story.id}", headers=auth_headers(make_user()))
        assert response.status_code == 403


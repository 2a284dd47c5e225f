"""
Story completion, publishing and admin moderation.

Publishing runs the content filter, then the AI assessment, then the
publish rules on ``StoryModel.can_be_published``. Anything that fails goes
to the admin review queue.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from app.crud.story import StoryCRUD
from app.crud.user import UserCRUD
from app.models.notification import NotificationPriority, NotificationType
from app.models.story import ModerationStatus, StoryModel, StoryStatus
from app.models.user import UserModel
from app.services.achievements import AchievementService
from app.services.ai.story_assistant import StoryAssistant
from app.services.content_filter import ContentFilter
from app.services.notification_service import NotificationService
from app.utils.exceptions import ValidationError
from app.utils.logger import get_logger

logger = get_logger(__name__)

PUBLISHABLE_FROM = (
    StoryStatus.DRAFT.value,
    StoryStatus.IN_PROGRESS.value,
    StoryStatus.COMPLETED.value,
)


class StoryPublisher:
    """Moves stories through completed, needs_review and published."""

    def __init__(self, db: Any, assistant: StoryAssistant, notifier: NotificationService):
        self.stories = StoryCRUD(db)
        self.users = UserCRUD(db)
        self.assistant = assistant
        self.notifier = notifier
        self.achievements = AchievementService(notifier)

    def complete(self, story: StoryModel, author: Optional[UserModel] = None) -> None:
        """
        Mark a story completed and credit the author's progress.

        Does nothing if the story was already completed once.
        """
        if story.completed_at is not None:
            return
        story.mark_completed()
        author = author or self.users.get_model(story.author_id)
        if author is None:
            return

        author.record_story_completed(story.word_count)
        self.achievements.award(author, word_count=story.word_count, story_id=story.id)
        self.users.save_model(author)
        self.notifier.notify(
            author.id,
            NotificationType.STORY_COMPLETED,
            "Story completed! 📚",
            f'You finished "{story.title}" with {story.word_count} words.',
            data={"story_id": story.id, "word_count": story.word_count},
            action_url=f"/my-stories/{story.id}",
            email_data={"story_title": story.title, "story_id": story.id, "word_count": story.word_count},
        )

    async def publish(self, story: StoryModel, author: Optional[UserModel] = None) -> Dict[str, Any]:
        """
        Try to publish a story.

        Args:
            story: Story to publish; saved before returning.
            author: Author model, loaded if not given.

        Returns:
            Dict with ``published``, ``status``, ``violations`` and ``assessment``.

        Raises:
            ValidationError: If the story is empty, already published or
                waiting for a reviewer.
        """
        if story.status == StoryStatus.NEEDS_REVIEW:
            raise ValidationError(
                "This story is waiting for a reviewer",
                details={"status": story.status, "moderation_status": story.moderation_status},
            )
        if story.status not in PUBLISHABLE_FROM:
            raise ValidationError(
                f"A {story.status} story cannot be published",
                details={"status": story.status},
            )
        if not story.content.strip():
            raise ValidationError("Write your story before publishing it")

        author = author or self.users.get_model(story.author_id)
        if story.status in (StoryStatus.DRAFT.value, StoryStatus.IN_PROGRESS.value):
            self.complete(story, author)
        else:
            story.status = StoryStatus.COMPLETED.value

        result = ContentFilter.filter_content(f"{story.title}\n{story.content}")
        if not result.is_clean:
            story.send_to_review("Flagged by content filter: " + "; ".join(result.violations))
            self.stories.save_model(story)
            logger.info(f"Story {story.id} flagged for review: {result.violations}")
            return {
                "published": False,
                "status": story.status,
                "violations": result.violations,
                "assessment": None,
            }

        assessment = await self.assistant.assess_story(story.content, story.author_age, story.elements)
        story.ai_assessment = assessment
        if author is not None:
            author.record_assessment(assessment.grammar_score, assessment.creativity_score)

        if story.can_be_published():
            story.publish()
            if author is not None:
                author.stats.stories_published += 1
            message = "Your story is published"
        else:
            story.send_to_review("Did not meet the automatic publishing rules")
            message = "Your story was sent to a reviewer"

        if author is not None:
            self.achievements.award(author, assessment, story.word_count, story.id)

        self.stories.save_model(story)
        if author is not None:
            self.users.save_model(author)
            self.notifier.notify(
                author.id,
                NotificationType.STORY_PUBLISHED if story.status == StoryStatus.PUBLISHED else NotificationType.REMINDER,
                message,
                f'"{story.title}" scored {assessment.overall_score}/100.',
                data={"story_id": story.id, "status": story.status},
                action_url=f"/my-stories/{story.id}",
            )

        logger.info(f"Story {story.id} publish attempt finished with status {story.status}")
        return {
            "published": story.status == StoryStatus.PUBLISHED,
            "status": story.status,
            "violations": [],
            "assessment": assessment.model_dump(mode="json"),
        }

    def _credit_publication(self, story: StoryModel) -> None:
        author = self.users.get_model(story.author_id)
        if author is None:
            return
        author.stats.stories_published += 1
        self.achievements.award(author, story.ai_assessment, story.word_count, story.id)
        self.users.save_model(author)

    def moderate(self, story: StoryModel, action: str, moderator: UserModel, notes: Optional[str] = None) -> StoryModel:
        """
        Apply an admin decision to a story in the review queue.

        ``approve`` publishes, ``reject`` returns the story to draft and
        ``escalate`` keeps it flagged for a senior reviewer.
        """
        now = datetime.utcnow()
        if action == "approve":
            already_published = story.status == StoryStatus.PUBLISHED
            story.publish(now)
            if not already_published:
                self._credit_publication(story)
            title, priority = "Your story was approved! 🎉", NotificationPriority.HIGH
        elif action == "reject":
            story.status = StoryStatus.DRAFT.value
            story.moderation_status = ModerationStatus.REJECTED.value
            story.is_public = False
            story.published_at = None
            title, priority = "Your story needs some changes", NotificationPriority.NORMAL
        elif action == "escalate":
            story.status = StoryStatus.NEEDS_REVIEW.value
            story.moderation_status = ModerationStatus.ESCALATED.value
            title, priority = "Your story is getting a second look", NotificationPriority.NORMAL
        else:
            raise ValidationError(f"Unknown moderation action: {action}")

        if notes:
            story.moderation_notes = notes
        story.moderated_by = moderator.id
        story.moderated_at = now
        self.stories.save_model(story)

        self.notifier.notify(
            story.author_id,
            NotificationType.STORY_PUBLISHED if action == "approve" else NotificationType.REMINDER,
            title,
            notes or f'"{story.title}" was reviewed by our team.',
            data={"story_id": story.id, "action": action},
            action_url=f"/my-stories/{story.id}",
            priority=priority,
        )
        logger.info(f"Story {story.id} moderated by {moderator.id}: {action}")
        return story

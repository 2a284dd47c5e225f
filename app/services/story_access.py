"""Who may see, change or export a story."""

from typing import Any

from app.crud.story import StoryCRUD
from app.crud.user import UserCRUD
from app.models.story import ModerationStatus, StoryModel, StoryStatus
from app.models.user import UserModel, UserRole
from app.utils.exceptions import AuthorizationError, NotFoundError


def load_story(db: Any, story_id: str) -> StoryModel:
    story = StoryCRUD(db).get_model(story_id)
    if story is None:
        raise NotFoundError("Story not found", details={"story_id": story_id})
    return story


def is_assigned_mentor(db: Any, user: UserModel, story: StoryModel) -> bool:
    if user.role != UserRole.MENTOR:
        return False
    author = UserCRUD(db).get_model(story.author_id)
    return author is not None and author.mentor_id == user.id


def is_publicly_visible(story: StoryModel) -> bool:
    return (
        story.status == StoryStatus.PUBLISHED
        and story.is_public
        and story.moderation_status == ModerationStatus.APPROVED
    )


def can_view(db: Any, user: UserModel, story: StoryModel) -> bool:
    """Author, admins, the author's mentor, or anyone for approved public stories."""
    return (
        story.author_id == user.id
        or user.role == UserRole.ADMIN
        or is_publicly_visible(story)
        or is_assigned_mentor(db, user, story)
    )


def can_mentor(db: Any, user: UserModel, story: StoryModel) -> bool:
    """Admins, or the mentor assigned to the story's author."""
    return user.role == UserRole.ADMIN or is_assigned_mentor(db, user, story)


def ensure_can_view(db: Any, user: UserModel, story: StoryModel) -> None:
    if not can_view(db, user, story):
        raise AuthorizationError("You don't have access to this story")


def ensure_can_edit(user: UserModel, story: StoryModel) -> None:
    if story.author_id != user.id and user.role != UserRole.ADMIN:
        raise AuthorizationError("Only the author can change this story")


def ensure_can_mentor(db: Any, user: UserModel, story: StoryModel) -> None:
    if not can_mentor(db, user, story):
        raise AuthorizationError("You are not the mentor for this story's author")

"""
Story API Endpoints
Create, edit, publish and browse stories.
"""

from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Depends, Query, status
from pydantic import BaseModel

from app.crud.comment import CommentCRUD
from app.crud.story import StoryCRUD
from app.crud.subscription import SubscriptionCRUD
from app.crud.user import UserCRUD
from app.dependencies import (
    get_current_user,
    get_db_client,
    get_story_assistant_dep,
    get_story_publisher,
    rate_limit,
)
from app.models.story import StoryModel, StoryStatus
from app.models.subscription import UsageType
from app.models.user import UserModel, UserRole
from app.schemas.responses import PaginatedResponse
from app.schemas.story_schema import CreateStoryRequest, UpdateStoryRequest
from app.services.ai.story_assistant import StoryAssistant
from app.services.content_filter import ContentFilter, InputSanitizer
from app.services.moderation import StoryPublisher
from app.services.story_access import ensure_can_edit, ensure_can_view, load_story
from app.utils.exceptions import (
    MintoonsException,
    SubscriptionLimitError,
    ValidationError,
)
from app.utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter()

EDITABLE_STATUSES = (StoryStatus.DRAFT.value, StoryStatus.IN_PROGRESS.value, StoryStatus.COMPLETED.value)
DELETABLE_STATUSES = (StoryStatus.DRAFT.value, StoryStatus.IN_PROGRESS.value)


# ── Response Models ──────────────────────────────────────────────────

class StoryResponse(BaseModel):
    """Generic story response wrapper."""
    success: bool
    data: Any = None
    message: str = ""


def _scoped_author_ids(user: UserModel, db_client) -> Optional[list]:
    """Authors whose stories ``user`` may list; None means every author."""
    if user.role == UserRole.ADMIN:
        return None
    if user.role == UserRole.MENTOR:
        return [student["id"] for student in UserCRUD(db_client).list_by_mentor(user.id)]
    return [user.id]


def _check_title(title: str) -> str:
    title = InputSanitizer.sanitize_text(title, 100)
    if not title:
        raise ValidationError("Title is required")
    result = ContentFilter.filter_content(title)
    if not result.is_clean:
        raise ValidationError(
            "Title contains content that isn't allowed",
            details={"violations": result.violations},
        )
    return title


# ── Endpoints ────────────────────────────────────────────────────────

@router.get("", response_model=StoryResponse)
async def list_stories(
    story_status: Optional[StoryStatus] = Query(None, alias="status", description="Filter by status"),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(10, ge=1, le=50, description="Items per page"),
    user: UserModel = Depends(get_current_user),
    db_client=Depends(get_db_client),
) -> StoryResponse:
    """
    List stories visible to the caller.

    Children see their own stories, mentors see their students' stories and
    admins see everything.
    """
    try:
        crud = StoryCRUD(db_client)
        status_value = story_status.value if story_status else None
        author_ids = _scoped_author_ids(user, db_client)

        if author_ids is None:
            filters = [("status", "==", status_value)] if status_value else None
            result = crud.list(filters, page, page_size, order_by="updated_at", direction="DESCENDING")
        else:
            result = crud.list_for_authors(author_ids, status_value, page, page_size)

        items = [StoryModel.from_dict(item).to_public_dict() for item in result["items"]]
        return StoryResponse(
            success=True,
            data=PaginatedResponse.from_result(result, items),
            message=f"Retrieved {len(items)} stories",
        )

    except HTTPException:
        raise
    except MintoonsException:
        raise
    except Exception as e:
        logger.error(f"Error listing stories: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list stories",
        )


@router.get("/public", response_model=StoryResponse)
async def list_public_stories(
    genre: Optional[str] = Query(None, description="Filter by genre"),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=50),
    db_client=Depends(get_db_client),
) -> StoryResponse:
    """Published, public and approved stories, newest first."""
    try:
        result = StoryCRUD(db_client).list_public(page, page_size, genre)
        items = [StoryModel.from_dict(item).to_public_dict() for item in result["items"]]
        return StoryResponse(success=True, data=PaginatedResponse.from_result(result, items))

    except Exception as e:
        logger.error(f"Error listing public stories: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list public stories",
        )


@router.post(
    "",
    response_model=StoryResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("story_create"))],
)
async def create_story(
    request: CreateStoryRequest,
    user: UserModel = Depends(get_current_user),
    db_client=Depends(get_db_client),
    assistant: StoryAssistant = Depends(get_story_assistant_dep),
) -> StoryResponse:
    """
    Start a new story.

    Args:
        request: Title, the six story elements and a target length
        user: Current user
        db_client: Database client
        assistant: AI story assistant for the opening

    Returns:
        StoryResponse with the created story and writing prompts

    Raises:
        SubscriptionLimitError: If the plan's story limits are used up
        ValidationError: If the title fails the content filter
    """
    try:
        stories = StoryCRUD(db_client)
        subscriptions = SubscriptionCRUD(db_client)
        subscription = subscriptions.get_or_create_for_user(user.id)

        total_stories = stories.count_by_author(user.id)
        blocked = subscription.story_creation_block(total_stories)
        if blocked:
            raise SubscriptionLimitError(blocked, details={"tier": subscription.tier})

        title = _check_title(request.title)
        target = min(request.target_word_count, subscription.limits.max_story_length)

        story = StoryModel(
            title=title,
            author_id=user.id,
            author_name=user.name,
            author_age=user.age,
            elements=request.elements,
            target_word_count=max(300, target),
        )

        prompts = None
        if request.generate_opening:
            opening = await assistant.generate_opening(request.elements, user.age)
            story.apply_content(opening["opening"])
            story.add_ai_session("continue", opening["opening"], prompt="opening")
            prompts = opening["prompts"]

        stories.create_story(story)
        subscription.update_usage(UsageType.STORY_CREATED)
        subscriptions.save_model(subscription)

        user.stats.stories_created = total_stories + 1
        UserCRUD(db_client).save_model(user)

        logger.info(f"Story {story.id} created by user {user.id}")
        return StoryResponse(
            success=True,
            data={"story": story.to_public_dict(), "prompts": prompts},
            message="Story created",
        )

    except HTTPException:
        raise
    except MintoonsException:
        raise
    except Exception as e:
        logger.error(f"Error creating story: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create story",
        )


@router.get("/{story_id}", response_model=StoryResponse)
async def get_story(
    story_id: str,
    user: UserModel = Depends(get_current_user),
    db_client=Depends(get_db_client),
) -> StoryResponse:
    """Get a story the caller may read; other readers bump the view count."""
    story = load_story(db_client, story_id)
    ensure_can_view(db_client, user, story)
    if story.author_id != user.id:
        StoryCRUD(db_client).increment_view_count(story.id)
        story.view_count += 1
    return StoryResponse(success=True, data=story.to_public_dict())


@router.put(
    "/{story_id}",
    response_model=StoryResponse,
    dependencies=[Depends(rate_limit("story_update"))],
)
async def update_story(
    story_id: str,
    request: UpdateStoryRequest,
    user: UserModel = Depends(get_current_user),
    db_client=Depends(get_db_client),
    publisher: StoryPublisher = Depends(get_story_publisher),
) -> StoryResponse:
    """
    Save edits to a story.

    Text is sanitized and capped at the plan's story length. Setting
    ``status`` to ``completed`` credits the author's progress.

    Raises:
        AuthorizationError: If the caller is not the author or an admin
        ValidationError: If the story is locked or the status is not allowed
        SubscriptionLimitError: If the text is longer than the plan allows
    """
    try:
        story = load_story(db_client, story_id)
        ensure_can_edit(user, story)

        changes_text = request.title is not None or request.content is not None
        if changes_text and story.status not in EDITABLE_STATUSES:
            raise ValidationError(
                f"A {story.status} story can't be edited",
                details={"status": story.status},
            )

        if request.title is not None:
            story.title = _check_title(request.title)

        if request.content is not None:
            content = InputSanitizer.sanitize_story_content(request.content)
            limits = SubscriptionCRUD(db_client).get_or_create_for_user(story.author_id).limits
            word_count = StoryModel.calculate_word_count(content)
            if word_count > limits.max_story_length:
                raise SubscriptionLimitError(
                    f"Stories on the {limits.name} plan can be up to {limits.max_story_length} words",
                    details={"word_count": word_count, "max_story_length": limits.max_story_length},
                )
            story.apply_content(content)

        if request.is_public is not None:
            if request.is_public:
                limits = SubscriptionCRUD(db_client).get_or_create_for_user(story.author_id).limits
                if not limits.public_stories:
                    raise SubscriptionLimitError(f"Public stories are not included in the {limits.name} plan")
            story.is_public = request.is_public

        if request.tags is not None:
            story.tags = [InputSanitizer.sanitize_text(tag, 30) for tag in request.tags if tag.strip()]

        if request.advance_stage:
            story.advance_stage()

        if request.status is not None:
            new_status = StoryStatus(request.status).value
            if new_status not in EDITABLE_STATUSES:
                raise ValidationError(
                    "Status can only be set to draft, in_progress or completed",
                    details={"status": new_status},
                )
            if new_status == StoryStatus.COMPLETED.value:
                author = user if story.author_id == user.id else None
                publisher.complete(story, author)
            else:
                story.status = new_status

        StoryCRUD(db_client).save_model(story)
        return StoryResponse(success=True, data=story.to_public_dict(), message="Story saved")

    except HTTPException:
        raise
    except MintoonsException:
        raise
    except Exception as e:
        logger.error(f"Error updating story {story_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update story",
        )


@router.delete("/{story_id}", response_model=StoryResponse)
async def delete_story(
    story_id: str,
    user: UserModel = Depends(get_current_user),
    db_client=Depends(get_db_client),
) -> StoryResponse:
    """
    Delete a story and its comments.

    Authors may delete drafts and stories in progress; admins may delete any.
    """
    story = load_story(db_client, story_id)
    ensure_can_edit(user, story)
    if user.role != UserRole.ADMIN and story.status not in DELETABLE_STATUSES:
        raise ValidationError(
            "Only draft or in-progress stories can be deleted",
            details={"status": story.status},
        )

    removed_comments = CommentCRUD(db_client).delete_for_story(story.id)
    StoryCRUD(db_client).delete(story.id)
    logger.info(f"Story {story.id} deleted by {user.id} with {removed_comments} comments")
    return StoryResponse(success=True, data={"id": story.id}, message="Story deleted")


@router.post("/{story_id}/publish", response_model=StoryResponse)
async def publish_story(
    story_id: str,
    user: UserModel = Depends(get_current_user),
    db_client=Depends(get_db_client),
    publisher: StoryPublisher = Depends(get_story_publisher),
) -> StoryResponse:
    """
    Submit a story for publishing.

    Clean stories that are long enough and score at least 60 go live;
    anything else goes to the review queue.
    """
    try:
        story = load_story(db_client, story_id)
        ensure_can_edit(user, story)

        author = user if story.author_id == user.id else None
        result = await publisher.publish(story, author)
        result["story"] = story.to_public_dict()

        message = "Story published" if result["published"] else "Story sent for review"
        return StoryResponse(success=True, data=result, message=message)

    except HTTPException:
        raise
    except MintoonsException:
        raise
    except Exception as e:
        logger.error(f"Error publishing story {story_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to publish story",
        )


@router.post("/{story_id}/like", response_model=StoryResponse)
async def toggle_like(
    story_id: str,
    user: UserModel = Depends(get_current_user),
    db_client=Depends(get_db_client),
) -> StoryResponse:
    """Like or unlike a story."""
    story = load_story(db_client, story_id)
    ensure_can_view(db_client, user, story)

    liked = story.toggle_like(user.id)
    StoryCRUD(db_client).update(story.id, {"liked_by": story.liked_by, "likes": story.likes})
    return StoryResponse(
        success=True,
        data={"liked": liked, "likes": story.likes},
        message="Story liked" if liked else "Like removed",
    )

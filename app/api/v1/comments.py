"""
Comment API Endpoints
Mentor feedback on stories, with reactions and replies from the author.
"""

from typing import Any

from fastapi import APIRouter, HTTPException, Depends, Query, status
from pydantic import BaseModel

from app.crud.comment import CommentCRUD
from app.crud.story import StoryCRUD
from app.dependencies import (
    get_current_user,
    get_db_client,
    get_notification_service,
    rate_limit,
    require_roles,
)
from app.models.comment import CommentModel
from app.models.notification import NotificationType
from app.models.user import UserModel, UserRole
from app.schemas.story_schema import (
    ChildResponseRequest,
    CreateCommentRequest,
    HideCommentRequest,
    ReactionRequest,
)
from app.services.content_filter import ContentFilter, InputSanitizer
from app.services.notification_service import NotificationService
from app.services.story_access import can_mentor, ensure_can_mentor, ensure_can_view, load_story
from app.utils.exceptions import (
    AuthorizationError,
    MintoonsException,
    NotFoundError,
    ValidationError,
)
from app.utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter()


# ── Response Models ──────────────────────────────────────────────────

class CommentResponse(BaseModel):
    """Generic comment response wrapper."""
    success: bool
    data: Any = None
    message: str = ""


def _load_comment(db_client, comment_id: str) -> CommentModel:
    comment = CommentCRUD(db_client).get_model(comment_id)
    if comment is None:
        raise NotFoundError("Comment not found", details={"comment_id": comment_id})
    return comment


def _clean_text(text: str, max_length: int) -> str:
    text = InputSanitizer.sanitize_text(text, max_length)
    result = ContentFilter.filter_content(text)
    if not result.is_clean:
        raise ValidationError(
            "Comment contains content that isn't allowed",
            details={"violations": result.violations},
        )
    return text


# ── Endpoints ────────────────────────────────────────────────────────

@router.get("", response_model=CommentResponse)
async def list_comments(
    story_id: str = Query(..., description="Story to list comments for"),
    user: UserModel = Depends(get_current_user),
    db_client=Depends(get_db_client),
) -> CommentResponse:
    """Comments on a story, oldest first. Hidden comments are shown to staff only."""
    story = load_story(db_client, story_id)
    ensure_can_view(db_client, user, story)

    include_hidden = can_mentor(db_client, user, story)
    comments = [
        CommentModel.from_dict(item).to_public_dict()
        for item in CommentCRUD(db_client).list_for_story(story.id, include_hidden=include_hidden)
    ]
    return CommentResponse(
        success=True,
        data={"items": comments, "total": len(comments)},
        message=f"Retrieved {len(comments)} comments",
    )


@router.post(
    "",
    response_model=CommentResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("comment_create"))],
)
async def create_comment(
    request: CreateCommentRequest,
    user: UserModel = Depends(require_roles(UserRole.MENTOR.value, UserRole.ADMIN.value)),
    db_client=Depends(get_db_client),
    notifier: NotificationService = Depends(get_notification_service),
) -> CommentResponse:
    """
    Leave feedback on a story.

    Only admins and the mentor assigned to the author may comment. The
    author gets a notification and, if opted in, an email.

    Raises:
        AuthorizationError: If the caller does not mentor the author
        ValidationError: If the text fails the content filter or the
            parent comment belongs to another story
    """
    try:
        story = load_story(db_client, request.story_id)
        ensure_can_mentor(db_client, user, story)

        comments = CommentCRUD(db_client)
        if request.parent_comment_id:
            parent = comments.get_model(request.parent_comment_id)
            if parent is None or parent.story_id != story.id:
                raise ValidationError("Parent comment is not on this story")

        comment = CommentModel(
            story_id=story.id,
            commenter_id=user.id,
            commenter_name=user.name,
            commenter_role=user.role,
            content=_clean_text(request.content, 1000),
            highlighted_text=request.highlighted_text,
            text_position=request.text_position,
            comment_type=request.comment_type,
            parent_comment_id=request.parent_comment_id,
        )
        comment.ensure_category()
        comments.create_comment(comment)
        StoryCRUD(db_client).increment_comment_count(story.id)

        notifier.notify(
            story.author_id,
            NotificationType.MENTOR_COMMENT,
            "New feedback on your story 💬",
            f'{user.name} commented on "{story.title}"',
            data={"story_id": story.id, "comment_id": comment.id},
            action_url=f"/my-stories/{story.id}",
            email_data={
                "mentor_name": user.name,
                "story_title": story.title,
                "story_id": story.id,
                "comment": comment.content,
            },
        )

        logger.info(f"Comment {comment.id} added to story {story.id} by {user.id}")
        return CommentResponse(success=True, data=comment.to_public_dict(), message="Comment added")

    except HTTPException:
        raise
    except MintoonsException:
        raise
    except Exception as e:
        logger.error(f"Error creating comment: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to add comment",
        )


@router.put("/{comment_id}/resolve", response_model=CommentResponse)
async def resolve_comment(
    comment_id: str,
    user: UserModel = Depends(get_current_user),
    db_client=Depends(get_db_client),
) -> CommentResponse:
    """Mark a comment resolved; the story author, the commenter or an admin may do this."""
    comment = _load_comment(db_client, comment_id)
    story = load_story(db_client, comment.story_id)
    if user.id not in (story.author_id, comment.commenter_id) and user.role != UserRole.ADMIN:
        raise AuthorizationError("You can't resolve this comment")

    comment.resolve()
    CommentCRUD(db_client).save_model(comment)
    return CommentResponse(success=True, data=comment.to_public_dict(), message="Comment resolved")


@router.post("/{comment_id}/reactions", response_model=CommentResponse)
async def react_to_comment(
    comment_id: str,
    request: ReactionRequest,
    user: UserModel = Depends(get_current_user),
    db_client=Depends(get_db_client),
) -> CommentResponse:
    """Add, change or remove the caller's emoji reaction."""
    comment = _load_comment(db_client, comment_id)
    story = load_story(db_client, comment.story_id)
    ensure_can_view(db_client, user, story)

    try:
        reacted = comment.set_reaction(user.id, request.emoji)
    except ValueError as e:
        raise ValidationError(str(e), details={"emoji": request.emoji}) from e

    CommentCRUD(db_client).save_model(comment)
    return CommentResponse(
        success=True,
        data={"reacted": reacted, "reaction_counts": comment.reaction_counts()},
        message="Reaction saved" if reacted else "Reaction removed",
    )


@router.post("/{comment_id}/response", response_model=CommentResponse)
async def respond_to_comment(
    comment_id: str,
    request: ChildResponseRequest,
    user: UserModel = Depends(get_current_user),
    db_client=Depends(get_db_client),
    notifier: NotificationService = Depends(get_notification_service),
) -> CommentResponse:
    """The story's author replies to a mentor comment."""
    comment = _load_comment(db_client, comment_id)
    story = load_story(db_client, comment.story_id)
    if story.author_id != user.id:
        raise AuthorizationError("Only the story's author can reply to this comment")

    comment.child_response = _clean_text(request.response, 500)
    CommentCRUD(db_client).save_model(comment)

    notifier.notify(
        comment.commenter_id,
        NotificationType.MENTOR_COMMENT,
        "A student replied to your comment",
        f'{user.name} replied on "{story.title}"',
        data={"story_id": story.id, "comment_id": comment.id},
        action_url=f"/mentor/stories/{story.id}",
    )
    return CommentResponse(success=True, data=comment.to_public_dict(), message="Reply saved")


@router.post("/{comment_id}/hide", response_model=CommentResponse)
async def hide_comment(
    comment_id: str,
    request: HideCommentRequest,
    user: UserModel = Depends(require_roles(UserRole.MENTOR.value, UserRole.ADMIN.value)),
    db_client=Depends(get_db_client),
) -> CommentResponse:
    """Hide a comment from the author; admins or the original commenter only."""
    comment = _load_comment(db_client, comment_id)
    if user.role != UserRole.ADMIN and comment.commenter_id != user.id:
        raise AuthorizationError("You can't hide this comment")

    comment.hide(user.id, InputSanitizer.sanitize_text(request.reason, 200))
    CommentCRUD(db_client).save_model(comment)
    logger.info(f"Comment {comment.id} hidden by {user.id}")
    return CommentResponse(success=True, data={"id": comment.id, "is_hidden": True}, message="Comment hidden")

"""Story export endpoint: PDF, Word or plain text downloads."""

from fastapi import APIRouter, HTTPException, Depends, Query, Response, status

from app.crud.comment import CommentCRUD
from app.crud.subscription import SubscriptionCRUD
from app.dependencies import get_current_user, get_db_client, get_notification_service, rate_limit
from app.models.notification import NotificationType
from app.models.subscription import ExportFormat, UsageType
from app.models.user import UserModel
from app.services.export_service import export_story
from app.services.notification_service import NotificationService
from app.services.story_access import can_mentor, load_story
from app.utils.exceptions import AuthorizationError, MintoonsException, SubscriptionLimitError
from app.utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter()


@router.get("/{story_id}", dependencies=[Depends(rate_limit("export"))])
async def export(
    story_id: str,
    export_format: ExportFormat = Query(ExportFormat.PDF, alias="format", description="pdf, word or txt"),
    user: UserModel = Depends(get_current_user),
    db_client=Depends(get_db_client),
    notifier: NotificationService = Depends(get_notification_service),
) -> Response:
    """
    Download a story as a file.

    The author, an admin or the author's mentor may export. The author's
    plan decides which formats are allowed and how many exports remain.

    Args:
        story_id: Story to export
        export_format: pdf, word or txt
        user: Current user
        db_client: Database client
        notifier: Notification service

    Returns:
        The rendered file with a Content-Disposition attachment header

    Raises:
        AuthorizationError: If the caller may not export the story
        SubscriptionLimitError: If the format or monthly export count is not allowed
    """
    try:
        story = load_story(db_client, story_id)
        if story.author_id != user.id and not can_mentor(db_client, user, story):
            raise AuthorizationError("You can't export this story")

        fmt = ExportFormat(export_format).value
        subscriptions = SubscriptionCRUD(db_client)
        subscription = subscriptions.get_or_create_for_user(story.author_id)
        blocked = subscription.export_block(fmt)
        if blocked:
            raise SubscriptionLimitError(
                blocked,
                details={
                    "tier": subscription.tier,
                    "allowed_formats": [f.value for f in subscription.limits.export_formats],
                },
            )

        comments = CommentCRUD(db_client).list_for_story(story.id)
        exported = export_story(story, fmt, comments)

        subscription.update_usage(UsageType.EXPORT_CREATED)
        subscriptions.save_model(subscription)

        notifier.notify(
            user.id,
            NotificationType.EXPORT_READY,
            "Your export is ready 📄",
            f'"{story.title}" was exported as {fmt.upper()}.',
            data={"story_id": story.id, "format": fmt, "filename": exported.filename},
        )

        logger.info(f"Story {story.id} exported as {fmt} by {user.id}")
        return Response(
            content=exported.content,
            media_type=exported.media_type,
            headers={"Content-Disposition": f'attachment; filename="{exported.filename}"'},
        )

    except HTTPException:
        raise
    except MintoonsException:
        raise
    except Exception as e:
        logger.error(f"Error exporting story {story_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to export story",
        )

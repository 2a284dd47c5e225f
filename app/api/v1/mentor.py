"""
Mentor Dashboard Endpoints
Assigned students, their stories and mentor assessments.
"""

from typing import Any, List, Optional

from fastapi import APIRouter, HTTPException, Depends, Query, status
from pydantic import BaseModel

from app.crud.story import StoryCRUD
from app.crud.subscription import SubscriptionCRUD
from app.crud.user import UserCRUD
from app.dependencies import get_current_user, get_db_client, get_notification_service
from app.models.notification import NotificationType
from app.models.story import MentorAssessment, StoryModel, StoryStatus
from app.models.subscription import UsageType
from app.models.user import UserModel, UserRole
from app.schemas.responses import PaginatedResponse
from app.schemas.story_schema import MentorAssessmentRequest
from app.services.content_filter import InputSanitizer
from app.services.notification_service import NotificationService
from app.services.story_access import ensure_can_mentor, load_story
from app.utils.exceptions import MintoonsException, SubscriptionLimitError
from app.utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter()


class MentorResponse(BaseModel):
    """Response model for mentor endpoints."""
    success: bool
    data: Any = None
    message: str = ""


def _students(user: UserModel, db_client) -> List[dict]:
    """Children assigned to a mentor; admins see every child."""
    users = UserCRUD(db_client)
    if user.role == UserRole.ADMIN:
        return users.list_by_role(UserRole.CHILD.value)
    return users.list_by_mentor(user.id)


@router.get("/students", response_model=MentorResponse)
async def list_students(
    user: UserModel = Depends(get_current_user),
    db_client=Depends(get_db_client),
) -> MentorResponse:
    """Assigned students with their story counts."""
    try:
        stories = StoryCRUD(db_client)
        students = []
        for data in _students(user, db_client):
            student = UserModel.from_dict(data).to_public_dict()
            student["story_count"] = stories.count_by_author(data["id"])
            student["stories_awaiting_feedback"] = stories.count([
                ("author_id", "==", data["id"]),
                ("status", "==", StoryStatus.COMPLETED.value),
            ])
            students.append(student)

        return MentorResponse(
            success=True,
            data={"students": students, "total": len(students)},
            message=f"Retrieved {len(students)} students",
        )

    except HTTPException:
        raise
    except MintoonsException:
        raise
    except Exception as e:
        logger.error(f"Error listing students for mentor {user.id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get students",
        )


@router.get("/stories", response_model=MentorResponse)
async def list_student_stories(
    story_status: Optional[StoryStatus] = Query(None, alias="status"),
    student_id: Optional[str] = Query(None, description="Only this student's stories"),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=50),
    user: UserModel = Depends(get_current_user),
    db_client=Depends(get_db_client),
) -> MentorResponse:
    """Stories written by the mentor's students, most recently updated first."""
    student_ids = [student["id"] for student in _students(user, db_client)]
    if student_id is not None:
        student_ids = [sid for sid in student_ids if sid == student_id]

    result = StoryCRUD(db_client).list_for_authors(
        student_ids,
        story_status.value if story_status else None,
        page,
        page_size,
    )
    items = [StoryModel.from_dict(item).to_public_dict() for item in result["items"]]
    return MentorResponse(success=True, data=PaginatedResponse.from_result(result, items))


@router.post("/stories/{story_id}/assessment", response_model=MentorResponse)
async def assess_story(
    story_id: str,
    request: MentorAssessmentRequest,
    user: UserModel = Depends(get_current_user),
    db_client=Depends(get_db_client),
    notifier: NotificationService = Depends(get_notification_service),
) -> MentorResponse:
    """
    Record a mentor's scores and feedback on a story.

    Each assessment uses one mentor session from the author's plan.

    Raises:
        AuthorizationError: If the caller does not mentor the author
        SubscriptionLimitError: If the author's plan has no sessions left
    """
    try:
        story = load_story(db_client, story_id)
        ensure_can_mentor(db_client, user, story)

        subscriptions = SubscriptionCRUD(db_client)
        subscription = subscriptions.get_or_create_for_user(story.author_id)
        blocked = subscription.mentor_session_block()
        if blocked:
            raise SubscriptionLimitError(blocked, details={"tier": subscription.tier})

        feedback = InputSanitizer.sanitize_text(request.feedback, 2000)
        story.mentor_assessment = MentorAssessment(
            mentor_id=user.id,
            grammar_score=request.grammar_score,
            creativity_score=request.creativity_score,
            overall_score=request.overall_score,
            feedback=feedback,
        )
        StoryCRUD(db_client).save_model(story)

        subscription.update_usage(UsageType.MENTOR_SESSION)
        subscriptions.save_model(subscription)

        notifier.notify(
            story.author_id,
            NotificationType.MENTOR_COMMENT,
            "Your mentor reviewed your story 🌟",
            f'{user.name} scored "{story.title}" {request.overall_score}/100.',
            data={"story_id": story.id, "overall_score": request.overall_score},
            action_url=f"/my-stories/{story.id}",
            email_data={
                "mentor_name": user.name,
                "story_title": story.title,
                "story_id": story.id,
                "comment": feedback or f"Overall score: {request.overall_score}/100",
            },
        )

        logger.info(f"Mentor {user.id} assessed story {story.id}")
        return MentorResponse(
            success=True,
            data=story.mentor_assessment.model_dump(mode="json"),
            message="Assessment saved",
        )

    except HTTPException:
        raise
    except MintoonsException:
        raise
    except Exception as e:
        logger.error(f"Error saving mentor assessment for story {story_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save assessment",
        )

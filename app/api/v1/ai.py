"""
AI Story Assistant Endpoints
Openings, mid-story help and assessments, metered by the subscription.
"""

from typing import Any

from fastapi import APIRouter, HTTPException, Depends, status
from pydantic import BaseModel

from app.crud.story import StoryCRUD
from app.crud.subscription import SubscriptionCRUD
from app.crud.user import UserCRUD
from app.dependencies import (
    get_current_user,
    get_db_client,
    get_notification_service,
    get_story_assistant_dep,
    rate_limit,
)
from app.models.subscription import UsageType
from app.models.user import UserModel
from app.schemas.story_schema import AIAssessRequest, AICollaborateRequest, AIGenerateRequest
from app.services.achievements import AchievementService
from app.services.ai.story_assistant import StoryAssistant
from app.services.notification_service import NotificationService
from app.services.story_access import can_mentor, ensure_can_edit, load_story
from app.utils.exceptions import (
    AuthorizationError,
    MintoonsException,
    SubscriptionLimitError,
    ValidationError,
)
from app.utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter()


class AIResponse(BaseModel):
    """Response model for AI assistant calls."""
    success: bool
    data: Any = None
    message: str = ""


def _check_ai_allowance(db_client, user: UserModel) -> None:
    subscription = SubscriptionCRUD(db_client).get_or_create_for_user(user.id)
    if not subscription.can_use_ai():
        raise SubscriptionLimitError(
            subscription.ai_block(),
            details={"tier": subscription.tier, "remaining": subscription.get_remaining_limits()},
        )


def _record_ai_request(db_client, user: UserModel) -> None:
    SubscriptionCRUD(db_client).record_usage(user.id, UsageType.AI_REQUEST)


@router.post("/generate", response_model=AIResponse, dependencies=[Depends(rate_limit("ai_generate"))])
async def generate_opening(
    request: AIGenerateRequest,
    user: UserModel = Depends(get_current_user),
    db_client=Depends(get_db_client),
    assistant: StoryAssistant = Depends(get_story_assistant_dep),
) -> AIResponse:
    """
    Generate a story opening and writing prompts from the six elements.

    When ``story_id`` names an empty story of the caller's, the opening
    becomes its first text.

    Raises:
        SubscriptionLimitError: If the plan's AI allowance is used up
    """
    try:
        _check_ai_allowance(db_client, user)

        story = None
        if request.story_id:
            story = load_story(db_client, request.story_id)
            ensure_can_edit(user, story)

        result = await assistant.generate_opening(request.elements, request.age or user.age)
        _record_ai_request(db_client, user)

        if story is not None:
            if not story.content.strip():
                story.apply_content(result["opening"])
            story.add_ai_session("continue", result["opening"], prompt="opening")
            StoryCRUD(db_client).save_model(story)

        return AIResponse(success=True, data=result, message="Opening generated")

    except HTTPException:
        raise
    except MintoonsException:
        raise
    except Exception as e:
        logger.error(f"Error generating opening: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to generate opening",
        )


@router.post("/collaborate", response_model=AIResponse, dependencies=[Depends(rate_limit("ai_generate"))])
async def collaborate(
    request: AICollaborateRequest,
    user: UserModel = Depends(get_current_user),
    db_client=Depends(get_db_client),
    assistant: StoryAssistant = Depends(get_story_assistant_dep),
) -> AIResponse:
    """Continue the story, add a twist, suggest a character or set a challenge."""
    try:
        story = load_story(db_client, request.story_id)
        ensure_can_edit(user, story)
        _check_ai_allowance(db_client, user)

        result = await assistant.collaborate(story, request.response_type, request.user_input)
        _record_ai_request(db_client, user)

        story.add_ai_session(result["response_type"], result["response"], prompt=request.user_input)
        StoryCRUD(db_client).save_model(story)

        return AIResponse(success=True, data=result, message="Suggestion ready")

    except HTTPException:
        raise
    except MintoonsException:
        raise
    except Exception as e:
        logger.error(f"Error collaborating on story {request.story_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get a suggestion",
        )


@router.post("/assess", response_model=AIResponse, dependencies=[Depends(rate_limit("ai_assess"))])
async def assess(
    request: AIAssessRequest,
    user: UserModel = Depends(get_current_user),
    db_client=Depends(get_db_client),
    assistant: StoryAssistant = Depends(get_story_assistant_dep),
    notifier: NotificationService = Depends(get_notification_service),
) -> AIResponse:
    """
    Score a saved story or a piece of free text.

    A saved story's assessment is stored on the story, and an author
    assessing their own story can unlock achievements.

    Raises:
        ValidationError: If neither ``story_id`` nor ``content`` is given,
            or the story is too short
        AuthorizationError: If the caller can't assess the story
    """
    try:
        story = None
        if request.story_id:
            story = load_story(db_client, request.story_id)
            if story.author_id != user.id and not can_mentor(db_client, user, story):
                raise AuthorizationError("You can't assess this story")
            content, age, elements = story.content, story.author_age, story.elements
            if len(content.strip()) < 50:
                raise ValidationError("Write at least 50 characters before asking for an assessment")
        elif request.content:
            content, age, elements = request.content, request.age or user.age, request.elements
        else:
            raise ValidationError("Send either story_id or content to assess")

        _check_ai_allowance(db_client, user)
        assessment = await assistant.assess_story(content, age, elements)
        _record_ai_request(db_client, user)

        data = assessment.model_dump(mode="json")
        data["achievements"] = []
        if story is not None:
            story.ai_assessment = assessment
            StoryCRUD(db_client).save_model(story)
            if story.author_id == user.id:
                data["achievements"] = AchievementService(notifier).award(
                    user, assessment, story.word_count, story.id
                )
                UserCRUD(db_client).save_model(user)

        return AIResponse(success=True, data=data, message="Assessment complete")

    except HTTPException:
        raise
    except MintoonsException:
        raise
    except Exception as e:
        logger.error(f"Error assessing story: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to assess story",
        )

"""
Story, Comment and AI Request Schemas
"""

from typing import Optional

from pydantic import BaseModel, Field

from app.models.comment import CommentType, TextPosition
from app.models.story import AIResponseType, StoryElements, StoryStatus


class CreateStoryRequest(BaseModel):
    """New story from a title and the six chosen elements."""

    title: str = Field(min_length=1, max_length=100)
    elements: StoryElements
    target_word_count: int = Field(default=600, ge=300, le=2000)
    generate_opening: bool = Field(default=True, description="Start the text with an AI opening")


class UpdateStoryRequest(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=100)
    content: Optional[str] = Field(default=None, max_length=20000)
    status: Optional[StoryStatus] = Field(default=None, description="Only draft, in_progress or completed")
    is_public: Optional[bool] = None
    tags: Optional[list[str]] = Field(default=None, max_length=10)
    advance_stage: bool = False


class CreateCommentRequest(BaseModel):
    story_id: str = Field(min_length=1)
    content: str = Field(min_length=1, max_length=1000)
    comment_type: CommentType = CommentType.SUGGESTION
    highlighted_text: Optional[str] = Field(default=None, max_length=200)
    text_position: Optional[TextPosition] = None
    parent_comment_id: Optional[str] = None


class ReactionRequest(BaseModel):
    emoji: str = Field(min_length=1, max_length=8)


class ChildResponseRequest(BaseModel):
    response: str = Field(min_length=1, max_length=500)


class HideCommentRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=200)


class AIGenerateRequest(BaseModel):
    """Opening for a new or existing story."""

    elements: StoryElements
    age: Optional[int] = Field(default=None, ge=2, le=18)
    story_id: Optional[str] = None


class AICollaborateRequest(BaseModel):
    story_id: str = Field(min_length=1)
    response_type: AIResponseType
    user_input: str = Field(default="", max_length=500)


class AIAssessRequest(BaseModel):
    """Assess a saved story, or free text of 50-2000 characters."""

    story_id: Optional[str] = None
    content: Optional[str] = Field(default=None, min_length=50, max_length=2000)
    age: Optional[int] = Field(default=None, ge=2, le=18)
    elements: Optional[StoryElements] = None


class MentorAssessmentRequest(BaseModel):
    grammar_score: int = Field(ge=0, le=100)
    creativity_score: int = Field(ge=0, le=100)
    overall_score: int = Field(ge=0, le=100)
    feedback: str = Field(default="", max_length=2000)

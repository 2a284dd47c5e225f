"""
Story Models
A child's story with its writing prompts, AI help history and assessments.
"""

import math
import uuid
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any

from pydantic import BaseModel, ConfigDict, Field

from app.utils.dates import to_naive_utc

READING_WORDS_PER_MINUTE = 200
PUBLISH_MIN_TARGET_RATIO = 0.8
PUBLISH_MIN_OVERALL_SCORE = 60
MAX_STAGE = 5


class Genre(str, Enum):
    ADVENTURE = "adventure"
    FANTASY = "fantasy"
    MYSTERY = "mystery"
    SCI_FI = "sci-fi"
    COMEDY = "comedy"
    DRAMA = "drama"
    HISTORICAL = "historical"
    ANIMAL_STORIES = "animal-stories"
    FAIRY_TALE = "fairy-tale"


class Setting(str, Enum):
    ENCHANTED_FOREST = "enchanted-forest"
    MAGIC_CASTLE = "magic-castle"
    OCEAN_DEPTHS = "ocean-depths"
    SPACE_STATION = "space-station"
    CITY = "city"
    VILLAGE = "village"
    MOUNTAINS = "mountains"
    DESERT = "desert"
    UNDERGROUND_CAVE = "underground-cave"


class Character(str, Enum):
    BRAVE_EXPLORER = "brave-explorer"
    TALKING_ANIMAL = "talking-animal"
    WISE_WIZARD = "wise-wizard"
    ROBOT_FRIEND = "robot-friend"
    DRAGON = "dragon"
    PRINCESS_PRINCE = "princess-prince"
    DETECTIVE = "detective"
    SUPERHERO = "superhero"
    ORDINARY_KID = "ordinary-kid"


class Mood(str, Enum):
    EXCITING = "exciting"
    FUNNY = "funny"
    MYSTERIOUS = "mysterious"
    SCARY = "scary"
    PEACEFUL = "peaceful"
    ADVENTUROUS = "adventurous"


class Conflict(str, Enum):
    LOST_TREASURE = "lost-treasure"
    RESCUE_MISSION = "rescue-mission"
    MYSTERY_TO_SOLVE = "mystery-to-solve"
    EVIL_TO_DEFEAT = "evil-to-defeat"
    COMPETITION = "competition"
    DISCOVERY = "discovery"


class Theme(str, Enum):
    FRIENDSHIP = "friendship"
    COURAGE = "courage"
    KINDNESS = "kindness"
    ADVENTURE = "adventure"
    FAMILY = "family"
    DISCOVERY = "discovery"


class StoryStatus(str, Enum):
    """Story lifecycle status."""
    DRAFT = "draft"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    NEEDS_REVIEW = "needs_review"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class ModerationStatus(str, Enum):
    """Admin review state of a story."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    ESCALATED = "escalated"


class AIResponseType(str, Enum):
    """Kinds of help the assistant can give mid-story."""
    CONTINUE = "continue"
    TWIST = "twist"
    CHARACTER = "character"
    CHALLENGE = "challenge"


class StoryElements(BaseModel):
    """The six building blocks a child picks before writing."""

    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    genre: Genre
    setting: Setting
    character: Character
    mood: Mood
    conflict: Conflict
    theme: Theme

    def describe(self) -> Dict[str, str]:
        """Human-readable element names ("enchanted-forest" -> "enchanted forest")."""
        return {k: str(v).replace("-", " ") for k, v in self.model_dump().items()}


class AISession(BaseModel):
    """One exchange with the story assistant."""

    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    response_type: AIResponseType
    prompt: str = ""
    response: str
    created_at: datetime = Field(default_factory=datetime.utcnow)


class AIAssessment(BaseModel):
    """Scores and feedback produced by the AI reviewer."""

    grammar_score: int = Field(ge=0, le=100)
    creativity_score: int = Field(ge=0, le=100)
    overall_score: int = Field(ge=0, le=100)
    feedback: str = ""
    suggestions: List[str] = Field(default_factory=list)
    strengths: List[str] = Field(default_factory=list)
    improvements: List[str] = Field(default_factory=list)
    reading_level: str = ""
    is_fallback: bool = False
    assessed_at: datetime = Field(default_factory=datetime.utcnow)


class MentorAssessment(BaseModel):
    """Scores left by the child's mentor."""

    mentor_id: str
    grammar_score: int = Field(ge=0, le=100)
    creativity_score: int = Field(ge=0, le=100)
    overall_score: int = Field(ge=0, le=100)
    feedback: str = Field(default="", max_length=2000)
    assessed_at: datetime = Field(default_factory=datetime.utcnow)


class StoryModel(BaseModel):
    """Story document."""

    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    title: str = Field(min_length=1, max_length=100)
    content: str = ""
    author_id: str
    author_name: str = ""
    author_age: Optional[int] = None
    elements: StoryElements

    stage: int = Field(default=1, ge=1, le=MAX_STAGE)
    word_count: int = Field(default=0, ge=0)
    target_word_count: int = Field(default=600, ge=300, le=2000)
    reading_time: int = Field(default=0, ge=0, description="Minutes")
    status: StoryStatus = StoryStatus.DRAFT

    ai_sessions: List[AISession] = Field(default_factory=list)
    ai_assessment: Optional[AIAssessment] = None
    mentor_assessment: Optional[MentorAssessment] = None

    is_public: bool = False
    tags: List[str] = Field(default_factory=list)
    likes: int = 0
    liked_by: List[str] = Field(default_factory=list)
    comment_count: int = 0
    view_count: int = 0

    moderation_status: ModerationStatus = ModerationStatus.PENDING
    moderation_notes: Optional[str] = None
    moderated_by: Optional[str] = None
    moderated_at: Optional[datetime] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None
    published_at: Optional[datetime] = None

    @staticmethod
    def calculate_word_count(content: str) -> int:
        return len(content.split())

    @staticmethod
    def calculate_reading_time(word_count: int) -> int:
        return math.ceil(word_count / READING_WORDS_PER_MINUTE) if word_count else 0

    def apply_content(self, content: str) -> None:
        """Replace the text and recompute the derived counts."""
        self.content = content
        self.word_count = self.calculate_word_count(content)
        self.reading_time = self.calculate_reading_time(self.word_count)
        if self.status == StoryStatus.DRAFT and self.word_count > 0:
            self.status = StoryStatus.IN_PROGRESS.value

    def advance_stage(self) -> int:
        self.stage = min(MAX_STAGE, self.stage + 1)
        return self.stage

    def add_ai_session(self, response_type: str, response: str, prompt: str = "") -> AISession:
        session = AISession(response_type=response_type, prompt=prompt, response=response)
        self.ai_sessions.append(session)
        return session

    def mark_completed(self, now: Optional[datetime] = None) -> None:
        self.status = StoryStatus.COMPLETED.value
        self.completed_at = now or datetime.utcnow()

    def can_be_published(self) -> bool:
        """
        A story may go public when it is complete, long enough and scored well.

        Returns:
            True if status is completed, the word count reaches 80% of the
            target and the overall AI score is at least 60.
        """
        return (
            self.status == StoryStatus.COMPLETED
            and self.word_count >= self.target_word_count * PUBLISH_MIN_TARGET_RATIO
            and self.ai_assessment is not None
            and self.ai_assessment.overall_score >= PUBLISH_MIN_OVERALL_SCORE
        )

    def publish(self, now: Optional[datetime] = None) -> None:
        self.status = StoryStatus.PUBLISHED.value
        self.moderation_status = ModerationStatus.APPROVED.value
        self.published_at = now or datetime.utcnow()

    def send_to_review(self, notes: Optional[str] = None) -> None:
        self.status = StoryStatus.NEEDS_REVIEW.value
        self.moderation_status = ModerationStatus.PENDING.value
        if notes:
            self.moderation_notes = notes

    def toggle_like(self, user_id: str) -> bool:
        """
        Like or unlike the story.

        Returns:
            True if the story is now liked by the user.
        """
        if user_id in self.liked_by:
            self.liked_by.remove(user_id)
            liked = False
        else:
            self.liked_by.append(user_id)
            liked = True
        self.likes = len(self.liked_by)
        return liked

    def to_dict(self) -> Dict[str, Any]:
        """Convert story to dictionary for storage."""
        return self.model_dump(mode="python")

    def to_public_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StoryModel":
        """Create story from stored dictionary."""
        return cls(**to_naive_utc(data))

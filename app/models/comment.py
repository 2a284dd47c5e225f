"""
Comment Model
Mentor feedback attached to a story.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any, List

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.utils.dates import to_naive_utc

ALLOWED_REACTIONS = ("👍", "❤️", "🌟", "🎉", "💡", "🤔", "👏", "🔥")


class CommentType(str, Enum):
    GRAMMAR = "grammar"
    CREATIVITY = "creativity"
    SUGGESTION = "suggestion"
    PRAISE = "praise"
    IMPROVEMENT = "improvement"
    QUESTION = "question"


class CommentCategory(str, Enum):
    STRUCTURE = "structure"
    VOCABULARY = "vocabulary"
    CHARACTER = "character"
    PLOT = "plot"
    DIALOGUE = "dialogue"
    DESCRIPTION = "description"


# First match wins
CATEGORY_KEYWORDS = (
    (CommentCategory.DIALOGUE, ("dialogue", "said", "quote", "speech", "conversation")),
    (CommentCategory.CHARACTER, ("character", "hero", "villain", "personality", "feelings")),
    (CommentCategory.PLOT, ("plot", "ending", "beginning", "twist", "happens", "conflict")),
    (CommentCategory.VOCABULARY, ("word", "vocabulary", "spelling", "synonym", "verb", "adjective")),
    (CommentCategory.DESCRIPTION, ("describe", "description", "imagery", "senses", "detail", "colour", "color")),
    (CommentCategory.STRUCTURE, ("paragraph", "sentence", "structure", "order", "flow", "punctuation")),
)


class TextPosition(BaseModel):
    start: int = Field(ge=0)
    end: int = Field(ge=0)

    @field_validator("end")
    @classmethod
    def validate_end(cls, v: int, info) -> int:
        start = info.data.get("start")
        if start is not None and v < start:
            raise ValueError("end must not be before start")
        return v


class EmojiReaction(BaseModel):
    user_id: str
    emoji: str
    created_at: datetime = Field(default_factory=datetime.utcnow)


class CommentModel(BaseModel):
    """Comment document."""

    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    story_id: str
    commenter_id: str
    commenter_name: str = ""
    commenter_role: str = Field(description="mentor or admin")
    content: str = Field(min_length=1, max_length=1000)
    highlighted_text: Optional[str] = Field(default=None, max_length=200)
    text_position: Optional[TextPosition] = None
    comment_type: CommentType = CommentType.SUGGESTION
    category: Optional[CommentCategory] = None

    is_resolved: bool = False
    resolved_at: Optional[datetime] = None
    child_response: Optional[str] = Field(default=None, max_length=500)
    emoji_reactions: List[EmojiReaction] = Field(default_factory=list)
    parent_comment_id: Optional[str] = None

    is_hidden: bool = False
    hidden_reason: Optional[str] = None
    hidden_by: Optional[str] = None
    hidden_at: Optional[datetime] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @staticmethod
    def categorize(content: str) -> Optional[CommentCategory]:
        """Guess a category from keywords in the comment text."""
        lowered = content.lower()
        for category, keywords in CATEGORY_KEYWORDS:
            if any(keyword in lowered for keyword in keywords):
                return category
        return None

    def ensure_category(self) -> None:
        if self.category is None:
            category = self.categorize(self.content)
            self.category = category.value if category else None

    def resolve(self, now: Optional[datetime] = None) -> None:
        self.is_resolved = True
        self.resolved_at = now or datetime.utcnow()

    def set_reaction(self, user_id: str, emoji: str) -> bool:
        """
        Add, change or remove (same emoji twice) a user's reaction.

        Returns:
            True if the user now has a reaction on the comment.

        Raises:
            ValueError: If the emoji is not one of the allowed reactions.
        """
        if emoji not in ALLOWED_REACTIONS:
            raise ValueError(f"Reaction must be one of {' '.join(ALLOWED_REACTIONS)}")
        existing = next((r for r in self.emoji_reactions if r.user_id == user_id), None)
        if existing is not None:
            self.emoji_reactions.remove(existing)
            if existing.emoji == emoji:
                return False
        self.emoji_reactions.append(EmojiReaction(user_id=user_id, emoji=emoji))
        return True

    def reaction_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for reaction in self.emoji_reactions:
            counts[reaction.emoji] = counts.get(reaction.emoji, 0) + 1
        return counts

    def hide(self, hidden_by: str, reason: str, now: Optional[datetime] = None) -> None:
        self.is_hidden = True
        self.hidden_by = hidden_by
        self.hidden_reason = reason
        self.hidden_at = now or datetime.utcnow()

    def to_dict(self) -> Dict[str, Any]:
        """Convert comment to dictionary for storage."""
        return self.model_dump(mode="python")

    def to_public_dict(self) -> Dict[str, Any]:
        data = self.model_dump(mode="json")
        data["reaction_counts"] = self.reaction_counts()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CommentModel":
        """Create comment from stored dictionary."""
        return cls(**to_naive_utc(data))

"""
Achievement badges earned from story assessments and writing milestones.

Badges are stored by name on ``UserStats.achievements_unlocked``. Each one
is awarded once and adds experience points.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from app.models.notification import NotificationPriority, NotificationType
from app.models.story import AIAssessment
from app.models.user import UserModel, UserStats
from app.services.notification_service import NotificationService
from app.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Achievement:
    name: str
    description: str
    icon: str
    category: str
    rarity: str = "common"
    experience_points: int = 10

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "icon": self.icon,
            "category": self.category,
            "rarity": self.rarity,
            "experience_points": self.experience_points,
        }


ACHIEVEMENTS: Dict[str, Achievement] = {a.name: a for a in [
    Achievement("Grammar Master", "Score 95 or more for grammar", "📝", "writing", "epic", 50),
    Achievement("Grammar Expert", "Score 85 or more for grammar", "✏️", "writing", "rare", 25),
    Achievement("Creative Genius", "Score 90 or more for creativity", "🌈", "creativity", "epic", 50),
    Achievement("Creative Writer", "Score 80 or more for creativity", "🎨", "creativity", "common", 20),
    Achievement("Perfect Story", "Score 95 or more overall", "💎", "milestone", "legendary", 100),
    Achievement("Excellent Writer", "Score 90 or more overall", "🌟", "milestone", "epic", 50),
    Achievement("Great Storyteller", "Score 80 or more overall", "⭐", "milestone", "rare", 25),
    Achievement("Prolific Writer", "Write a story of 500 words or more", "📚", "writing", "rare", 30),
    Achievement("Detailed Storyteller", "Write a story of 300 words or more", "📖", "writing", "common", 15),
    Achievement("Young Talent", "Score 70 or more overall at age 8 or under", "🐣", "improvement", "rare", 25),
    Achievement("Rising Star", "Score 85 or more overall at age 12 or under", "🚀", "improvement", "rare", 25),
    Achievement("Published Author", "Publish your first story", "🏅", "milestone", "common", 20),
    Achievement("Story Collector", "Publish 10 stories", "🏆", "milestone", "epic", 75),
    Achievement("Week of Writing", "Write on 7 days in a row", "🔥", "consistency", "rare", 40),
    Achievement("Word Explorer", "Write 5,000 words in total", "🗺️", "writing", "rare", 40),
]}


def assessment_achievements(assessment: AIAssessment, age: Optional[int]) -> List[str]:
    """Score badges a single assessed story qualifies for; tiers are exclusive."""
    earned: List[str] = []

    if assessment.grammar_score >= 95:
        earned.append("Grammar Master")
    elif assessment.grammar_score >= 85:
        earned.append("Grammar Expert")

    if assessment.creativity_score >= 90:
        earned.append("Creative Genius")
    elif assessment.creativity_score >= 80:
        earned.append("Creative Writer")

    if assessment.overall_score >= 95:
        earned.append("Perfect Story")
    elif assessment.overall_score >= 90:
        earned.append("Excellent Writer")
    elif assessment.overall_score >= 80:
        earned.append("Great Storyteller")

    if age is not None:
        if age <= 8 and assessment.overall_score >= 70:
            earned.append("Young Talent")
        elif age <= 12 and assessment.overall_score >= 85:
            earned.append("Rising Star")

    return earned


def length_achievements(word_count: int) -> List[str]:
    if word_count >= 500:
        return ["Prolific Writer"]
    if word_count >= 300:
        return ["Detailed Storyteller"]
    return []


def milestone_achievements(stats: UserStats) -> List[str]:
    earned: List[str] = []
    if stats.stories_published >= 1:
        earned.append("Published Author")
    if stats.stories_published >= 10:
        earned.append("Story Collector")
    if stats.longest_streak >= 7:
        earned.append("Week of Writing")
    if stats.total_word_count >= 5000:
        earned.append("Word Explorer")
    return earned


def achievement_progress(user: UserModel) -> Dict[str, Any]:
    """Unlocked badges with details, plus the next five still to earn."""
    unlocked = [ACHIEVEMENTS[name].to_dict() for name in user.stats.achievements_unlocked if name in ACHIEVEMENTS]
    available = [a.to_dict() for name, a in ACHIEVEMENTS.items() if name not in user.stats.achievements_unlocked]
    return {
        "unlocked": unlocked,
        "available": available[:5],
        "total": len(ACHIEVEMENTS),
        "unlocked_count": len(unlocked),
    }


class AchievementService:
    """Awards new badges to a user model; the caller saves the user."""

    def __init__(self, notifier: NotificationService):
        self.notifier = notifier

    def award(
        self,
        user: UserModel,
        assessment: Optional[AIAssessment] = None,
        word_count: int = 0,
        story_id: Optional[str] = None,
    ) -> List[str]:
        """
        Unlock every badge the user now qualifies for.

        Args:
            user: Author whose stats are checked and updated.
            assessment: Assessment of the story that triggered the check.
            word_count: Word count of that story.
            story_id: Story linked from the notification.

        Returns:
            Names of the badges unlocked by this call.
        """
        candidates = length_achievements(word_count) + milestone_achievements(user.stats)
        if assessment is not None and not assessment.is_fallback:
            candidates = assessment_achievements(assessment, user.age) + candidates

        unlocked: List[str] = []
        for name in candidates:
            achievement = ACHIEVEMENTS[name]
            if not user.unlock_achievement(name, achievement.experience_points):
                continue
            unlocked.append(name)
            self.notifier.notify(
                user.id,
                NotificationType.ACHIEVEMENT_UNLOCKED,
                f"Achievement unlocked: {name} {achievement.icon}",
                achievement.description,
                data={"achievement": name, "story_id": story_id},
                action_url="/progress",
                priority=NotificationPriority.HIGH,
                email_data={"achievement": name},
            )

        if unlocked:
            logger.info(f"User {user.id} unlocked {unlocked}")
        return unlocked

"""
Story CRUD Operations
"""

from datetime import datetime
from typing import Optional, Dict, Any, List

from app.crud.base import BaseCRUD
from app.models.story import StoryModel, StoryStatus, ModerationStatus


class StoryCRUD(BaseCRUD):
    """CRUD operations for story documents."""

    @property
    def collection_name(self) -> str:
        return "stories"

    def get_model(self, story_id: str) -> Optional[StoryModel]:
        data = self.get_by_id(story_id)
        return StoryModel.from_dict(data) if data else None

    def create_story(self, story: StoryModel) -> str:
        return self.create(story.to_dict(), doc_id=story.id)

    def save_model(self, story: StoryModel) -> None:
        story.updated_at = datetime.utcnow()
        self.save(story.id, story.to_dict())

    def count_by_author(self, author_id: str) -> int:
        return self.count([("author_id", "==", author_id)])

    def list_for_authors(
        self,
        author_ids: List[str],
        status: Optional[str] = None,
        page: int = 1,
        page_size: int = 10,
    ) -> Dict[str, Any]:
        """Newest-first stories written by any of ``author_ids``."""
        if not author_ids:
            return {"items": [], "total": 0, "page": page, "page_size": page_size, "has_more": False}
        filters = [("author_id", "in", author_ids)]
        if status:
            filters.append(("status", "==", status))
        return self.list(filters, page, page_size, order_by="updated_at", direction="DESCENDING")

    def list_public(self, page: int = 1, page_size: int = 10, genre: Optional[str] = None) -> Dict[str, Any]:
        filters = [
            ("status", "==", StoryStatus.PUBLISHED.value),
            ("is_public", "==", True),
            ("moderation_status", "==", ModerationStatus.APPROVED.value),
        ]
        if genre:
            filters.append(("elements.genre", "==", genre))
        return self.list(filters, page, page_size, order_by="published_at", direction="DESCENDING")

    def list_by_moderation_status(self, moderation_status: str, page: int = 1, page_size: int = 10) -> Dict[str, Any]:
        return self.list(
            [("moderation_status", "==", moderation_status)],
            page,
            page_size,
            order_by="updated_at",
            direction="DESCENDING",
        )

    def increment_comment_count(self, story_id: str, amount: int = 1) -> None:
        data = self.get_by_id(story_id)
        if data is not None:
            self.update(story_id, {"comment_count": max(0, data.get("comment_count", 0) + amount)})

    def increment_view_count(self, story_id: str) -> None:
        data = self.get_by_id(story_id)
        if data is not None:
            self.get_collection().document(story_id).update({"view_count": data.get("view_count", 0) + 1})

    def delete_by_author(self, author_id: str) -> int:
        stories = self.list_all([("author_id", "==", author_id)])
        for story in stories:
            self.delete(story["id"])
        return len(stories)

"""
Comment CRUD Operations
"""

from datetime import datetime
from typing import Optional, Dict, Any, List

from app.crud.base import BaseCRUD
from app.models.comment import CommentModel


class CommentCRUD(BaseCRUD):
    """CRUD operations for mentor comments."""

    @property
    def collection_name(self) -> str:
        return "comments"

    def get_model(self, comment_id: str) -> Optional[CommentModel]:
        data = self.get_by_id(comment_id)
        return CommentModel.from_dict(data) if data else None

    def create_comment(self, comment: CommentModel) -> str:
        return self.create(comment.to_dict(), doc_id=comment.id)

    def save_model(self, comment: CommentModel) -> None:
        comment.updated_at = datetime.utcnow()
        self.save(comment.id, comment.to_dict())

    def list_for_story(self, story_id: str, include_hidden: bool = False) -> List[Dict[str, Any]]:
        """Oldest-first comments on a story; hidden ones only for staff."""
        filters = [("story_id", "==", story_id)]
        if not include_hidden:
            filters.append(("is_hidden", "==", False))
        return self.list_all(filters, order_by="created_at")

    def count_unresolved(self, story_id: str) -> int:
        return self.count([("story_id", "==", story_id), ("is_resolved", "==", False)])

    def delete_for_story(self, story_id: str) -> int:
        comments = self.list_all([("story_id", "==", story_id)])
        for comment in comments:
            self.delete(comment["id"])
        return len(comments)

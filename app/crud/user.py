"""
User CRUD Operations
Database operations for user management.
"""

from datetime import datetime
from typing import Optional, Dict, Any, List

from app.crud.base import BaseCRUD
from app.models.user import UserModel, UserRole


class UserCRUD(BaseCRUD):
    """CRUD operations for user documents."""

    @property
    def collection_name(self) -> str:
        return "users"

    def get_model(self, user_id: str) -> Optional[UserModel]:
        data = self.get_by_id(user_id)
        return UserModel.from_dict(data) if data else None

    def get_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        """
        Get user by email address.

        Args:
            email: Email to search for (case-insensitive)

        Returns:
            User document data or None if not found
        """
        return self.find_one([("email", "==", email.strip().lower())])

    def get_by_reset_token_hash(self, token_hash: str) -> Optional[Dict[str, Any]]:
        return self.find_one([("reset_password_token_hash", "==", token_hash)])

    def get_by_verification_token_hash(self, token_hash: str) -> Optional[Dict[str, Any]]:
        return self.find_one([("email_verification_token_hash", "==", token_hash)])

    def create_user(self, user: UserModel) -> str:
        """
        Create a new user.

        Args:
            user: UserModel instance

        Returns:
            Created user ID
        """
        return self.create(user.to_dict(), doc_id=user.id)

    def save_model(self, user: UserModel) -> None:
        user.updated_at = datetime.utcnow()
        self.save(user.id, user.to_dict())

    def list_by_role(self, role: str) -> List[Dict[str, Any]]:
        return self.list_all([("role", "==", role)])

    def list_by_mentor(self, mentor_id: str) -> List[Dict[str, Any]]:
        return self.list_all([("mentor_id", "==", mentor_id)])

    def touch_last_active(self, user_id: str, now: Optional[datetime] = None) -> None:
        self.update(user_id, {"last_active_at": now or datetime.utcnow()})

    def get_user_stats(self) -> Dict[str, Any]:
        """Counts by role and status for the admin dashboard."""
        users = self.list_all()
        by_role = {role.value: 0 for role in UserRole}
        by_status: Dict[str, int] = {}
        for user in users:
            role = user.get("role", UserRole.CHILD.value)
            by_role[role] = by_role.get(role, 0) + 1
            status = user.get("account_status", "active")
            by_status[status] = by_status.get(status, 0) + 1
        return {
            "total": len(users),
            "active": sum(1 for u in users if u.get("is_active", True)),
            "verified": sum(1 for u in users if u.get("email_verified")),
            "by_role": by_role,
            "by_status": by_status,
        }

"""
AI Key CRUD Operations
"""

from typing import Optional, List

from app.crud.base import BaseCRUD
from app.models.ai_keys import AIKeyModel


class AIKeyCRUD(BaseCRUD):
    """CRUD operations for encrypted provider keys."""

    @property
    def collection_name(self) -> str:
        return "ai_keys"

    def get_model(self, key_id: str) -> Optional[AIKeyModel]:
        data = self.get_by_id(key_id)
        return AIKeyModel.from_dict(data) if data else None

    def get_by_name(self, key_name: str) -> Optional[AIKeyModel]:
        data = self.find_one([("key_name", "==", key_name)])
        return AIKeyModel.from_dict(data) if data else None

    def create_key(self, key: AIKeyModel) -> str:
        return self.create(key.to_dict(), doc_id=key.id)

    def save_model(self, key: AIKeyModel) -> None:
        self.save(key.id, key.to_dict())

    def list_models(self) -> List[AIKeyModel]:
        return [AIKeyModel.from_dict(d) for d in self.list_all(order_by="priority")]

    def get_usable_keys(self, providers: Optional[List[str]] = None) -> List[AIKeyModel]:
        """Active keys under their limits, best priority first."""
        filters = [("is_active", "==", True)]
        if providers:
            filters.append(("provider", "in", providers))
        keys = [AIKeyModel.from_dict(d) for d in self.list_all(filters, order_by="priority")]
        return [key for key in keys if key.is_within_limits()]

    def reset_counters(self, daily: bool = True, monthly: bool = False) -> int:
        keys = self.list_models()
        for key in keys:
            if daily:
                key.reset_daily()
            if monthly:
                key.reset_monthly()
            self.save_model(key)
        return len(keys)

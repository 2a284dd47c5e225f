"""
Security Event CRUD Operations
"""

from datetime import datetime
from typing import Optional, Dict, Any

from app.crud.base import BaseCRUD


class SecurityEventCRUD(BaseCRUD):
    """Storage for audit events; each expires 30 days after creation."""

    @property
    def collection_name(self) -> str:
        return "security_events"

    def list_recent(
        self,
        page: int = 1,
        page_size: int = 50,
        event_type: Optional[str] = None,
        severity: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        filters = []
        if event_type:
            filters.append(("type", "==", event_type))
        if severity:
            filters.append(("severity", "==", severity))
        if user_id:
            filters.append(("user_id", "==", user_id))
        return self.list(filters, page, page_size, order_by="created_at", direction="DESCENDING")

    def count_since(self, event_type: str, since: datetime, ip: Optional[str] = None) -> int:
        filters = [("type", "==", event_type), ("created_at", ">=", since)]
        if ip:
            filters.append(("ip", "==", ip))
        return self.count(filters)

    def cleanup_expired(self, now: Optional[datetime] = None) -> int:
        expired = self.list_all([("expires_at", "<=", now or datetime.utcnow())])
        for item in expired:
            self.delete(item["id"])
        return len(expired)

"""
Base CRUD Class
Base class for Firestore-style collection operations.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import TypeVar, Generic, List, Dict, Any, Optional, Tuple

from app.utils.dates import to_naive_utc

T = TypeVar("T")

Filter = Tuple[str, str, Any]


class BaseCRUD(ABC, Generic[T]):
    """
    Base CRUD class over a Firestore client or the local JSON store.

    Both expose the same synchronous ``collection().document()`` API, so
    subclasses only declare a collection name and their domain queries.
    """

    def __init__(self, db: Any):
        """
        Initialize CRUD with a database client.

        Args:
            db: Firestore client or LocalStore instance
        """
        self.db = db

    @property
    @abstractmethod
    def collection_name(self) -> str:
        """Get collection name. Must be implemented by subclass."""
        pass

    def get_collection(self) -> Any:
        return self.db.collection(self.collection_name)

    def _query(self, filters: Optional[List[Filter]] = None) -> Any:
        query = self.get_collection()
        for field, operator, value in filters or []:
            query = query.where(field, operator, value)
        return query

    @staticmethod
    def _snapshot_to_dict(doc: Any) -> Dict[str, Any]:
        data = to_naive_utc(doc.to_dict())
        data["id"] = doc.id
        return data

    def create(self, data: Dict[str, Any], doc_id: Optional[str] = None) -> str:
        """
        Create a new document.

        Args:
            data: Document data dictionary
            doc_id: Explicit document ID, otherwise ``data["id"]`` or a new one

        Returns:
            Created document ID
        """
        data.setdefault("created_at", datetime.utcnow())
        doc_ref = self.get_collection().document(doc_id or data.get("id"))
        data["id"] = doc_ref.id
        doc_ref.set(data)
        return doc_ref.id

    def get_by_id(self, doc_id: str) -> Optional[Dict[str, Any]]:
        """
        Get document by ID.

        Args:
            doc_id: Document ID

        Returns:
            Document data or None if not found
        """
        doc = self.get_collection().document(doc_id).get()
        if doc.exists:
            return self._snapshot_to_dict(doc)
        return None

    def find_one(self, filters: List[Filter]) -> Optional[Dict[str, Any]]:
        docs = self._query(filters).limit(1).get()
        return self._snapshot_to_dict(docs[0]) if docs else None

    def update(self, doc_id: str, data: Dict[str, Any]) -> bool:
        """
        Update a document.

        Args:
            doc_id: Document ID
            data: Fields to update

        Returns:
            True if successful, False if document not found
        """
        doc_ref = self.get_collection().document(doc_id)
        if not doc_ref.get().exists:
            return False
        data["updated_at"] = datetime.utcnow()
        doc_ref.update(data)
        return True

    def save(self, doc_id: str, data: Dict[str, Any]) -> None:
        """Overwrite a whole document."""
        data["updated_at"] = datetime.utcnow()
        self.get_collection().document(doc_id).set(data)

    def delete(self, doc_id: str) -> bool:
        """
        Delete a document.

        Args:
            doc_id: Document ID

        Returns:
            True if deleted, False if not found
        """
        doc_ref = self.get_collection().document(doc_id)
        if not doc_ref.get().exists:
            return False
        doc_ref.delete()
        return True

    def list(
        self,
        filters: Optional[List[Filter]] = None,
        page: int = 1,
        page_size: int = 10,
        order_by: Optional[str] = None,
        direction: str = "ASCENDING"
    ) -> Dict[str, Any]:
        """
        List documents with filtering and pagination.

        Args:
            filters: List of (field, operator, value) tuples for filtering
            page: Page number (1-indexed)
            page_size: Items per page
            order_by: Field to order results by
            direction: Sort direction (ASCENDING or DESCENDING)

        Returns:
            Dictionary with items, total count, pagination info
        """
        query = self._query(filters)
        total = len(query.get())

        if order_by:
            direction_enum = "DESCENDING" if direction == "DESCENDING" else "ASCENDING"
            query = query.order_by(order_by, direction=direction_enum)

        offset = (page - 1) * page_size
        docs = query.offset(offset).limit(page_size).get()

        return {
            "items": [self._snapshot_to_dict(doc) for doc in docs],
            "total": total,
            "page": page,
            "page_size": page_size,
            "has_more": (page * page_size) < total
        }

    def list_all(
        self,
        filters: Optional[List[Filter]] = None,
        order_by: Optional[str] = None,
        direction: str = "ASCENDING",
    ) -> List[Dict[str, Any]]:
        query = self._query(filters)
        if order_by:
            query = query.order_by(order_by, direction=direction)
        return [self._snapshot_to_dict(doc) for doc in query.get()]

    def count(self, filters: Optional[List[Filter]] = None) -> int:
        """
        Count documents matching filters.

        Args:
            filters: List of (field, operator, value) tuples for filtering

        Returns:
            Count of matching documents
        """
        return len(self._query(filters).get())

    def exists(self, doc_id: str) -> bool:
        return self.get_collection().document(doc_id).get().exists

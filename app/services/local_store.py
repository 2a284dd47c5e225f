"""
File-backed data store that persists across process restarts.
Replaces Firestore with a JSON-file-backed dict store.
Used when no Firebase credentials are found.
"""

import copy
import json
import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from app.config import get_settings
from app.utils.logger import get_logger

logger = get_logger(__name__)

_DATETIME_TAG = "__datetime__"


def _json_serial(obj):
    """JSON serializer for objects not serializable by default."""
    if isinstance(obj, datetime):
        return {_DATETIME_TAG: obj.isoformat()}
    raise TypeError(f"Type {type(obj)} not serializable")


def _json_revive(obj: dict):
    if len(obj) == 1 and _DATETIME_TAG in obj:
        return datetime.fromisoformat(obj[_DATETIME_TAG])
    return obj


def _field_value(doc: dict, path: str):
    """Resolve a dotted field path like Firestore does."""
    value: Any = doc
    for part in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def _sort_key(field: str):
    # None sorts last regardless of value type
    def key(doc: dict):
        value = _field_value(doc, field)
        return (value is None, value if value is not None else 0)
    return key


def _matches(doc_val: Any, op: str, value: Any) -> bool:
    if op == "array_contains":
        return isinstance(doc_val, list) and value in doc_val
    if op == "in":
        return doc_val in value
    if op == "==":
        return doc_val == value
    if op == "!=":
        return doc_val != value
    try:
        if op == ">=":
            return doc_val >= value
        if op == "<=":
            return doc_val <= value
        if op == ">":
            return doc_val > value
        if op == "<":
            return doc_val < value
    except TypeError:
        return False
    raise ValueError(f"Unsupported query operator: {op}")


class LocalStore:
    """File-backed data store that mimics Firestore operations."""

    def __init__(self, data_dir: Optional[str] = None):
        self.collections: Dict[str, Dict[str, dict]] = {}
        self._lock = threading.Lock()

        self._data_dir = Path(data_dir or get_settings().data_dir)
        self._data_dir.mkdir(parents=True, exist_ok=True)

        self._load_data()

    def _load_data(self):
        """Load every persisted collection from the data dir."""
        for path in sorted(self._data_dir.glob("*.json")):
            with open(path, encoding="utf-8") as f:
                items = json.load(f, object_hook=_json_revive)
            self.collections[path.stem] = {
                item.get("id", str(uuid.uuid4())): item for item in items
            }
        logger.info(
            "LocalStore loaded %d collections from %s",
            len(self.collections), self._data_dir,
        )

    def _persist_collection(self, name: str):
        """Write a collection to disk as JSON."""
        path = self._data_dir / f"{name}.json"
        items = list(self.collections.get(name, {}).values())
        tmp_path = path.with_suffix(".json.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(items, f, indent=2, default=_json_serial, ensure_ascii=False)
        tmp_path.replace(path)

    def _persist(self, collection_name: str):
        """Persist after a write; a failed write is logged, the in-memory copy stays."""
        try:
            self._persist_collection(collection_name)
        except OSError as e:
            logger.error("Failed to persist collection %s: %s", collection_name, e)

    def collection(self, name: str) -> "CollectionRef":
        with self._lock:
            if name not in self.collections:
                self.collections[name] = {}
        return CollectionRef(self, name)

    def clear(self):
        """Drop all collections from memory and disk."""
        with self._lock:
            for name in list(self.collections):
                path = self._data_dir / f"{name}.json"
                if path.exists():
                    path.unlink()
            self.collections.clear()


class CollectionRef:
    """Mimics Firestore collection reference."""

    def __init__(self, store: LocalStore, name: str):
        self._store = store
        self._data = store.collections[name]
        self._name = name
        self._filters = []
        self._order_by = None
        self._offset_val = 0
        self._limit_val = None

    def _copy(self, **changes) -> "CollectionRef":
        new_ref = CollectionRef(self._store, self._name)
        new_ref._filters = list(self._filters)
        new_ref._order_by = self._order_by
        new_ref._offset_val = self._offset_val
        new_ref._limit_val = self._limit_val
        for attr, value in changes.items():
            setattr(new_ref, attr, value)
        return new_ref

    @property
    def id(self) -> str:
        return self._name

    def document(self, doc_id: Optional[str] = None) -> "DocumentRef":
        return DocumentRef(self._store, self._data, self._name, doc_id or str(uuid.uuid4()))

    def where(self, field: str, op: str, value) -> "CollectionRef":
        return self._copy(_filters=self._filters + [(field, op, value)])

    def order_by(self, field: str, direction: str = "ASCENDING") -> "CollectionRef":
        return self._copy(_order_by=(field, direction))

    def offset(self, count: int) -> "CollectionRef":
        return self._copy(_offset_val=count)

    def limit(self, count: int) -> "CollectionRef":
        return self._copy(_limit_val=count)

    def get(self) -> List["DocumentSnapshot"]:
        with self._store._lock:
            results = list(self._data.values())

        for field, op, value in self._filters:
            results = [
                doc for doc in results
                if _field_value(doc, field) is not None and _matches(_field_value(doc, field), op, value)
            ]

        if self._order_by:
            field, direction = self._order_by
            results.sort(key=_sort_key(field), reverse=direction == "DESCENDING")

        if self._offset_val:
            results = results[self._offset_val:]
        if self._limit_val:
            results = results[: self._limit_val]

        return [DocumentSnapshot(doc.get("id", ""), copy.deepcopy(doc)) for doc in results]

    def stream(self):
        return iter(self.get())

    def add(self, data: dict) -> "DocumentRef":
        doc_id = data.get("id") or str(uuid.uuid4())
        ref = self.document(doc_id)
        ref.set(data)
        return ref


class DocumentRef:
    """Mimics Firestore document reference."""

    def __init__(self, store: LocalStore, collection_data: dict, collection_name: str, doc_id: str):
        self._store = store
        self._data = collection_data
        self._name = collection_name
        self._id = doc_id

    @property
    def id(self):
        return self._id

    def get(self) -> "DocumentSnapshot":
        with self._store._lock:
            doc = self._data.get(self._id)
            return DocumentSnapshot(self._id, copy.deepcopy(doc) if doc is not None else None)

    def set(self, data: dict, merge: bool = False):
        with self._store._lock:
            if merge and self._id in self._data:
                self._data[self._id].update(copy.deepcopy(data))
            else:
                stored = copy.deepcopy(data)
                stored["id"] = self._id
                self._data[self._id] = stored
            self._store._persist(self._name)

    def update(self, data: dict):
        with self._store._lock:
            if self._id not in self._data:
                raise KeyError(f"No document to update: {self._name}/{self._id}")
            self._data[self._id].update(copy.deepcopy(data))
            self._store._persist(self._name)

    def delete(self):
        with self._store._lock:
            self._data.pop(self._id, None)
            self._store._persist(self._name)


class DocumentSnapshot:
    """Mimics Firestore document snapshot."""

    def __init__(self, doc_id: str, data: Optional[dict]):
        self.id = doc_id
        self._data = data

    @property
    def exists(self) -> bool:
        return self._data is not None

    def to_dict(self) -> Optional[dict]:
        return self._data

    def get(self, field: str, default=None):
        if self._data is None:
            return default
        return self._data.get(field, default)


# ── Singleton ────────────────────────────────────────────────────

_local_store: Optional[LocalStore] = None


def get_local_store() -> LocalStore:
    """Get or create the singleton LocalStore instance."""
    global _local_store
    if _local_store is None:
        _local_store = LocalStore()
    return _local_store

"""Document store contract and in-memory implementation.

The pipeline never talks to a database directly. It reads and writes
documents (plain dicts) through ``DocumentStore``. The store offers
cursor-style streaming reads, point reads, bulk deletes, and bulk and point
writes.

``InMemoryDocumentStore`` is the default backend. It is thread-safe and is
what the tests and scripts run against.
"""

import copy
import logging
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Dict, Iterable, Iterator, List, Optional

from akin.recommender.exceptions import StorageError

# Configure module logger
logger = logging.getLogger(__name__)

# Collection names
USER_ACTIVITY = "user_activity"
USER_ITEM_WEIGHTS = "user_item_weights"
USER_SIMILARITIES = "user_similarities"
USER_RECOMMENDATIONS = "user_recommendations"
USER_DO_NOT_RECOMMEND = "user_do_not_recommend"
USER_ACTIVITY_IGNORED = "user_activity_ignored"
USER_ACTIVITY_ITEMS = "user_activity_items"

ALL_COLLECTIONS = (
    USER_ACTIVITY,
    USER_ITEM_WEIGHTS,
    USER_SIMILARITIES,
    USER_RECOMMENDATIONS,
    USER_DO_NOT_RECOMMEND,
    USER_ACTIVITY_IGNORED,
    USER_ACTIVITY_ITEMS,
)


class DocumentStore(ABC):
    """Storage collaborator used by every pipeline stage.

    Implementations raise StorageError for any failed read or write.
    Streams are lazy, finite, single-pass and not restartable.
    """

    @abstractmethod
    def stream_by_user(self, collection: str, user_id: Any) -> Iterator[Dict]:
        """Yield every document of ``collection`` whose ``user`` is user_id."""

    @abstractmethod
    def stream_by_index(
        self, collection: str, field: str, values: Iterable[Any]
    ) -> Iterator[Dict]:
        """Yield documents whose ``field`` matches any of ``values``.

        ``field`` may be a dotted path that walks through lists, such as
        ``item_weights.item``. A list-valued field matches when any of its
        elements is in ``values``.
        """

    @abstractmethod
    def find_one(self, collection: str, key: Dict[str, Any]) -> Optional[Dict]:
        """Return the first document matching every key field, or None."""

    @abstractmethod
    def insert_one(self, collection: str, row: Dict) -> None:
        """Append one document."""

    @abstractmethod
    def bulk_insert(self, collection: str, rows: List[Dict]) -> None:
        """Append many documents."""

    @abstractmethod
    def replace_one(
        self, collection: str, key: Dict[str, Any], row: Dict, upsert: bool = True
    ) -> None:
        """Replace the first document matching ``key``, inserting if asked."""

    @abstractmethod
    def delete_all(self, collection: str) -> None:
        """Remove every document from ``collection``."""

    @abstractmethod
    def delete_many(self, collection: str, key: Dict[str, Any]) -> int:
        """Remove documents matching ``key`` and return how many went."""

    @abstractmethod
    def distinct_values(
        self, collection: str, field: str, excluding: Iterable[Any] = ()
    ) -> List[Any]:
        """Return the distinct values of ``field``, minus ``excluding``."""

    def count(self, collection: str) -> int:
        return sum(1 for _ in self.stream_all(collection))

    @abstractmethod
    def stream_all(self, collection: str) -> Iterator[Dict]:
        """Yield every document of ``collection``."""


def field_values(document: Dict, path: str) -> List[Any]:
    """Resolve a dotted path against a document, flattening lists.

    Example:
        >>> field_values({"item_weights": [{"item": "a"}, {"item": "b"}]},
        ...              "item_weights.item")
        ['a', 'b']
    """
    current: List[Any] = [document]
    for part in path.split("."):
        next_values: List[Any] = []
        for value in current:
            if isinstance(value, dict) and part in value:
                found = value[part]
                if isinstance(found, list):
                    next_values.extend(found)
                else:
                    next_values.append(found)
        current = next_values
    return current


def _matches(document: Dict, key: Dict[str, Any]) -> bool:
    for field, expected in key.items():
        if expected not in field_values(document, field):
            return False
    return True


class InMemoryDocumentStore(DocumentStore):
    """Thread-safe, dict-backed document store.

    Every read hands out deep copies, so callers can never mutate stored
    documents. Streams iterate over the collection as it was when the stream
    was opened, one document at a time.
    """

    def __init__(self, collections: Optional[Dict[str, List[Dict]]] = None):
        self._lock = threading.RLock()
        self._collections: Dict[str, List[Dict]] = defaultdict(list)
        for name, rows in (collections or {}).items():
            self._collections[name] = [copy.deepcopy(row) for row in rows]

    def _snapshot(self, collection: str) -> List[Dict]:
        with self._lock:
            return list(self._collections[collection])

    def stream_all(self, collection: str) -> Iterator[Dict]:
        for row in self._snapshot(collection):
            yield copy.deepcopy(row)

    def stream_by_user(self, collection: str, user_id: Any) -> Iterator[Dict]:
        for row in self._snapshot(collection):
            if row.get("user") == user_id:
                yield copy.deepcopy(row)

    def stream_by_index(
        self, collection: str, field: str, values: Iterable[Any]
    ) -> Iterator[Dict]:
        wanted = set(values)
        if not wanted:
            return
        for row in self._snapshot(collection):
            if any(value in wanted for value in field_values(row, field)):
                yield copy.deepcopy(row)

    def find_one(self, collection: str, key: Dict[str, Any]) -> Optional[Dict]:
        with self._lock:
            for row in self._collections[collection]:
                if _matches(row, key):
                    return copy.deepcopy(row)
        return None

    def insert_one(self, collection: str, row: Dict) -> None:
        with self._lock:
            self._collections[collection].append(copy.deepcopy(row))

    def bulk_insert(self, collection: str, rows: List[Dict]) -> None:
        copies = [copy.deepcopy(row) for row in rows]
        with self._lock:
            self._collections[collection].extend(copies)

    def replace_one(
        self, collection: str, key: Dict[str, Any], row: Dict, upsert: bool = True
    ) -> None:
        with self._lock:
            rows = self._collections[collection]
            for idx, existing in enumerate(rows):
                if _matches(existing, key):
                    rows[idx] = copy.deepcopy(row)
                    return
            if not upsert:
                raise StorageError(
                    f"No document in {collection} matches {key}",
                    collection=collection,
                )
            rows.append(copy.deepcopy(row))

    def delete_all(self, collection: str) -> None:
        with self._lock:
            removed = len(self._collections[collection])
            self._collections[collection] = []
        logger.debug(f"Dropped {removed} documents from {collection}")

    def delete_many(self, collection: str, key: Dict[str, Any]) -> int:
        with self._lock:
            rows = self._collections[collection]
            kept = [row for row in rows if not _matches(row, key)]
            removed = len(rows) - len(kept)
            self._collections[collection] = kept
        return removed

    def distinct_values(
        self, collection: str, field: str, excluding: Iterable[Any] = ()
    ) -> List[Any]:
        excluded = set(excluding)
        seen: Dict[Any, None] = {}
        for row in self._snapshot(collection):
            for value in field_values(row, field):
                if value not in excluded:
                    seen.setdefault(value, None)
        return list(seen)

    def count(self, collection: str) -> int:
        with self._lock:
            return len(self._collections[collection])

    def dump(self) -> Dict[str, List[Dict]]:
        """Return a deep copy of every collection, for snapshots."""
        with self._lock:
            return {
                name: copy.deepcopy(rows)
                for name, rows in self._collections.items()
            }

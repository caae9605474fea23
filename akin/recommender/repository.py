"""Shared queries over the document store.

Thin helpers used by more than one stage: user enumeration with the ignore
list applied, per-user point reads, and collection drops. Unexpected store
failures are converted to StorageError here so stages only ever see Akin
exceptions.
"""

import logging
from typing import Any, Dict, List

from akin.recommender.exceptions import NotFoundError, StorageError
from akin.recommender.store import (
    USER_ACTIVITY,
    USER_ACTIVITY_IGNORED,
    DocumentStore,
)

# Configure module logger
logger = logging.getLogger(__name__)


def get_ignored_user_ids(store: DocumentStore) -> List[Any]:
    """Return the IDs of every user on the ignore list."""
    try:
        return store.distinct_values(USER_ACTIVITY_IGNORED, "user")
    except StorageError:
        raise
    except Exception as e:
        raise StorageError(
            "Failed to read ignored users", collection=USER_ACTIVITY_IGNORED, error=e
        ) from e


def get_all_user_ids_with_activity(store: DocumentStore) -> List[Any]:
    """Return every non-ignored user with at least one activity row.

    The ignore list is read once, before enumeration. IDs come back sorted
    by their string form so runs are reproducible.
    """
    ignored = get_ignored_user_ids(store)
    try:
        user_ids = store.distinct_values(USER_ACTIVITY, "user", excluding=ignored)
    except StorageError:
        raise
    except Exception as e:
        raise StorageError(
            "Failed to enumerate users", collection=USER_ACTIVITY, error=e
        ) from e

    logger.debug(
        f"Found {len(user_ids)} users with activity ({len(ignored)} ignored)",
        extra={"num_users": len(user_ids), "num_ignored": len(ignored)},
    )
    return sorted(user_ids, key=str)


def find_user_row(store: DocumentStore, collection: str, user_id: Any) -> Dict:
    """Return the single row of ``collection`` that belongs to ``user_id``.

    Raises:
        NotFoundError: If the user has no row.
        StorageError: If the read fails.
    """
    try:
        row = store.find_one(collection, {"user": user_id})
    except StorageError:
        raise
    except Exception as e:
        raise StorageError(
            f"Failed to read {collection} for user {user_id}",
            collection=collection,
            error=e,
        ) from e
    if row is None:
        raise NotFoundError(collection, user_id)
    return row


def drop_collection(store: DocumentStore, collection: str) -> None:
    """Remove every row of ``collection`` before it is rebuilt.

    The drop and the rebuild are not one transaction. Readers that query
    the collection during a run can see it partially rebuilt.
    """
    try:
        store.delete_all(collection)
    except StorageError:
        raise
    except Exception as e:
        raise StorageError(
            f"Failed to drop {collection}", collection=collection, error=e
        ) from e
    logger.info(f"Dropped collection {collection}", extra={"collection": collection})

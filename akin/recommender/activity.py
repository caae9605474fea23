"""Activity logging and per-user item weight aggregation.

This is the first batch stage. It folds each user's raw activity stream
through the decay model into a sparse item-weight vector plus its L2 norm
(the "row weight") and persists one ``user_item_weights`` row per user.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import numpy as np

from akin.recommender.config import EngineConfig
from akin.recommender.decay import activity_weight, days_old
from akin.recommender.pool import run_for_users
from akin.recommender.repository import drop_collection, get_all_user_ids_with_activity
from akin.recommender.store import (
    USER_ACTIVITY,
    USER_ACTIVITY_ITEMS,
    USER_ITEM_WEIGHTS,
    DocumentStore,
)

# Configure module logger
logger = logging.getLogger(__name__)

STAGE_NAME = "activity"


def log_activity(
    store: DocumentStore,
    user_id: Any,
    item_id: Any,
    item_metadata: Any,
    action: str,
    occurred_at: Optional[datetime] = None,
) -> Dict:
    """Append one raw activity row.

    Args:
        store: Document store to write to.
        user_id: A unique identifier for the user.
        item_id: A unique identifier for the item.
        item_metadata: Metadata about the item, carried through to weights
            and recommendations unchanged.
        action: The action the user took on the item.
        occurred_at: When the action happened. Defaults to now (UTC).

    Returns:
        The stored activity document.
    """
    row = {
        "user": user_id,
        "item": item_id,
        "item_metadata": item_metadata,
        "action": action,
        "occurred_at": occurred_at or datetime.now(timezone.utc),
    }
    store.insert_one(USER_ACTIVITY, row)
    logger.debug(
        "Logged activity",
        extra={"user_id": user_id, "item_id": item_id, "action": action},
    )
    return row


def remove_activity(store: DocumentStore, user_id: Any, item_id: Any, action: str) -> int:
    """Delete every activity row matching user, item and action."""
    removed = store.delete_many(
        USER_ACTIVITY, {"user": user_id, "item": item_id, "action": action}
    )
    logger.debug(
        f"Removed {removed} activity rows",
        extra={"user_id": user_id, "item_id": item_id, "action": action},
    )
    return removed


def add_activity_item(store: DocumentStore, item_id: Any, item_metadata: Any = None) -> Dict:
    """Register an item in the activity item catalog.

    The catalog is keyed by item. Adding an item again replaces its
    metadata. The pipeline does not read the catalog.
    """
    row = {"item": item_id, "item_metadata": item_metadata}
    store.replace_one(USER_ACTIVITY_ITEMS, {"item": item_id}, row)
    logger.debug("Registered activity item", extra={"item_id": item_id})
    return row


def remove_activity_item(store: DocumentStore, item_id: Any) -> int:
    return store.delete_many(USER_ACTIVITY_ITEMS, {"item": item_id})


def get_activity_items(store: DocumentStore) -> List[Dict]:
    return list(store.stream_all(USER_ACTIVITY_ITEMS))


def calculate_row_weight(item_weights: List[Dict]) -> float:
    """Return the L2 norm of the weights in an item-weight list."""
    weights = np.array([entry["weight"] for entry in item_weights], dtype=np.float64)
    return float(np.linalg.norm(weights))


def fold_activity(
    activities: Iterable[Dict],
    config: EngineConfig,
    now: datetime,
) -> Dict[Any, Dict]:
    """Accumulate decayed activity weights per item.

    The first activity seen for an item seeds its metadata. Weights for
    repeated activity on the same item add up.
    """
    item_map: Dict[Any, Dict] = {}
    for activity in activities:
        item_id = activity["item"]
        if item_id not in item_map:
            item_map[item_id] = {
                "item": item_id,
                "item_metadata": activity.get("item_metadata"),
                "weight": 0.0,
            }
        age = days_old(activity["occurred_at"], now)
        item_map[item_id]["weight"] += activity_weight(
            activity.get("action"), age, config.decay, config.action_weights
        )
    return item_map


def calculate_user_item_weights(
    user_id: Any,
    activities: Iterable[Dict],
    config: EngineConfig,
    now: datetime,
) -> Dict:
    """Build the ``user_item_weights`` document for one user."""
    item_weights = list(fold_activity(activities, config, now).values())
    return {
        "user": user_id,
        "item_weights": item_weights,
        "row_weight": calculate_row_weight(item_weights),
    }


def recalculate_user_item_weights(
    store: DocumentStore,
    config: EngineConfig,
    now: Optional[datetime] = None,
) -> int:
    """Drop and rebuild every user's item weights.

    Args:
        store: Document store holding the activity log.
        config: Run configuration. Decay and action weights are read from it.
        now: Reference time for ages. Defaults to the current UTC time and
            is fixed for the whole run.

    Returns:
        Number of users whose weights were written.

    Raises:
        StorageError: If any user's activity stream or write failed.
    """
    now = now or datetime.now(timezone.utc)
    start_time = time.time()
    logger.info("Recalculating user item weights", extra={"stage": STAGE_NAME})

    drop_collection(store, USER_ITEM_WEIGHTS)
    user_ids = get_all_user_ids_with_activity(store)

    def process_user(user_id: Any) -> int:
        activities = store.stream_by_user(USER_ACTIVITY, user_id)
        row = calculate_user_item_weights(user_id, activities, config, now)
        store.insert_one(USER_ITEM_WEIGHTS, row)
        return len(row["item_weights"])

    results = run_for_users(STAGE_NAME, user_ids, process_user, config.concurrency)

    logger.info(
        "User item weights recalculated",
        extra={
            "stage": STAGE_NAME,
            "num_users": len(results),
            "num_item_weights": sum(results.values()),
            "duration_ms": round((time.time() - start_time) * 1000, 2),
        },
    )
    return len(results)

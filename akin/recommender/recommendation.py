"""Similarity-weighted recommendation aggregation.

This is the third batch stage. For each user it streams the item weights of
every sufficiently similar neighbour and adds ``weight * similarity`` per
item. Every eligible user gets exactly one ``user_recommendations`` row.
The row is still written when its list is empty.

Items the user already holds are not excluded here. Filtering them is left
to the serving layer.
"""

import logging
import time
from typing import Any, Dict, Iterable, List

from akin.recommender.config import EngineConfig
from akin.recommender.pool import run_for_users
from akin.recommender.repository import drop_collection, get_all_user_ids_with_activity
from akin.recommender.store import (
    USER_DO_NOT_RECOMMEND,
    USER_ITEM_WEIGHTS,
    USER_RECOMMENDATIONS,
    USER_SIMILARITIES,
    DocumentStore,
)

# Configure module logger
logger = logging.getLogger(__name__)

STAGE_NAME = "recommendation"


def get_similarities_for_user(
    store: DocumentStore, user_id: Any, threshold: float
) -> List[Dict]:
    """Return similarity rows involving ``user_id`` above ``threshold``."""
    return [
        row
        for row in store.stream_by_index(USER_SIMILARITIES, "users", [user_id])
        if row["similarity"] > threshold
    ]


def resolve_neighbours(user_id: Any, similarity_rows: Iterable[Dict]) -> Dict[Any, float]:
    """Map each similarity row to the other user in the pair.

    Pair members are compared by string form, matching the pair key.
    """
    user_key = str(user_id)
    neighbours: Dict[Any, float] = {}
    for row in similarity_rows:
        first, second = row["users"]
        other = second if str(first) == user_key else first
        if str(other) == user_key:
            continue
        neighbours[other] = row["similarity"]
    return neighbours


def aggregate_recommendations(
    neighbour_rows: Iterable[Dict],
    neighbours: Dict[Any, float],
) -> Dict[Any, Dict]:
    """Accumulate similarity-weighted item weights over neighbour rows."""
    items: Dict[Any, Dict] = {}
    for neighbour_row in neighbour_rows:
        similarity = neighbours.get(neighbour_row["user"])
        if similarity is None:
            continue
        for entry in neighbour_row.get("item_weights", []):
            item_id = entry["item"]
            if item_id not in items:
                items[item_id] = {
                    "item": item_id,
                    "item_metadata": entry.get("item_metadata"),
                    "weight": 0.0,
                }
            items[item_id]["weight"] += entry["weight"] * similarity
    return items


def calculate_user_recommendations(
    store: DocumentStore, user_id: Any, threshold: float
) -> Dict:
    """Build the ``user_recommendations`` document for one user."""
    neighbours = resolve_neighbours(
        user_id, get_similarities_for_user(store, user_id, threshold)
    )

    items: Dict[Any, Dict] = {}
    if neighbours:
        neighbour_rows = store.stream_by_index(USER_ITEM_WEIGHTS, "user", list(neighbours))
        items = aggregate_recommendations(neighbour_rows, neighbours)

    recommendations = [entry for entry in items.values() if entry["weight"] > 0]
    return {"user": user_id, "recommendations": recommendations}


def recalculate_user_recommendations(store: DocumentStore, config: EngineConfig) -> int:
    """Drop and rebuild every user's recommendations.

    Args:
        store: Document store holding weights and similarities.
        config: Run configuration. Concurrency and the similarity threshold
            are read from it.

    Returns:
        Number of recommendation rows written.

    Raises:
        StorageError: If any user's stream or write failed.
    """
    start_time = time.time()
    logger.info("Recalculating user recommendations", extra={"stage": STAGE_NAME})

    drop_collection(store, USER_RECOMMENDATIONS)
    user_ids = get_all_user_ids_with_activity(store)

    def process_user(user_id: Any) -> int:
        row = calculate_user_recommendations(store, user_id, config.similarity_threshold)
        store.insert_one(USER_RECOMMENDATIONS, row)
        return len(row["recommendations"])

    results = run_for_users(STAGE_NAME, user_ids, process_user, config.concurrency)

    logger.info(
        "User recommendations recalculated",
        extra={
            "stage": STAGE_NAME,
            "num_users": len(results),
            "num_recommendations": sum(results.values()),
            "duration_ms": round((time.time() - start_time) * 1000, 2),
        },
    )
    return len(results)


def mark_do_not_recommend(
    store: DocumentStore, user_id: Any, item_id: Any, item_metadata: Any
) -> Dict:
    """Add an item to the user's do-not-recommend list.

    Adding an item that is already on the list changes nothing.

    Returns:
        The user's do-not-recommend document after the update.
    """
    existing = store.find_one(USER_DO_NOT_RECOMMEND, {"user": user_id})
    if existing is None:
        existing = {"user": user_id, "do_not_recommend": []}

    if all(entry["item"] != item_id for entry in existing["do_not_recommend"]):
        existing["do_not_recommend"].append(
            {"item": item_id, "item_metadata": item_metadata}
        )
        store.replace_one(USER_DO_NOT_RECOMMEND, {"user": user_id}, existing)
        logger.info(
            "Marked item as do-not-recommend",
            extra={"user_id": user_id, "item_id": item_id},
        )

    return existing

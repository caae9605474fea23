"""User-user cosine similarity over the sparse item-weight matrix.

This is the second batch stage. For every user it streams only the other
users that share at least one item, and computes the cosine similarity of
each pair exactly once.

Workers process both directions of a pair concurrently. They coordinate
through ``ClaimedPairs``, the only state shared between workers. Claiming a
pair key is a single atomic check-and-set, and only the worker that won the
claim computes and persists that pair.
"""

import logging
import threading
import time
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from akin.recommender.config import EngineConfig
from akin.recommender.exceptions import NotFoundError
from akin.recommender.pool import run_for_users
from akin.recommender.repository import (
    drop_collection,
    find_user_row,
    get_all_user_ids_with_activity,
)
from akin.recommender.store import USER_ITEM_WEIGHTS, USER_SIMILARITIES, DocumentStore

# Configure module logger
logger = logging.getLogger(__name__)

STAGE_NAME = "similarity"

PairKey = Tuple[str, str]


def get_user_similarity_key(user1: Any, user2: Any) -> PairKey:
    """Return the same key for a pair of users regardless of their order."""
    first, second = str(user1), str(user2)
    return (first, second) if first <= second else (second, first)


class ClaimedPairs:
    """Set of pair keys already taken by some worker during one run."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._claimed: Set[PairKey] = set()

    def claim(self, key: PairKey) -> bool:
        """Claim ``key``. Returns False if it was already claimed."""
        with self._lock:
            if key in self._claimed:
                return False
            self._claimed.add(key)
            return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._claimed)


def _weights_by_item(row: Dict) -> Dict[Any, float]:
    return {entry["item"]: entry["weight"] for entry in row.get("item_weights", [])}


def cosine_similarity(
    user1_items: Dict[Any, float],
    row_weight1: float,
    user2_items: Dict[Any, float],
    row_weight2: float,
) -> float:
    """Cosine similarity of two sparse item-weight vectors.

    Only items present in both vectors contribute to the dot product.
    Returns 0.0 when either row weight is zero.
    """
    if not row_weight1 or not row_weight2:
        return 0.0

    # fixed summation order keeps the result identical in both directions
    shared_items = sorted(user1_items.keys() & user2_items.keys(), key=str)

    matrix_sum = 0.0
    for item_id in shared_items:
        matrix_sum += user1_items[item_id] * user2_items[item_id]

    similarity = matrix_sum / (row_weight1 * row_weight2)
    return max(-1.0, min(1.0, similarity))


def calculate_user_similarities(
    user_id: Any,
    user_row: Optional[Dict],
    candidates: Iterable[Dict],
    claimed_pairs: ClaimedPairs,
) -> List[Dict]:
    """Compute similarity rows for every unclaimed pair involving ``user_id``.

    Args:
        user_id: The user whose neighbours are being scored.
        user_row: That user's ``user_item_weights`` row, or None.
        candidates: Stream of other users' weight rows that overlap on at
            least one item.
        claimed_pairs: Pair keys claimed so far in this run.

    Returns:
        One ``{"users": [user_id, other], "similarity": s}`` row per pair
        claimed by this call.
    """
    user_row = user_row or {}
    user_items = _weights_by_item(user_row)
    row_weight = user_row.get("row_weight", 0.0)

    similarities: List[Dict] = []
    for other_row in candidates:
        other_user = other_row["user"]
        if other_user == user_id:
            continue

        if not claimed_pairs.claim(get_user_similarity_key(user_id, other_user)):
            continue

        similarity = cosine_similarity(
            user_items,
            row_weight,
            _weights_by_item(other_row),
            other_row.get("row_weight", 0.0),
        )
        similarities.append({"users": [user_id, other_user], "similarity": similarity})

    return similarities


def recalculate_user_similarities(store: DocumentStore, config: EngineConfig) -> int:
    """Drop and rebuild every user-user similarity.

    Args:
        store: Document store holding ``user_item_weights``.
        config: Run configuration. Only concurrency is read from it.

    Returns:
        Number of similarity rows written.

    Raises:
        StorageError: If any user's stream or write failed.
    """
    start_time = time.time()
    logger.info("Recalculating user similarities", extra={"stage": STAGE_NAME})

    drop_collection(store, USER_SIMILARITIES)
    user_ids = get_all_user_ids_with_activity(store)
    claimed_pairs = ClaimedPairs()

    def process_user(user_id: Any) -> int:
        try:
            user_row: Optional[Dict] = find_user_row(store, USER_ITEM_WEIGHTS, user_id)
        except NotFoundError:
            user_row = None

        item_ids = [entry["item"] for entry in (user_row or {}).get("item_weights", [])]
        candidates = store.stream_by_index(USER_ITEM_WEIGHTS, "item_weights.item", item_ids)
        similarities = calculate_user_similarities(user_id, user_row, candidates, claimed_pairs)

        if similarities:
            store.bulk_insert(USER_SIMILARITIES, similarities)
        logger.debug(
            f"Found {len(similarities)} new similar users for {user_id}",
            extra={"user_id": user_id, "num_similarities": len(similarities)},
        )
        return len(similarities)

    results = run_for_users(STAGE_NAME, user_ids, process_user, config.concurrency)
    total = sum(results.values())

    logger.info(
        "User similarities recalculated",
        extra={
            "stage": STAGE_NAME,
            "num_users": len(results),
            "num_similarities": total,
            "duration_ms": round((time.time() - start_time) * 1000, 2),
        },
    )
    return total

"""Serve-time weighted sampling of a user's recommendations.

Sampling reads only. It never fails because a row is missing: absent
recommendations, weights or suppression lists are treated as empty, and the
result may simply be an empty list.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Sequence, Set, Union

import numpy as np
from sklearn.utils import check_random_state

from akin.recommender.config import EngineConfig, SampleConfig
from akin.recommender.exceptions import NotFoundError
from akin.recommender.repository import find_user_row
from akin.recommender.store import (
    USER_DO_NOT_RECOMMEND,
    USER_ITEM_WEIGHTS,
    USER_RECOMMENDATIONS,
    DocumentStore,
)

# Configure module logger
logger = logging.getLogger(__name__)

RandomState = Union[None, int, np.random.RandomState]


def get_samples(
    collection: Sequence[Dict],
    sample_size: int = 1,
    random_state: RandomState = None,
) -> List[Dict]:
    """Draw distinct elements with probability proportional to ``weight``.

    Uses one exponential key per element, ``-ln(U) / weight``, and keeps the
    smallest keys. This matches drawing one element at a time from the
    renormalised remaining weights. Elements with zero weight get an
    infinite key, so they are only drawn once every positive-weight element
    has been taken.

    Args:
        collection: Elements carrying a numeric ``weight``.
        sample_size: Number of elements wanted.
        random_state: Seed or RandomState for reproducible draws.

    Returns:
        ``min(sample_size, len(collection))`` distinct elements in draw order.
    """
    n_samples = min(len(collection), max(0, sample_size))
    if n_samples == 0:
        return []

    rng = check_random_state(random_state)
    weights = np.array([max(0.0, float(el["weight"])) for el in collection])

    uniforms = rng.uniform(low=np.finfo(float).tiny, high=1.0, size=len(collection))
    with np.errstate(divide="ignore"):
        keys = np.where(weights > 0, -np.log(uniforms) / weights, np.inf)

    # random tie-break among equal keys (zero-weight elements)
    tie_breaker = rng.permutation(len(collection))
    order = np.lexsort((tie_breaker, keys))

    return [collection[int(idx)] for idx in order[:n_samples]]


def get_item_id_to_weight_map(user_item_weights: Optional[Dict]) -> Dict[Any, float]:
    """Map item IDs to the user's own weight for them."""
    return {
        entry["item"]: entry["weight"]
        for entry in (user_item_weights or {}).get("item_weights", [])
    }


def get_do_not_recommend_items(do_not_recommend: Optional[Dict]) -> Set[Any]:
    return {entry["item"] for entry in (do_not_recommend or {}).get("do_not_recommend", [])}


def filter_recommendations(
    recommendations: Sequence[Dict],
    suppressed: Set[Any],
    item_to_weight: Dict[Any, float],
    config: SampleConfig,
) -> List[Dict]:
    """Drop recommendations the user should not be shown.

    An item is dropped when it is on the do-not-recommend list. Otherwise
    it is kept when its recommendation weight is high enough, or when the
    user has some own weight for it that is low enough (they have not seen
    it enough). Items the user never interacted with have no own weight, so
    they are kept only on their recommendation weight.
    """
    filtered = []
    for rec in recommendations:
        if rec["item"] in suppressed:
            continue
        own_weight = item_to_weight.get(rec["item"])
        if rec["weight"] > config.min_recommendation_weight or (
            own_weight is not None and own_weight <= config.max_own_weight
        ):
            filtered.append(rec)
    return filtered


def _find_or_none(store: DocumentStore, collection: str, user_id: Any) -> Optional[Dict]:
    try:
        return find_user_row(store, collection, user_id)
    except NotFoundError:
        logger.debug(
            f"No {collection} row for user {user_id}, treating as empty",
            extra={"user_id": user_id, "collection": collection},
        )
        return None


def sample_recommendations_for_user(
    store: DocumentStore,
    user_id: Any,
    number_of_samples: Optional[int] = None,
    config: Optional[EngineConfig] = None,
    random_state: RandomState = None,
) -> List[Dict]:
    """Sample up to ``number_of_samples`` recommendations for a user.

    Args:
        store: Document store holding recommendations, weights and
            do-not-recommend lists.
        user_id: User to sample for.
        number_of_samples: Maximum number of items. Defaults to
            ``config.sample.default_sample_size`` (20).
        config: Engine configuration providing the filter thresholds.
        random_state: Seed or RandomState for reproducible draws.

    Returns:
        List of ``{"item": ..., "score": ...}`` where score is the item's
        persisted recommendation weight.

    Raises:
        StorageError: If a read fails for a reason other than a missing row.
    """
    config = config or EngineConfig()
    if number_of_samples is None:
        number_of_samples = config.sample.default_sample_size
    start_time = time.time()

    with ThreadPoolExecutor(max_workers=3, thread_name_prefix="akin-sample") as executor:
        recommendations_future = executor.submit(
            _find_or_none, store, USER_RECOMMENDATIONS, user_id
        )
        item_weights_future = executor.submit(
            _find_or_none, store, USER_ITEM_WEIGHTS, user_id
        )
        do_not_recommend_future = executor.submit(
            _find_or_none, store, USER_DO_NOT_RECOMMEND, user_id
        )
        user_recommendations = recommendations_future.result()
        user_item_weights = item_weights_future.result()
        do_not_recommend = do_not_recommend_future.result()

    all_recommendations = (user_recommendations or {}).get("recommendations", [])
    filtered = filter_recommendations(
        all_recommendations,
        get_do_not_recommend_items(do_not_recommend),
        get_item_id_to_weight_map(user_item_weights),
        config.sample,
    )

    samples = get_samples(filtered, number_of_samples, random_state=random_state)

    logger.info(
        "Sampled recommendations",
        extra={
            "user_id": user_id,
            "num_candidates": len(all_recommendations),
            "num_filtered": len(filtered),
            "num_samples": len(samples),
            "total_time_ms": round((time.time() - start_time) * 1000, 2),
        },
    )

    return [{"item": rec["item"], "score": rec["weight"]} for rec in samples]

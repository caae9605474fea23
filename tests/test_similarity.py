"""Tests for user-user similarity computation."""

import itertools
import random
import threading
from datetime import datetime, timedelta, timezone

import pytest
from sklearn.metrics.pairwise import cosine_similarity as sklearn_cosine_similarity

from akin.recommender.activity import log_activity, recalculate_user_item_weights
from akin.recommender.config import EngineConfig
from akin.recommender.similarity import (
    ClaimedPairs,
    calculate_user_similarities,
    cosine_similarity,
    get_user_similarity_key,
    recalculate_user_similarities,
)
from akin.recommender.store import (
    USER_ITEM_WEIGHTS,
    USER_SIMILARITIES,
    InMemoryDocumentStore,
)
from akin.recommender.utils import build_user_item_matrix

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def random_store():
    """Store with item weights for 25 users over 15 items."""
    rng = random.Random(7)
    store = InMemoryDocumentStore()
    for _ in range(150):
        log_activity(
            store,
            f"user{rng.randint(1, 25):02d}",
            f"item{rng.randint(1, 15):02d}",
            "item",
            rng.choice(["view", "purchase"]),
            occurred_at=NOW - timedelta(days=rng.randint(0, 200)),
        )
    config = EngineConfig(action_weights={"purchase": 2.0})
    recalculate_user_item_weights(store, config, now=NOW)
    return store


def _overlapping_pairs(store):
    items_by_user = {
        row["user"]: {entry["item"] for entry in row["item_weights"]}
        for row in store.stream_all(USER_ITEM_WEIGHTS)
    }
    return {
        get_user_similarity_key(u1, u2)
        for u1, u2 in itertools.combinations(items_by_user, 2)
        if items_by_user[u1] & items_by_user[u2]
    }


def test_similarity_key_is_order_independent():
    assert get_user_similarity_key("a", "b") == get_user_similarity_key("b", "a")
    assert get_user_similarity_key(1, 2) == ("1", "2")


def test_claimed_pairs_claims_once():
    claimed = ClaimedPairs()
    key = get_user_similarity_key("a", "b")

    assert claimed.claim(key) is True
    assert claimed.claim(key) is False
    assert len(claimed) == 1


def test_claimed_pairs_single_winner_across_threads():
    claimed = ClaimedPairs()
    key = get_user_similarity_key("a", "b")
    wins = []
    barrier = threading.Barrier(8)

    def worker():
        barrier.wait()
        wins.append(claimed.claim(key))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert wins.count(True) == 1


def test_cosine_similarity_zero_row_weight():
    assert cosine_similarity({"a": 1.0}, 0.0, {"a": 1.0}, 1.0) == 0.0
    assert cosine_similarity({}, 0.0, {}, 0.0) == 0.0


def test_cosine_similarity_identical_vectors_is_one():
    items = {"a": 0.3, "b": 0.7, "c": 0.1}
    norm = sum(w * w for w in items.values()) ** 0.5

    assert cosine_similarity(items, norm, dict(items), norm) == pytest.approx(1.0)
    assert cosine_similarity(items, norm, dict(items), norm) <= 1.0


def test_cosine_similarity_reference_value():
    similarity = cosine_similarity({"a": 1.0, "b": 1.0}, 2 ** 0.5, {"a": 1.0}, 1.0)
    assert similarity == pytest.approx(0.7071067811865475)


def test_similarity_is_symmetric_across_paths(random_store):
    rows = {row["user"]: row for row in random_store.stream_all(USER_ITEM_WEIGHTS)}
    user_a, user_b = next(
        (u1, u2)
        for u1, u2 in itertools.combinations(sorted(rows), 2)
        if {e["item"] for e in rows[u1]["item_weights"]}
        & {e["item"] for e in rows[u2]["item_weights"]}
    )

    forward = calculate_user_similarities(user_a, rows[user_a], [rows[user_b]], ClaimedPairs())
    backward = calculate_user_similarities(user_b, rows[user_b], [rows[user_a]], ClaimedPairs())

    assert forward[0]["similarity"] == backward[0]["similarity"]


def test_calculate_user_similarities_skips_self_and_claimed_pairs():
    row = {"user": "a", "item_weights": [{"item": "x", "weight": 1.0}], "row_weight": 1.0}
    other = {"user": "b", "item_weights": [{"item": "x", "weight": 1.0}], "row_weight": 1.0}
    claimed = ClaimedPairs()
    claimed.claim(get_user_similarity_key("a", "c"))
    third = {"user": "c", "item_weights": [{"item": "x", "weight": 1.0}], "row_weight": 1.0}

    similarities = calculate_user_similarities("a", row, [row, other, third], claimed)

    assert similarities == [{"users": ["a", "b"], "similarity": 1.0}]


def test_missing_user_row_is_treated_as_empty():
    other = {"user": "b", "item_weights": [{"item": "x", "weight": 1.0}], "row_weight": 1.0}

    similarities = calculate_user_similarities("a", None, [other], ClaimedPairs())

    assert similarities[0]["similarity"] == 0.0


@pytest.mark.parametrize("concurrency", [1, 2, 8])
def test_each_overlapping_pair_persisted_exactly_once(random_store, concurrency):
    total = recalculate_user_similarities(random_store, EngineConfig(concurrency=concurrency))

    rows = list(random_store.stream_all(USER_SIMILARITIES))
    keys = [get_user_similarity_key(*row["users"]) for row in rows]

    assert total == len(rows)
    assert len(keys) == len(set(keys))
    assert set(keys) == _overlapping_pairs(random_store)
    assert all(row["users"][0] != row["users"][1] for row in rows)
    assert all(-1.0 <= row["similarity"] <= 1.0 for row in rows)


def test_similarities_match_sklearn_cosine(random_store):
    recalculate_user_similarities(random_store, EngineConfig(concurrency=4))
    matrix, user_map, _ = build_user_item_matrix(random_store)
    expected = sklearn_cosine_similarity(matrix)

    for row in random_store.stream_all(USER_SIMILARITIES):
        user_a, user_b = row["users"]
        assert row["similarity"] == pytest.approx(
            expected[user_map[user_a], user_map[user_b]], abs=1e-9
        )


def test_recalculate_drops_previous_similarities(random_store):
    random_store.insert_one(USER_SIMILARITIES, {"users": ["old", "row"], "similarity": 0.9})

    recalculate_user_similarities(random_store, EngineConfig())

    assert random_store.find_one(USER_SIMILARITIES, {"users": "old"}) is None

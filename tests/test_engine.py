"""End-to-end tests for the recommendation engine."""

from datetime import datetime, timedelta, timezone

import pytest

from akin.recommender.config import EngineConfig
from akin.recommender.engine import RecommendationEngine
from akin.recommender.exceptions import ConfigurationError, NotFoundError, StorageError
from akin.recommender.similarity import get_user_similarity_key
from akin.recommender.store import (
    USER_ACTIVITY,
    USER_ITEM_WEIGHTS,
    USER_RECOMMENDATIONS,
    USER_SIMILARITIES,
    InMemoryDocumentStore,
)

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class FailingActivityStore(InMemoryDocumentStore):
    """Store whose activity reads always fail."""

    def stream_by_user(self, collection, user_id):
        if collection == USER_ACTIVITY:
            raise StorageError("activity cursor unavailable", collection=collection)
        return super().stream_by_user(collection, user_id)


@pytest.fixture
def engine():
    engine = RecommendationEngine(InMemoryDocumentStore(), clock=lambda: NOW)
    engine.log_activity("U1", "A", "item", "view")
    engine.log_activity("U1", "B", "item", "view")
    engine.log_activity("U2", "A", "item", "view")
    return engine


def _contents(store, collection, key=None):
    rows = list(store.stream_all(collection))
    return sorted(rows, key=key or (lambda row: str(row["user"])))


def _similarity_key(row):
    return get_user_similarity_key(*row["users"])


def test_two_user_scenario(engine):
    engine.recalculate_all()

    u1 = engine.get_item_weights_for_user("U1")
    assert u1["row_weight"] == pytest.approx(2 ** 0.5)

    similarities = list(engine.store.stream_all(USER_SIMILARITIES))
    assert len(similarities) == 1
    assert similarities[0]["similarity"] == pytest.approx(0.7071067811865475)

    u2 = engine.get_recommendations_for_user("U2")
    weights = {rec["item"]: rec["weight"] for rec in u2["recommendations"]}
    assert len(u2["recommendations"]) == 2
    assert weights["B"] == 0.7071067811865475
    assert weights["A"] == 0.7071067811865475


def test_recalculate_all_is_idempotent(engine):
    engine.recalculate_all()
    weights = _contents(engine.store, USER_ITEM_WEIGHTS)
    similarities = _contents(engine.store, USER_SIMILARITIES, key=_similarity_key)
    recommendations = _contents(engine.store, USER_RECOMMENDATIONS)

    engine.recalculate_all()

    assert _contents(engine.store, USER_ITEM_WEIGHTS) == weights
    assert _contents(engine.store, USER_RECOMMENDATIONS) == recommendations
    again = _contents(engine.store, USER_SIMILARITIES, key=_similarity_key)
    assert [_similarity_key(row) for row in again] == [
        _similarity_key(row) for row in similarities
    ]
    assert [row["similarity"] for row in again] == [
        row["similarity"] for row in similarities
    ]


def test_failed_stage_stops_the_run():
    store = FailingActivityStore()
    store.insert_one(USER_ACTIVITY, {"user": "U1", "item": "A", "action": "view"})
    store.insert_one(USER_SIMILARITIES, {"users": ["U1", "U2"], "similarity": 0.9})
    store.insert_one(USER_RECOMMENDATIONS, {"user": "U1", "recommendations": []})
    engine = RecommendationEngine(store, clock=lambda: NOW)

    with pytest.raises(StorageError):
        engine.recalculate_all()

    assert list(store.stream_all(USER_SIMILARITIES)) == [
        {"users": ["U1", "U2"], "similarity": 0.9}
    ]
    assert list(store.stream_all(USER_RECOMMENDATIONS)) == [
        {"user": "U1", "recommendations": []}
    ]


def test_stage_listener_receives_every_stage(engine):
    calls = []
    engine.stage_listener = lambda stage, duration_ms, count: calls.append((stage, count))

    durations = engine.recalculate_all()

    assert [stage for stage, _ in calls] == ["activity", "similarity", "recommendation"]
    assert dict(calls) == {"activity": 2, "similarity": 1, "recommendation": 2}
    assert set(durations) == {"activity", "similarity", "recommendation"}


def test_config_property_returns_a_copy(engine):
    config = engine.config
    config.concurrency = 99
    config.action_weights["purchase"] = 10.0

    assert engine.config.concurrency == 2
    assert engine.config.action_weights == {}


def test_engine_does_not_share_passed_config():
    config = EngineConfig(concurrency=3)
    engine = RecommendationEngine(config=config)

    config.concurrency = 7

    assert engine.config.concurrency == 3


def test_configuration_setters(engine):
    engine.set_concurrency(4)
    engine.set_decay_config(max_days=30, exponent=2, easing=1)
    engine.set_action_weight("purchase", 5.0)

    config = engine.config
    assert config.concurrency == 4
    assert (config.decay.max_days, config.decay.exponent, config.decay.easing) == (30, 2, 1)
    assert config.action_weight("purchase") == 5.0


@pytest.mark.parametrize("value", [0, -1, 1.5])
def test_invalid_concurrency_rejected(engine, value):
    with pytest.raises(ConfigurationError):
        engine.set_concurrency(value)
    assert engine.config.concurrency == 2


def test_invalid_decay_config_rejected(engine):
    with pytest.raises(ConfigurationError):
        engine.set_decay_config(max_days=0, exponent=3, easing=2)
    assert engine.config.decay.max_days == 180


def test_action_weight_applies_to_next_run(engine):
    engine.log_activity("U2", "C", "item", "purchase")
    engine.set_action_weight("purchase", 4.0)

    engine.recalculate_all()

    weights = {
        entry["item"]: entry["weight"]
        for entry in engine.get_item_weights_for_user("U2")["item_weights"]
    }
    assert weights["C"] == 4.0


def test_old_activity_ages_off(engine):
    engine.log_activity("U3", "A", "item", "view", occurred_at=NOW - timedelta(days=400))

    engine.recalculate_all()

    u3 = engine.get_item_weights_for_user("U3")
    assert u3["item_weights"][0]["weight"] == 0.0
    assert u3["row_weight"] == 0.0


def test_ignore_user_is_idempotent_and_excludes_user(engine):
    engine.ignore_user("U2")
    engine.ignore_user("U2")

    assert engine.get_ignored_users() == ["U2"]

    engine.recalculate_all()

    with pytest.raises(NotFoundError):
        engine.get_item_weights_for_user("U2")
    assert engine.store.count(USER_SIMILARITIES) == 0

    engine.unignore_user("U2")
    assert engine.get_ignored_users() == []


def test_remove_activity(engine):
    assert engine.remove_activity("U1", "B", "view") == 1

    engine.recalculate_all()

    u1 = engine.get_item_weights_for_user("U1")
    assert [entry["item"] for entry in u1["item_weights"]] == ["A"]


def test_sample_for_user_respects_do_not_recommend(engine):
    engine.recalculate_all()
    engine.mark_do_not_recommend("U2", "B", "item")

    samples = engine.sample_for_user("U2", 5, random_state=0)

    assert samples == [{"item": "A", "score": 0.7071067811865475}]


def test_sample_for_unknown_user_is_empty(engine):
    engine.recalculate_all()
    assert engine.sample_for_user("nobody") == []


def test_activity_item_catalog(engine):
    engine.add_activity_item("A", {"title": "first"})
    engine.add_activity_item("A", {"title": "renamed"})
    engine.add_activity_item("B")

    assert engine.get_activity_items() == [
        {"item": "A", "item_metadata": {"title": "renamed"}},
        {"item": "B", "item_metadata": None},
    ]

    assert engine.remove_activity_item("A") == 1
    assert engine.remove_activity_item("A") == 0
    assert [row["item"] for row in engine.get_activity_items()] == ["B"]


def test_activity_item_catalog_does_not_affect_pipeline(engine):
    engine.recalculate_all()
    before = engine.get_recommendations_for_user("U2")

    engine.add_activity_item("Z", "item")
    engine.recalculate_all()

    assert engine.get_recommendations_for_user("U2") == before

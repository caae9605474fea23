"""Public entry point of the Akin engine.

``RecommendationEngine`` ties the store, the configuration and the three
batch stages together. It is what the API and the scripts talk to.

Example:
    >>> engine = RecommendationEngine(InMemoryDocumentStore())
    >>> engine.log_activity("user01", "item01", "item", "view")
    >>> engine.recalculate_all()
    >>> engine.sample_for_user("user01", 5)
"""

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from akin.recommender import activity, recommendation, similarity
from akin.recommender.config import (
    DecayConfig,
    EngineConfig,
    validate_action_weight,
    validate_concurrency,
)
from akin.recommender.exceptions import StorageError
from akin.recommender.repository import find_user_row, get_ignored_user_ids
from akin.recommender.sample import RandomState, sample_recommendations_for_user
from akin.recommender.store import (
    USER_ACTIVITY_IGNORED,
    USER_ITEM_WEIGHTS,
    USER_RECOMMENDATIONS,
    DocumentStore,
    InMemoryDocumentStore,
)

# Configure module logger
logger = logging.getLogger(__name__)

StageListener = Callable[[str, float, int], None]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RecommendationEngine:
    """Collaborative-filtering engine over a document store.

    Configuration changes apply to later runs only. Every run works on its
    own copy of the configuration, taken when the run starts.

    The pipeline is not transactional. Each stage drops its collection
    before rebuilding it, so readers that query during a run can see a
    partially rebuilt collection.
    """

    def __init__(
        self,
        store: Optional[DocumentStore] = None,
        config: Optional[EngineConfig] = None,
        clock: Callable[[], datetime] = _utc_now,
        stage_listener: Optional[StageListener] = None,
    ):
        """Initialize the engine.

        Args:
            store: Document store. Defaults to a fresh in-memory store.
            config: Starting configuration. Defaults to EngineConfig().
            clock: Returns the reference time for activity ages.
            stage_listener: Optional callback receiving
                ``(stage, duration_ms, count)`` after each finished stage.
        """
        self.store = store if store is not None else InMemoryDocumentStore()
        self._config = (config or EngineConfig()).copy()
        self._config.validate()
        self._config_lock = threading.Lock()
        self.clock = clock
        self.stage_listener = stage_listener

        logger.info(
            f"Initialized RecommendationEngine: "
            f"store={type(self.store).__name__}, "
            f"concurrency={self._config.concurrency}"
        )

    @property
    def config(self) -> EngineConfig:
        """A copy of the current configuration."""
        with self._config_lock:
            return self._config.copy()

    # ----- configuration -----

    def set_concurrency(self, concurrency: int) -> None:
        """Set how many users each stage processes at a time."""
        validate_concurrency(concurrency)
        with self._config_lock:
            self._config.concurrency = concurrency
        logger.info(f"Concurrency set to {concurrency}")

    def set_decay_config(
        self,
        max_days: float,
        exponent: float,
        easing: float,
    ) -> None:
        """Replace the age-off configuration. All values are required."""
        decay = DecayConfig(max_days=max_days, exponent=exponent, easing=easing)
        decay.validate()
        with self._config_lock:
            self._config.decay = decay
        logger.info(
            "Decay configuration updated",
            extra={"max_days": max_days, "exponent": exponent, "easing": easing},
        )

    def set_action_weight(self, action: str, weight: float) -> None:
        """Set the base weight used for activities of ``action``."""
        validate_action_weight(action, weight)
        with self._config_lock:
            self._config.action_weights[action] = weight
        logger.info(f"Action weight for '{action}' set to {weight}")

    # ----- activity -----

    def log_activity(
        self,
        user_id: Any,
        item_id: Any,
        item_metadata: Any,
        action: str,
        occurred_at: Optional[datetime] = None,
    ) -> Dict:
        return activity.log_activity(
            self.store,
            user_id,
            item_id,
            item_metadata,
            action,
            occurred_at=occurred_at or self.clock(),
        )

    def remove_activity(self, user_id: Any, item_id: Any, action: str) -> int:
        return activity.remove_activity(self.store, user_id, item_id, action)

    def add_activity_item(self, item_id: Any, item_metadata: Any = None) -> Dict:
        """Register an item in the activity item catalog."""
        return activity.add_activity_item(self.store, item_id, item_metadata)

    def remove_activity_item(self, item_id: Any) -> int:
        return activity.remove_activity_item(self.store, item_id)

    def get_activity_items(self) -> List[Dict]:
        return activity.get_activity_items(self.store)

    # ----- batch pipeline -----

    def _run_stage(self, stage: str, func: Callable[[], int]) -> float:
        start_time = time.time()
        try:
            count = func()
        except StorageError:
            logger.error(f"Stage {stage} failed, aborting run", exc_info=True)
            raise
        duration_ms = round((time.time() - start_time) * 1000, 2)
        if self.stage_listener is not None:
            self.stage_listener(stage, duration_ms, count)
        return duration_ms

    def recalculate_all(self) -> Dict[str, float]:
        """Run activity, similarity and recommendation stages in order.

        Each stage finishes completely before the next one starts. The run
        stops at the first failing stage.

        Returns:
            Duration of each stage in milliseconds.

        Raises:
            StorageError: If any stage failed.
        """
        config = self.config
        now = self.clock()

        logger.info("=" * 60)
        logger.info("Starting recommendation pipeline")
        logger.info("=" * 60)

        durations = {
            activity.STAGE_NAME: self._run_stage(
                activity.STAGE_NAME,
                lambda: activity.recalculate_user_item_weights(self.store, config, now),
            ),
        }
        durations[similarity.STAGE_NAME] = self._run_stage(
            similarity.STAGE_NAME,
            lambda: similarity.recalculate_user_similarities(self.store, config),
        )
        durations[recommendation.STAGE_NAME] = self._run_stage(
            recommendation.STAGE_NAME,
            lambda: recommendation.recalculate_user_recommendations(self.store, config),
        )

        logger.info("Pipeline completed", extra={"durations_ms": durations})
        return durations

    # ----- serving -----

    def sample_for_user(
        self,
        user_id: Any,
        number_of_samples: Optional[int] = None,
        random_state: RandomState = None,
    ) -> List[Dict]:
        return sample_recommendations_for_user(
            self.store,
            user_id,
            number_of_samples,
            config=self.config,
            random_state=random_state,
        )

    def get_recommendations_for_user(self, user_id: Any) -> Dict:
        """Return the persisted recommendation row (raises NotFoundError)."""
        return find_user_row(self.store, USER_RECOMMENDATIONS, user_id)

    def get_item_weights_for_user(self, user_id: Any) -> Dict:
        """Return the persisted item-weight row (raises NotFoundError)."""
        return find_user_row(self.store, USER_ITEM_WEIGHTS, user_id)

    def mark_do_not_recommend(self, user_id: Any, item_id: Any, item_metadata: Any) -> Dict:
        return recommendation.mark_do_not_recommend(
            self.store, user_id, item_id, item_metadata
        )

    # ----- ignore list -----

    def ignore_user(self, user_id: Any) -> None:
        """Exclude a user from every later pipeline run."""
        if self.store.find_one(USER_ACTIVITY_IGNORED, {"user": user_id}) is None:
            self.store.insert_one(USER_ACTIVITY_IGNORED, {"user": user_id})
            logger.info("Ignoring user", extra={"user_id": user_id})

    def unignore_user(self, user_id: Any) -> None:
        removed = self.store.delete_many(USER_ACTIVITY_IGNORED, {"user": user_id})
        if removed:
            logger.info("No longer ignoring user", extra={"user_id": user_id})

    def get_ignored_users(self) -> List[Any]:
        return get_ignored_user_ids(self.store)

"""Shared FastAPI dependencies.

The engine is created once per process and reused by every request. If a
store snapshot exists in ``AKIN_STORE_DIR`` it is restored on first use,
otherwise the engine starts with an empty in-memory store.
"""

import logging
import os
from typing import Optional

from akin.api.metrics import metrics_service
from akin.recommender.engine import RecommendationEngine
from akin.recommender.utils import check_snapshot_exists, load_store_snapshot

# Configure module logger
logger = logging.getLogger(__name__)

# Default snapshot directory
DEFAULT_STORE_DIR = "store"

# Cached engine instance
_engine_cache: Optional[RecommendationEngine] = None


def get_store_dir() -> str:
    return os.environ.get("AKIN_STORE_DIR", DEFAULT_STORE_DIR)


def get_engine() -> RecommendationEngine:
    """Return the process-wide engine, creating it if needed."""
    global _engine_cache

    if _engine_cache is not None:
        return _engine_cache

    store_dir = get_store_dir()
    store = None
    if check_snapshot_exists(store_dir):
        logger.info(f"Restoring store snapshot from {store_dir}")
        store = load_store_snapshot(store_dir)
    else:
        logger.info(f"No snapshot in {store_dir}, starting with an empty store")

    _engine_cache = RecommendationEngine(
        store=store, stage_listener=metrics_service.record_stage
    )
    return _engine_cache


def reset_engine() -> None:
    """Forget the cached engine (useful for testing)."""
    global _engine_cache
    _engine_cache = None

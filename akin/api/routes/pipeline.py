"""Activity, pipeline and configuration endpoints for the Akin API.

This module lets callers log and remove activity, trigger the batch
pipeline, tune the engine configuration, manage the ignore list and
snapshot the in-memory store.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from akin.api.dependencies import get_engine, get_store_dir
from akin.recommender.config import (
    DEFAULT_EASING,
    DEFAULT_EXPONENT,
    DEFAULT_MAX_DAYS,
)
from akin.recommender.engine import RecommendationEngine
from akin.recommender.store import InMemoryDocumentStore
from akin.recommender.utils import save_store_snapshot

# Configure module logger
logger = logging.getLogger(__name__)

# Create API router
router = APIRouter(tags=["pipeline"])


class ActivityRequest(BaseModel):
    """A single user action on an item."""

    user_id: str = Field(..., description="User who took the action")
    item_id: str = Field(..., description="Item the action was taken on")
    item_metadata: Optional[Any] = Field(default=None, description="Item metadata")
    action: str = Field(..., description="Action type, e.g. view or purchase")
    occurred_at: Optional[datetime] = Field(
        default=None, description="When the action happened (defaults to now)"
    )


class RemoveActivityRequest(BaseModel):
    user_id: str
    item_id: str
    action: str


class ActivityItemRequest(BaseModel):
    item_metadata: Optional[Any] = Field(default=None, description="Item metadata")


class ConcurrencyRequest(BaseModel):
    concurrency: int = Field(..., description="Users processed at a time per stage")


class DecayConfigRequest(BaseModel):
    max_days: float = Field(default=DEFAULT_MAX_DAYS)
    exponent: float = Field(default=DEFAULT_EXPONENT)
    easing: float = Field(default=DEFAULT_EASING)


class ActionWeightRequest(BaseModel):
    weight: float = Field(..., description="Base weight for the action")


class RecalculateResponse(BaseModel):
    status: str
    durations_ms: Dict[str, float]


@router.post("/activity", status_code=status.HTTP_201_CREATED)
def log_activity(
    request: ActivityRequest,
    engine: RecommendationEngine = Depends(get_engine),
) -> Dict[str, str]:
    """Append one activity row."""
    engine.log_activity(
        request.user_id,
        request.item_id,
        request.item_metadata,
        request.action,
        occurred_at=request.occurred_at,
    )
    return {"status": "ok"}


@router.delete("/activity")
def remove_activity(
    request: RemoveActivityRequest,
    engine: RecommendationEngine = Depends(get_engine),
) -> Dict[str, Any]:
    """Delete every activity row matching user, item and action."""
    removed = engine.remove_activity(request.user_id, request.item_id, request.action)
    return {"status": "ok", "removed": removed}


@router.get("/items")
def list_activity_items(
    engine: RecommendationEngine = Depends(get_engine),
) -> Dict[str, List[Dict]]:
    return {"items": engine.get_activity_items()}


@router.put("/items/{item_id}")
def add_activity_item(
    item_id: str,
    request: ActivityItemRequest,
    engine: RecommendationEngine = Depends(get_engine),
) -> Dict[str, Any]:
    """Register an item in the activity item catalog."""
    row = engine.add_activity_item(item_id, request.item_metadata)
    return {"status": "ok", "item": row}


@router.delete("/items/{item_id}")
def remove_activity_item(
    item_id: str,
    engine: RecommendationEngine = Depends(get_engine),
) -> Dict[str, Any]:
    removed = engine.remove_activity_item(item_id)
    return {"status": "ok", "removed": removed}


@router.post("/recalculate", response_model=RecalculateResponse)
def recalculate(
    engine: RecommendationEngine = Depends(get_engine),
) -> RecalculateResponse:
    """Run the full batch pipeline and wait for it to finish.

    A failing stage aborts the run and is reported as a storage error.
    """
    durations = engine.recalculate_all()
    return RecalculateResponse(status="ok", durations_ms=durations)


@router.put("/config/concurrency")
def set_concurrency(
    request: ConcurrencyRequest,
    engine: RecommendationEngine = Depends(get_engine),
) -> Dict[str, Any]:
    engine.set_concurrency(request.concurrency)
    return {"status": "ok", "concurrency": request.concurrency}


@router.put("/config/decay")
def set_decay_config(
    request: DecayConfigRequest,
    engine: RecommendationEngine = Depends(get_engine),
) -> Dict[str, Any]:
    engine.set_decay_config(request.max_days, request.exponent, request.easing)
    return {"status": "ok", "decay": request.model_dump()}


@router.put("/config/action-weights/{action}")
def set_action_weight(
    action: str,
    request: ActionWeightRequest,
    engine: RecommendationEngine = Depends(get_engine),
) -> Dict[str, Any]:
    engine.set_action_weight(action, request.weight)
    return {"status": "ok", "action": action, "weight": request.weight}


@router.get("/ignored")
def list_ignored_users(
    engine: RecommendationEngine = Depends(get_engine),
) -> Dict[str, List[Any]]:
    return {"ignored": engine.get_ignored_users()}


@router.put("/ignored/{user_id}")
def ignore_user(
    user_id: str,
    engine: RecommendationEngine = Depends(get_engine),
) -> Dict[str, str]:
    """Exclude a user from later pipeline runs."""
    engine.ignore_user(user_id)
    return {"status": "ok"}


@router.delete("/ignored/{user_id}")
def unignore_user(
    user_id: str,
    engine: RecommendationEngine = Depends(get_engine),
) -> Dict[str, str]:
    engine.unignore_user(user_id)
    return {"status": "ok"}


@router.post("/store/snapshot")
def snapshot_store(
    engine: RecommendationEngine = Depends(get_engine),
) -> Dict[str, str]:
    """Persist the in-memory store to ``AKIN_STORE_DIR``."""
    if not isinstance(engine.store, InMemoryDocumentStore):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Snapshots are only supported for the in-memory store",
        )
    path = save_store_snapshot(engine.store, get_store_dir())
    return {"status": "ok", "path": str(path)}

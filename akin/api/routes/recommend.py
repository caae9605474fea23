"""Recommendation endpoints for the Akin API.

This module serves sampled recommendations, the full persisted
recommendation list of a user, and the do-not-recommend action.
"""

import logging
import time
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from akin.api.dependencies import get_engine
from akin.api.metrics import metrics_service
from akin.recommender.config import DEFAULT_SAMPLE_SIZE
from akin.recommender.engine import RecommendationEngine

# Configure module logger
logger = logging.getLogger(__name__)

# Create API router
router = APIRouter(
    prefix="/recommend",
    tags=["recommendations"],
)


class SampledItem(BaseModel):
    """One sampled recommendation."""

    item: Any = Field(..., description="Recommended item ID")
    score: float = Field(..., description="Persisted recommendation weight")


class SampleResponse(BaseModel):
    """Response model for sample requests.

    Attributes:
        user_id: The user ID the samples were drawn for.
        recommendations: Sampled items with their recommendation scores.
    """

    user_id: str = Field(..., description="User ID for recommendations")
    recommendations: List[SampledItem] = Field(
        ..., description="Sampled recommendations, in draw order"
    )


class ItemWeight(BaseModel):
    item: Any
    item_metadata: Optional[Any] = None
    weight: float


class RecommendationListResponse(BaseModel):
    user_id: str
    recommendations: List[ItemWeight]


class DoNotRecommendRequest(BaseModel):
    item_id: str = Field(..., description="Item that should not be recommended again")
    item_metadata: Optional[Any] = Field(default=None, description="Item metadata")


@router.get("/{user_id}", response_model=SampleResponse)
def sample_recommendations(
    user_id: str,
    n: int = Query(default=DEFAULT_SAMPLE_SIZE, ge=0, description="Maximum samples"),
    engine: RecommendationEngine = Depends(get_engine),
) -> SampleResponse:
    """Draw up to ``n`` weighted samples from a user's recommendations.

    Users without recommendations get an empty list, never an error.

    Example:
        GET /recommend/user01?n=5
    """
    start_time = time.time()
    samples = engine.sample_for_user(user_id, n)
    metrics_service.record_sample((time.time() - start_time) * 1000)

    return SampleResponse(
        user_id=user_id,
        recommendations=[SampledItem(**sample) for sample in samples],
    )


@router.get("/{user_id}/all", response_model=RecommendationListResponse)
def get_all_recommendations(
    user_id: str,
    engine: RecommendationEngine = Depends(get_engine),
) -> RecommendationListResponse:
    """Return every persisted recommendation for a user.

    Responds 404 when the last pipeline run produced no row for the user.
    """
    row = engine.get_recommendations_for_user(user_id)
    return RecommendationListResponse(
        user_id=user_id,
        recommendations=[ItemWeight(**entry) for entry in row["recommendations"]],
    )


@router.post("/{user_id}/do-not-recommend")
def do_not_recommend(
    user_id: str,
    request: DoNotRecommendRequest,
    engine: RecommendationEngine = Depends(get_engine),
) -> Dict[str, Any]:
    """Stop recommending an item to a user."""
    row = engine.mark_do_not_recommend(user_id, request.item_id, request.item_metadata)
    return {
        "status": "ok",
        "do_not_recommend": [entry["item"] for entry in row["do_not_recommend"]],
    }

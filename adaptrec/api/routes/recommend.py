"""Recommendation endpoints for the AdaptRec API.

This module provides the read-only recommendation endpoint and the response
models shared with the session endpoints.
"""

import logging
import time
from typing import Any, Dict, List, Optional, Union

import numpy as np
from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from adaptrec.api.metrics import metrics_service
from adaptrec.api.registry import get_registry
from adaptrec.recommender.ranking import Recommendation
from adaptrec.recommender.train import TrainingEvent

# Configure module logger
logger = logging.getLogger(__name__)

# Create API router
router = APIRouter(
    prefix="/recommend",
    tags=["recommendations"],
)


class RecommendationItem(BaseModel):
    """A single recommended product."""

    product_id: Union[int, str]
    name: str
    category: str
    price: float
    tags: List[str]
    image: str = ""
    score: float = Field(..., ge=0.0, le=1.0, description="Relevance score")
    rationale: str = Field(..., description="Why this product is suggested")


class RecommendationResponse(BaseModel):
    """Response model for recommendation requests.

    Attributes:
        user_id: The user the recommendations are for.
        recommendations: Ranked recommendations, best first.
        generation: Training generation of the model that produced them.
        num_purchases: Length of the purchase history used.
    """

    user_id: str = Field(..., description="User ID for recommendations")
    recommendations: List[RecommendationItem] = Field(
        ..., description="Ranked recommendations"
    )
    generation: int = Field(default=0, description="Model training generation")
    num_purchases: int = Field(default=0, description="Purchases in the history")


class TrainingEventModel(BaseModel):
    generation: int
    num_purchases: int
    loss: float
    timestamp: str


class StatsResponse(BaseModel):
    """Model statistics for a session."""

    user_id: str
    generation: int
    parameters: Dict[str, Any]
    training_log: List[TrainingEventModel]


def to_item(recommendation: Recommendation) -> RecommendationItem:
    product = recommendation.product
    return RecommendationItem(
        product_id=product.product_id,
        name=product.name,
        category=product.category,
        price=product.price,
        tags=list(product.tags or ()),
        image=product.image,
        score=recommendation.score,
        rationale=recommendation.rationale,
    )


def _jsonable(value: Any) -> Any:
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, dict):
        return {key: _jsonable(v) for key, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def to_stats_response(user_id: str, stats: Dict) -> StatsResponse:
    log: List[TrainingEvent] = stats["training_log"]
    return StatsResponse(
        user_id=user_id,
        generation=stats["generation"],
        parameters=_jsonable(stats["parameters"]),
        training_log=[TrainingEventModel(**event.to_dict()) for event in log],
    )


@router.get("/{user_id}", response_model=RecommendationResponse)
def get_recommendations(
    user_id: str,
    top_n: Optional[int] = Query(default=None, ge=0, le=100),
) -> RecommendationResponse:
    """Get product recommendations for a logged-in user.

    Scores the current session history without retraining.

    Args:
        user_id: User whose session to use.
        top_n: Number of recommendations; defaults to the count derived from
            the number of purchases.

    Raises:
        SessionNotFoundError: If the user has no active session (404).
        CatalogNotFoundError: If the catalog could not be loaded (503).

    Example:
        GET /recommend/alice?top_n=5
    """
    start_time = time.time()
    session = get_registry().get(user_id)
    recommendations = session.recommend(top_n)
    latency_ms = (time.time() - start_time) * 1000
    metrics_service.record_recommendation(latency_ms, len(recommendations))

    logger.info(
        f"Generated {len(recommendations)} recommendations for user {user_id}",
        extra={"user_id": user_id, "latency_ms": round(latency_ms, 2)},
    )

    return RecommendationResponse(
        user_id=user_id,
        recommendations=[to_item(rec) for rec in recommendations],
        generation=session.service.generation,
        num_purchases=len(session.history),
    )

"""Session endpoints for the AdaptRec API.

Login/logout, purchases (which retrain the session's model), purchase
history, stats and reset.
"""

import logging
import time
from typing import Dict, List, Optional, Union

from fastapi import APIRouter, status
from pydantic import BaseModel, Field

from adaptrec.api.metrics import metrics_service
from adaptrec.api.registry import get_registry
from adaptrec.api.routes.recommend import (
    RecommendationResponse,
    StatsResponse,
    to_item,
    to_stats_response,
)
from adaptrec.exceptions import TrainingError
from adaptrec.recommender.catalog import summarize_history

# Configure module logger
logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/sessions",
    tags=["sessions"],
)


class PurchaseRequest(BaseModel):
    product_ids: List[Union[int, str]] = Field(
        ..., min_length=1, description="Ids of the purchased catalog products"
    )


class SessionResponse(BaseModel):
    user_id: str
    num_purchases: int
    generation: int


class PurchaseItem(BaseModel):
    """A purchase in the session history."""

    product_id: Union[int, str]
    name: str
    category: Optional[str]
    price: float
    purchased_at: str


class PurchaseHistoryResponse(BaseModel):
    """Purchase history with spending totals."""

    user_id: str
    purchases: List[PurchaseItem]
    total_spent: float
    favourite_category: Optional[str] = None
    favourite_category_count: int = 0


@router.post("/{user_id}", response_model=SessionResponse)
def login(user_id: str) -> SessionResponse:
    """Open a session, loading and training on any stored history."""
    session = get_registry().login(user_id)
    return SessionResponse(
        user_id=user_id,
        num_purchases=len(session.history),
        generation=session.service.generation,
    )


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def logout(user_id: str) -> None:
    """Close a session. The stored history is kept for the next login."""
    get_registry().logout(user_id)


@router.post("/{user_id}/purchases", response_model=RecommendationResponse)
def purchase(user_id: str, request: PurchaseRequest) -> RecommendationResponse:
    """Record purchases, retrain and return fresh recommendations.

    Raises:
        SessionNotFoundError: If the user has no active session (404).
        UnknownProductError: If a product id is not in the catalog (404).
        TrainingError: If retraining fails (500); the model keeps its
            previous parameters.
    """
    session = get_registry().get(user_id)
    start_time = time.time()
    try:
        result = session.purchase(request.product_ids)
    except TrainingError:
        metrics_service.record_training_failure()
        raise
    metrics_service.record_training(
        (time.time() - start_time) * 1000, len(result.recommendations)
    )

    return RecommendationResponse(
        user_id=user_id,
        recommendations=[to_item(rec) for rec in result.recommendations],
        generation=result.stats["generation"],
        num_purchases=len(session.history),
    )


@router.get("/{user_id}/purchases", response_model=PurchaseHistoryResponse)
def get_purchases(user_id: str) -> PurchaseHistoryResponse:
    """Purchase history, oldest first, with total spent and favourite category."""
    session = get_registry().get(user_id)
    history = list(session.history)
    summary = summarize_history(history)
    return PurchaseHistoryResponse(
        user_id=user_id,
        purchases=[
            PurchaseItem(
                product_id=record.product_id,
                name=record.product.name,
                category=record.product.category,
                price=record.product.price,
                purchased_at=record.purchased_at.isoformat(),
            )
            for record in history
        ],
        total_spent=summary.total_spent,
        favourite_category=summary.favourite_category,
        favourite_category_count=summary.favourite_category_count,
    )


@router.get("/{user_id}/stats", response_model=StatsResponse)
def get_stats(user_id: str) -> StatsResponse:
    """Generation, parameters and training log of the session's model."""
    session = get_registry().get(user_id)
    return to_stats_response(user_id, session.get_stats())


@router.post("/{user_id}/reset", response_model=Dict[str, str])
def reset(user_id: str) -> Dict[str, str]:
    """Clear the session history and return the model to its prior."""
    get_registry().get(user_id).reset()
    logger.info("Session reset", extra={"user_id": user_id})
    return {"status": "Session reset successfully"}

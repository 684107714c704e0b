"""Recommendation quality metrics.

Offline indicators of how well a recommendation list fits a user's history.
All percentages are returned in [0, 100].
"""

import logging
from collections import Counter
from typing import Dict, List, Optional, Sequence

import numpy as np

from adaptrec.recommender.catalog import PurchaseRecord
from adaptrec.recommender.ranking import DEFAULT_FLOOR_RATIO, DEFAULT_MIN_FLOOR, Recommendation
from adaptrec.recommender.train import TrainingEvent

# Configure module logger
logger = logging.getLogger(__name__)

MIN_PURCHASES = 2
PRECISION_K = 6
PRECISION_WINDOW = 5
RELEVANCE_WINDOW = 10
LOSS_WINDOW = 5


def _percent(numerator: float, denominator: float) -> float:
    return round(100.0 * numerator / denominator, 1) if denominator else 0.0


def precision_at_k(
    history: Sequence[PurchaseRecord], recommendations: Sequence[Recommendation], k: int = PRECISION_K
) -> float:
    """Half a point for a recent category match, half for a recent tag match."""
    recent = history[-PRECISION_WINDOW:]
    recent_categories = {r.product.category for r in recent}
    recent_tags = {tag for r in recent for tag in (r.product.tags or ())}

    top = recommendations[:k]
    points = 0.0
    for rec in top:
        if rec.category in recent_categories:
            points += 0.5
        if set(rec.product.tags or ()) & recent_tags:
            points += 0.5
    return _percent(points, len(top))


def hit_rate(recommendations: Sequence[Recommendation]) -> float:
    """Share of recommendations scoring above the dynamic threshold."""
    if not recommendations:
        return 0.0
    mean_score = float(np.mean([r.score for r in recommendations]))
    threshold = max(mean_score * DEFAULT_FLOOR_RATIO, DEFAULT_MIN_FLOOR)
    hits = sum(1 for r in recommendations if r.score > threshold)
    return _percent(hits, len(recommendations))


def loss_evolution(training_log: Sequence[TrainingEvent]) -> List[Dict]:
    return [
        {"generation": e.generation, "loss": e.loss, "num_purchases": e.num_purchases}
        for e in training_log[-LOSS_WINDOW:]
    ]


def evaluate_recommendations(
    history: Sequence[PurchaseRecord],
    recommendations: Sequence[Recommendation],
    stats: Dict,
    n_categories: int,
) -> Optional[Dict]:
    """Compute the quality report for one recommendation list.

    Diversity and coverage both count the distinct categories in the list
    against the size of the catalog category set, so they agree on any
    non-empty list.

    Args:
        history: Purchase history the list was built from.
        recommendations: Ranked recommendations.
        stats: Service stats snapshot (needs ``training_log``).
        n_categories: Size of the catalog's category set.

    Returns:
        Dictionary of metrics, or None with fewer than two purchases.
    """
    if len(history) < MIN_PURCHASES:
        return None

    n_recs = len(recommendations)
    scores = [r.score for r in recommendations]
    rec_categories = {r.category for r in recommendations}

    recent_categories = {r.product.category for r in history[-RELEVANCE_WINDOW:]}
    relevant = sum(1 for r in recommendations if r.category in recent_categories)

    favourite = Counter(r.product.category for r in history).most_common(1)[0][0]
    novel = sum(1 for r in recommendations if r.category != favourite)

    training_log = stats.get("training_log", [])
    last_loss = training_log[-1].loss if training_log else 1.0
    max_score = max(scores, default=0.0)
    min_score = min(scores, default=1.0)

    report = {
        "precision_at_k": precision_at_k(history, recommendations),
        "hit_rate": hit_rate(recommendations),
        "diversity": _percent(len(rec_categories), n_categories) if n_recs else 0.0,
        "coverage": _percent(len(rec_categories), n_categories),
        "relevance": _percent(relevant, n_recs),
        "accuracy": round(100.0 * min(max(1.0 - last_loss, 0.0), 1.0), 1),
        "mean_score": round(100.0 * float(np.mean(scores)), 1) if scores else 0.0,
        "loss_evolution": loss_evolution(training_log),
        "novelty": _percent(novel, n_recs),
        "confidence": _percent(max_score - min_score, max_score) if max_score > 0 else 0.0,
        "num_recommendations": n_recs,
    }
    logger.debug("Evaluated recommendations", extra={"num_recommendations": n_recs})
    return report

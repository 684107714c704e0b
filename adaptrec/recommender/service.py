"""Recommendation service.

Orchestrates training, scoring and diversity ranking for one session, and
attaches a rationale to every recommendation.
"""

import logging
import threading
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from adaptrec.recommender.catalog import Catalog, Product, PurchaseRecord, purchased_ids
from adaptrec.recommender.features import FeatureExtractor
from adaptrec.recommender.ranking import DiversityRanker, RankingConfig, Recommendation
from adaptrec.recommender.train import (
    Trainer,
    TrainingConfig,
    TrainingEvent,
    create_trainer,
)

# Configure module logger
logger = logging.getLogger(__name__)

MAX_RATIONALE_TAGS = 2

# (max history length, recommendation count); longer histories get the cap
RECOMMENDATION_STEPS = ((0, 0), (2, 4), (4, 5), (7, 6), (9, 8))
MAX_RECOMMENDATIONS = 10


def desired_recommendation_count(num_purchases: int) -> int:
    """Number of recommendations to show for a history of this length."""
    for max_purchases, count in RECOMMENDATION_STEPS:
        if num_purchases <= max_purchases:
            return count
    return MAX_RECOMMENDATIONS


def build_rationale(product: Product, history: Sequence[PurchaseRecord]) -> str:
    """Explain why a product is suggested, most specific reason first."""
    if not history:
        return "Popular pick"

    category_counts = Counter(r.product.category for r in history)
    count = category_counts.get(product.category, 0)
    if count >= 2:
        return f"You have bought {count} items in {product.category}"
    if count == 1:
        return f"Based on your purchases in {product.category}"

    seen_tags = {tag for r in history for tag in (r.product.tags or ())}
    shared = [tag for tag in (product.tags or ()) if tag in seen_tags]
    if shared:
        return "Matches your interests: " + ", ".join(shared[:MAX_RATIONALE_TAGS])

    return "Recommended for you"


@dataclass
class RecommendationResult:
    """Recommendations plus a stats snapshot taken after training."""

    recommendations: List[Recommendation] = field(default_factory=list)
    stats: Dict = field(default_factory=dict)


class RecommendationService:
    """Session-scoped recommendation engine.

    Holds one scorer and its trainer. Public operations take a re-entrant
    lock, so a retrain-and-recommend pass finishes before the next one starts.
    """

    def __init__(
        self,
        catalog: Catalog,
        training_config: Optional[TrainingConfig] = None,
        ranking_config: Optional[RankingConfig] = None,
    ):
        self.catalog = catalog
        self.training_config = training_config or TrainingConfig()
        self.extractor = FeatureExtractor(catalog, self.training_config.max_reference_price)
        self.trainer: Trainer = create_trainer(catalog, self.training_config, self.extractor)
        self.ranker = DiversityRanker(ranking_config)
        self._lock = threading.RLock()

        logger.info(
            f"Initialized RecommendationService: scorer={self.trainer.scorer.name}, "
            f"catalog_size={len(catalog)}"
        )

    @property
    def scorer(self):
        return self.trainer.scorer

    @property
    def generation(self) -> int:
        return self.trainer.generation

    def train(self, history: Sequence[PurchaseRecord]) -> Optional[TrainingEvent]:
        """Run one training pass. May raise TrainingError."""
        with self._lock:
            return self.trainer.train(history)

    def score_candidates(self, history: Sequence[PurchaseRecord]) -> List[Recommendation]:
        """Score every valid, unpurchased catalog product, in catalog order."""
        bought = purchased_ids(history)
        unpurchased = [p for p in self.catalog if p.product_id not in bought]
        products, matrix, _ = self.extractor.extract_many(unpurchased, history)
        scores = self.scorer.predict_many(matrix)

        return [
            Recommendation(
                product=product,
                score=float(score),
                rationale=build_rationale(product, history),
            )
            for product, score in zip(products, scores)
        ]

    def recommend(
        self, history: Sequence[PurchaseRecord], n: Optional[int] = None
    ) -> List[Recommendation]:
        """Rank recommendations for ``history`` without training.

        Args:
            history: Purchase history, oldest first.
            n: Number of recommendations; defaults to the count derived from
                the history length.

        Returns:
            Up to ``n`` recommendations. Empty when the history is empty.
        """
        with self._lock:
            if not history:
                return []
            if n is None:
                n = desired_recommendation_count(len(history))

            start_time = time.time()
            candidates = self.score_candidates(history)
            recommendations = self.ranker.rank(candidates, n)

            logger.info(
                "Recommendations generated",
                extra={
                    "num_purchases": len(history),
                    "num_candidates": len(candidates),
                    "num_recommendations": len(recommendations),
                    "generation": self.generation,
                    "scoring_time_ms": round((time.time() - start_time) * 1000, 2),
                },
            )
            return recommendations

    def update(self, history: Sequence[PurchaseRecord]) -> RecommendationResult:
        """Retrain on ``history`` and recommend, as one serialized pass.

        Raises:
            TrainingError: If training fails; no recommendations are produced.
        """
        with self._lock:
            self.trainer.train(history)
            n = desired_recommendation_count(len(history))
            recommendations = self.recommend(history, n) if n else []
            return RecommendationResult(recommendations=recommendations, stats=self.get_stats())

    def get_stats(self) -> Dict:
        """Generation, current parameters and the training log."""
        with self._lock:
            return {
                "generation": self.trainer.generation,
                "parameters": self.scorer.get_parameters(),
                "training_log": self.trainer.get_log(),
            }

    def reset(self) -> None:
        """Discard parameters and log, back to the untrained prior."""
        with self._lock:
            self.trainer.reset()
            logger.info("Recommendation service reset")

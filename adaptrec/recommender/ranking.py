"""Diversity-constrained ranking.

Turns scored candidates into a bounded top-N list that does not let a single
category crowd out the others.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from adaptrec.recommender.catalog import Product

# Configure module logger
logger = logging.getLogger(__name__)

DEFAULT_BASE_QUOTA = 3
DEFAULT_FLOOR_RATIO = 0.7
DEFAULT_MIN_FLOOR = 0.2


@dataclass
class Recommendation:
    """A product suggestion with its score and explanation."""

    product: Product
    score: float
    rationale: str = ""

    @property
    def product_id(self):
        return self.product.product_id

    @property
    def category(self) -> Optional[str]:
        return self.product.category


@dataclass
class RankingConfig:
    """Configuration for DiversityRanker.

    ``score_floor`` overrides the derived same-category floor when set.
    """

    base_quota: int = DEFAULT_BASE_QUOTA
    floor_ratio: float = DEFAULT_FLOOR_RATIO
    min_floor: float = DEFAULT_MIN_FLOOR
    score_floor: Optional[float] = None


class DiversityRanker:
    """Greedy ranker with a category diversity constraint."""

    def __init__(self, config: Optional[RankingConfig] = None):
        self.config = config or RankingConfig()

    def same_category_floor(self, candidates: Sequence[Recommendation]) -> float:
        """Score a same-category repeat must exceed once the quota is full.

        Args:
            candidates: All scored candidates for the current ranking call.

        Returns:
            ``config.score_floor`` when set, otherwise the larger of
            ``floor_ratio`` times the mean candidate score and ``min_floor``.
            An empty candidate list has a mean of 0.
        """
        if self.config.score_floor is not None:
            return self.config.score_floor
        mean_score = float(np.mean([c.score for c in candidates])) if candidates else 0.0
        return max(mean_score * self.config.floor_ratio, self.config.min_floor)

    def rank(self, candidates: Sequence[Recommendation], n: int) -> List[Recommendation]:
        """Select and order at most ``n`` candidates.

        Args:
            candidates: Scored candidates in catalog order. Must not contain
                purchased products or repeated ids.
            n: Number of recommendations wanted.

        Returns:
            ``min(n, len(candidates))`` recommendations, best first.

        Raises:
            ValueError: If a product id appears more than once.
        """
        ids = [c.product_id for c in candidates]
        if len(ids) != len(set(ids)):
            raise ValueError("Candidates contain duplicate product ids")
        if n <= 0 or not candidates:
            return []

        # sorted() is stable, so ties keep catalog order
        ordered = sorted(candidates, key=lambda c: c.score, reverse=True)
        floor = self.same_category_floor(candidates)

        selected: List[Recommendation] = []
        selected_ids = set()
        used_categories = set()

        for candidate in ordered:
            if len(selected) >= n:
                break
            new_category = candidate.category not in used_categories
            if new_category or len(selected) < self.config.base_quota or candidate.score > floor:
                selected.append(candidate)
                selected_ids.add(candidate.product_id)
                used_categories.add(candidate.category)

        if len(selected) < n:
            backfill = [c for c in ordered if c.product_id not in selected_ids]
            backfill = backfill[: n - len(selected)]
            selected.extend(backfill)
            logger.debug(f"Backfilled {len(backfill)} recommendations ignoring diversity")

        logger.debug(
            "Ranked candidates",
            extra={
                "num_candidates": len(candidates),
                "num_selected": len(selected),
                "num_categories": len(used_categories),
                "score_floor": round(floor, 4),
            },
        )
        return selected

"""Model training module.

Runs one training pass of a scorer per call, keeps the generation counter
and the append-only training log, and rolls the scorer back when a pass
fails.
"""

import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from adaptrec.exceptions import TrainingError
from adaptrec.recommender.catalog import Catalog, PurchaseRecord
from adaptrec.recommender.features import FeatureExtractor
from adaptrec.recommender.scoring import (
    DEFAULT_EPOCHS,
    DEFAULT_HIDDEN_LAYERS,
    DEFAULT_LEARNING_RATE,
    DEFAULT_MAX_WEIGHT,
    DEFAULT_MIN_WEIGHT,
    DEFAULT_NEURAL_LEARNING_RATE,
    DEFAULT_RANDOM_STATE,
    HeuristicScorer,
    RandomState,
    Scorer,
    build_scorer,
)

# Configure module logger
logger = logging.getLogger(__name__)

DEFAULT_SCORER = HeuristicScorer.name


@dataclass
class TrainingConfig:
    """Hyper-parameters for a scorer and its trainer."""

    scorer: str = DEFAULT_SCORER
    learning_rate: float = DEFAULT_LEARNING_RATE
    min_weight: float = DEFAULT_MIN_WEIGHT
    max_weight: float = DEFAULT_MAX_WEIGHT
    hidden_layers: Tuple[int, ...] = DEFAULT_HIDDEN_LAYERS
    epochs: int = DEFAULT_EPOCHS
    neural_learning_rate: float = DEFAULT_NEURAL_LEARNING_RATE
    max_reference_price: Optional[float] = None
    random_state: RandomState = DEFAULT_RANDOM_STATE

    def scorer_kwargs(self) -> Dict:
        if self.scorer == HeuristicScorer.name:
            return {
                "learning_rate": self.learning_rate,
                "min_weight": self.min_weight,
                "max_weight": self.max_weight,
            }
        return {
            "hidden_layers": self.hidden_layers,
            "learning_rate": self.neural_learning_rate,
            "epochs": self.epochs,
        }


@dataclass(frozen=True)
class TrainingEvent:
    """One entry of the training log."""

    generation: int
    num_purchases: int
    loss: float
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


class Trainer:
    """Drives training passes of a scorer.

    Every successful call advances the generation by one and appends one
    TrainingEvent, even when the history has not changed since the last call.
    """

    def __init__(self, scorer: Scorer):
        self.scorer = scorer
        self.generation = 0
        self._log: List[TrainingEvent] = []

    def train(self, history: Sequence[PurchaseRecord]) -> Optional[TrainingEvent]:
        """Run one training pass.

        Args:
            history: Purchase history, oldest first.

        Returns:
            The appended TrainingEvent, or None if the history is empty.

        Raises:
            TrainingError: If the scorer update fails. Parameters, generation
                and log are left exactly as they were before the call.
        """
        if not history:
            logger.debug("Empty history, skipping training")
            return None

        start_time = time.time()
        state = self.scorer.snapshot()
        try:
            loss = self.scorer.train(history)
        except Exception as e:
            self.scorer.restore(state)
            logger.error(
                "Training failed, parameters restored",
                extra={
                    "generation": self.generation,
                    "num_purchases": len(history),
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
            raise TrainingError(self.generation, e) from e

        self.generation += 1
        event = TrainingEvent(
            generation=self.generation,
            num_purchases=len(history),
            loss=loss,
        )
        self._log.append(event)

        logger.info(
            "Training pass completed",
            extra={
                "generation": self.generation,
                "num_purchases": len(history),
                "loss": round(loss, 6),
                "scorer": self.scorer.name,
                "train_time_ms": round((time.time() - start_time) * 1000, 2),
            },
        )
        return event

    @property
    def latest_event(self) -> Optional[TrainingEvent]:
        return self._log[-1] if self._log else None

    def get_log(self) -> List[TrainingEvent]:
        return list(self._log)

    def reset(self) -> None:
        """Discard the log and return the scorer to its untrained prior."""
        self.scorer.reset()
        self.generation = 0
        self._log = []


def create_trainer(
    catalog: Catalog,
    config: Optional[TrainingConfig] = None,
    extractor: Optional[FeatureExtractor] = None,
) -> Trainer:
    """Build a Trainer with the scorer described by ``config``."""
    config = config or TrainingConfig()
    extractor = extractor or FeatureExtractor(catalog, config.max_reference_price)
    scorer = build_scorer(
        config.scorer,
        extractor,
        catalog,
        random_state=config.random_state,
        **config.scorer_kwargs(),
    )
    return Trainer(scorer)

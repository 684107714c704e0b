"""Scoring models.

Two interchangeable realizations of the ``Scorer`` interface: an adaptive
heuristic scorer with per-category weights, and a small feed-forward network
trained on labels derived from the purchase history.
"""

import copy
import logging
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Sequence, Tuple, Union

import numpy as np
from scipy.special import expit
from sklearn.metrics import mean_squared_error

from adaptrec.recommender.catalog import Catalog, Product, PurchaseRecord, purchased_ids
from adaptrec.recommender.features import FeatureExtractor

# Configure module logger
logger = logging.getLogger(__name__)

RandomState = Union[int, np.random.Generator, None]

DEFAULT_RANDOM_STATE = 42
RECENT_WINDOW = 3

# Heuristic factor constants
CATEGORY_FACTOR = 3.0
PRICE_BAND_BONUS = 1.5
PRICE_FIT_FACTOR = 2.0
TAG_OVERLAP_FACTOR = 2.5
RECENCY_BONUS = 1.2
DIVERSITY_PENALTY = 0.3
OVERREPRESENTED_SHARE = 0.5
PRIOR_MAX_SCORE = 0.3
DEFAULT_CATEGORY_WEIGHT = 0.5

# Heuristic training defaults
DEFAULT_LEARNING_RATE = 0.1
DEFAULT_MIN_WEIGHT = 0.3
DEFAULT_MAX_WEIGHT = 2.5
DECAY_FRACTION = 0.1
INITIAL_WEIGHT_RANGE = (0.5, 1.0)
INITIAL_DIVERSITY_INDEX = 0.5

# Neural training defaults
DEFAULT_HIDDEN_LAYERS = (16, 8)
DEFAULT_EPOCHS = 60
DEFAULT_NEURAL_LEARNING_RATE = 0.5
LABEL_CAP = 0.7
LABEL_CATEGORY_WEIGHT = 0.6
LABEL_TAG_WEIGHT = 0.4

# Neural input columns: category share, tag overlap, price-band indicator,
# normalized price, price deviation. The first three carry non-negative weights.
N_NEURAL_INPUTS = 5
MONOTONE_INPUTS = [0, 1, 2]


@dataclass(frozen=True)
class HistoryProfile:
    """Aggregate view of a purchase history used by the scorers."""

    num_purchases: int
    category_counts: Dict[str, int] = field(default_factory=dict)
    seen_tags: FrozenSet[str] = frozenset()
    recent_categories: FrozenSet[str] = frozenset()

    @classmethod
    def from_history(cls, history: Sequence[PurchaseRecord]) -> "HistoryProfile":
        counts = Counter(r.product.category for r in history if r.product.category)
        seen_tags = frozenset(tag for r in history for tag in (r.product.tags or ()))
        recent = frozenset(
            r.product.category for r in history[-RECENT_WINDOW:] if r.product.category
        )
        return cls(
            num_purchases=len(history),
            category_counts=dict(counts),
            seen_tags=seen_tags,
            recent_categories=recent,
        )

    def category_share(self, category: Optional[str]) -> float:
        if not self.num_purchases or category is None:
            return 0.0
        return self.category_counts.get(category, 0) / self.num_purchases

    def tag_overlap(self, tags: Sequence[str]) -> float:
        if not tags:
            return 0.0
        return len(set(tags) & self.seen_tags) / len(tags)


class Scorer(ABC):
    """Interface shared by all scoring models."""

    name = "base"

    @abstractmethod
    def train(self, history: Sequence[PurchaseRecord]) -> float:
        """Update parameters from a non-empty history and return the loss."""

    @abstractmethod
    def predict(self, vector: np.ndarray) -> float:
        """Map a feature vector to a relevance score in [0, 1]."""

    @abstractmethod
    def get_parameters(self) -> Dict:
        """Return a copy of the trainable parameters."""

    @abstractmethod
    def snapshot(self):
        """Capture the full mutable state for a later ``restore``."""

    @abstractmethod
    def restore(self, state) -> None:
        """Reinstate a state captured by ``snapshot``."""

    @abstractmethod
    def reset(self) -> None:
        """Return to the untrained prior."""

    def predict_many(self, matrix: np.ndarray) -> np.ndarray:
        return np.array([self.predict(row) for row in matrix], dtype=float)


class HeuristicScorer(Scorer):
    """Adaptive weighted-factor scorer.

    The score is the logistic of a sum of factors: category affinity,
    price fit, tag overlap, an over-representation penalty and a recency
    bonus. Category weights drift toward the user's purchase shares on
    every training pass.
    """

    name = "heuristic"

    def __init__(
        self,
        extractor: FeatureExtractor,
        learning_rate: float = DEFAULT_LEARNING_RATE,
        min_weight: float = DEFAULT_MIN_WEIGHT,
        max_weight: float = DEFAULT_MAX_WEIGHT,
        random_state: RandomState = DEFAULT_RANDOM_STATE,
    ):
        """Initialize the scorer with random starting weights.

        Args:
            extractor: Feature extractor whose vectors this scorer reads
            learning_rate: Step applied per unit of purchase share
            min_weight: Lower bound for any category weight
            max_weight: Upper bound for any category weight
            random_state: Seed or generator for the initial weights and prior
        """
        self.extractor = extractor
        self.learning_rate = learning_rate
        self.min_weight = min_weight
        self.max_weight = max_weight
        self.random_state = random_state
        self._init_parameters()

        logger.info(
            f"Initialized HeuristicScorer: {len(self.category_weights)} categories, "
            f"learning_rate={learning_rate}, weight range=[{min_weight}, {max_weight}]"
        )

    def _init_parameters(self) -> None:
        rng = np.random.default_rng(self.random_state)
        low, high = INITIAL_WEIGHT_RANGE
        self.category_weights: Dict[str, float] = {
            category: float(rng.uniform(low, high)) for category in self.extractor.categories
        }
        self.avg_price = 0.0
        self.diversity_index = INITIAL_DIVERSITY_INDEX
        self._prior_weights = rng.uniform(0.0, 1.0, size=self.extractor.n_features)
        self._profile: Optional[HistoryProfile] = None

    def train(self, history: Sequence[PurchaseRecord]) -> float:
        """Move category weights toward the user's purchase shares.

        Each purchased category gains ``share * learning_rate``; categories
        absent from the history decay by a tenth of that step. Weights stay
        within ``[min_weight, max_weight]``.

        Args:
            history: Non-empty purchase history, oldest first

        Returns:
            Mean squared error of the updated scorer on the purchased products
            against a target of 1.0
        """
        profile = HistoryProfile.from_history(history)

        for category, count in profile.category_counts.items():
            if category not in self.category_weights:
                continue
            step = count / profile.num_purchases * self.learning_rate
            self.category_weights[category] = min(
                self.category_weights[category] + step, self.max_weight
            )
            for other in self.category_weights:
                if other not in profile.category_counts:
                    self.category_weights[other] = max(
                        self.category_weights[other] - step * DECAY_FRACTION, self.min_weight
                    )

        self.avg_price = float(np.mean([r.product.price for r in history]))
        self.diversity_index = len(profile.category_counts) / max(len(self.category_weights), 1)
        self._profile = profile

        # How well the updated model scores what the user actually bought
        _, matrix, _ = self.extractor.extract_many([r.product for r in history], history)
        if not len(matrix):
            return 0.0
        predictions = self.predict_many(matrix)
        return float(mean_squared_error(np.ones(len(predictions)), predictions))

    def predict(self, vector: np.ndarray) -> float:
        """Score one feature vector against the last trained history.

        Before any training the score comes from a fixed random prior and
        never exceeds ``PRIOR_MAX_SCORE``.

        Args:
            vector: Feature vector built by the scorer's extractor

        Returns:
            Relevance score in [0, 1]
        """
        if self._profile is None:
            # Untrained prior, stable for a given vector
            raw = float(np.dot(self._prior_weights, vector))
            return PRIOR_MAX_SCORE * (1.0 - float(np.exp(-max(raw, 0.0))))

        view = self.extractor.decode(vector)
        share = self._profile.category_share(view.category)
        weight = self.category_weights.get(view.category, DEFAULT_CATEGORY_WEIGHT)

        score = share * weight * CATEGORY_FACTOR
        if view.in_price_band:
            score += PRICE_BAND_BONUS
        score += (1.0 - min(view.price_deviation, 1.0)) * PRICE_FIT_FACTOR
        score += self._profile.tag_overlap(view.tags) * TAG_OVERLAP_FACTOR

        if share > OVERREPRESENTED_SHARE:
            score *= 1.0 - self.diversity_index * DIVERSITY_PENALTY

        if view.category in self._profile.recent_categories:
            score += RECENCY_BONUS

        return float(expit(score))

    def get_parameters(self) -> Dict:
        """Return the category weights, average price and diversity index."""
        return {
            "category_weights": dict(self.category_weights),
            "avg_price": self.avg_price,
            "diversity_index": self.diversity_index,
        }

    def snapshot(self):
        return (
            dict(self.category_weights),
            self.avg_price,
            self.diversity_index,
            self._profile,
        )

    def restore(self, state) -> None:
        weights, self.avg_price, self.diversity_index, self._profile = state
        self.category_weights = dict(weights)

    def reset(self) -> None:
        self._init_parameters()


class NeuralScorer(Scorer):
    """Small feed-forward network scorer.

    ``tanh`` hidden layers and a sigmoid output unit, fitted by full-batch
    gradient descent on squared error. The network does not see the raw
    feature vector: each vector is decoded into five inputs measured against
    the history profile captured at training time (category share, tag
    overlap, price-band indicator, normalized price, price deviation).

    First-layer weights from the first three inputs and every weight after
    the first layer are projected onto the non-negative orthant after each
    step. With monotone activations this makes the score non-decreasing in
    category affinity, tag overlap and price fit for any trained parameters.
    """

    name = "neural"

    def __init__(
        self,
        extractor: FeatureExtractor,
        catalog: Catalog,
        hidden_layers: Tuple[int, ...] = DEFAULT_HIDDEN_LAYERS,
        learning_rate: float = DEFAULT_NEURAL_LEARNING_RATE,
        epochs: int = DEFAULT_EPOCHS,
        random_state: RandomState = DEFAULT_RANDOM_STATE,
    ):
        """Initialize the network.

        Args:
            extractor: Feature extractor whose vectors this scorer reads
            catalog: Catalog the training examples are drawn from
            hidden_layers: Width of each hidden layer (one or two layers)
            learning_rate: Gradient descent step size
            epochs: Full-batch passes per training call
            random_state: Seed or generator for weight initialization

        Raises:
            ValueError: If ``hidden_layers`` does not define one or two layers
        """
        if not 1 <= len(hidden_layers) <= 2:
            raise ValueError("hidden_layers must define one or two hidden layers")

        self.extractor = extractor
        self.catalog = catalog
        self.hidden_layers = tuple(hidden_layers)
        self.learning_rate = learning_rate
        self.epochs = epochs
        self.random_state = random_state
        self._init_parameters()

        logger.info(
            f"Initialized NeuralScorer: layers={self.layer_sizes}, "
            f"learning_rate={learning_rate}, epochs={epochs}"
        )

    @property
    def layer_sizes(self) -> List[int]:
        return [N_NEURAL_INPUTS, *self.hidden_layers, 1]

    def _init_parameters(self) -> None:
        rng = np.random.default_rng(self.random_state)
        sizes = self.layer_sizes
        self.weights: List[np.ndarray] = [
            rng.normal(0.0, 1.0 / np.sqrt(n_in), size=(n_in, n_out))
            for n_in, n_out in zip(sizes[:-1], sizes[1:])
        ]
        self.biases: List[np.ndarray] = [np.zeros(n_out) for n_out in sizes[1:]]
        self._profile: Optional[HistoryProfile] = None
        self._project()

    def _project(self) -> None:
        self.weights[0][MONOTONE_INPUTS] = np.abs(self.weights[0][MONOTONE_INPUTS])
        for i in range(1, len(self.weights)):
            self.weights[i] = np.maximum(self.weights[i], 0.0)

    def _inputs(self, matrix: np.ndarray) -> np.ndarray:
        """Decode feature vectors into the network's input columns."""
        profile = self._profile or HistoryProfile(num_purchases=0)
        rows = []
        for vector in matrix:
            view = self.extractor.decode(vector)
            rows.append([
                profile.category_share(view.category),
                profile.tag_overlap(view.tags),
                1.0 if view.in_price_band else 0.0,
                view.price_norm,
                view.price_deviation,
            ])
        return np.array(rows, dtype=float).reshape(-1, N_NEURAL_INPUTS)

    def _forward(self, X: np.ndarray) -> List[np.ndarray]:
        activations = [X]
        for i, (W, b) in enumerate(zip(self.weights, self.biases)):
            z = activations[-1] @ W + b
            if i == len(self.weights) - 1:
                activations.append(expit(z))
            else:
                activations.append(np.tanh(z))
        return activations

    def _labels(self, products: Sequence[Product], history: Sequence[PurchaseRecord]) -> np.ndarray:
        profile = HistoryProfile.from_history(history)
        bought = purchased_ids(history)
        labels = []
        for product in products:
            if product.product_id in bought:
                labels.append(1.0)
                continue
            blend = (
                LABEL_CATEGORY_WEIGHT * profile.category_share(product.category)
                + LABEL_TAG_WEIGHT * profile.tag_overlap(product.tags or ())
            )
            labels.append(min(blend, LABEL_CAP))
        return np.array(labels, dtype=float).reshape(-1, 1)

    def train(self, history: Sequence[PurchaseRecord]) -> float:
        """Fit the network to labels derived from the history.

        Purchased products are labelled 1.0; every other valid catalog
        product gets a capped blend of its category share and tag overlap.

        Args:
            history: Non-empty purchase history, oldest first

        Returns:
            Mean squared error of the fitted network on the training labels

        Raises:
            ValueError: If no catalog product yields a valid feature vector
            FloatingPointError: If the optimization overflows or diverges
        """
        products, matrix, _ = self.extractor.extract_many(self.catalog.products, history)
        if not len(products):
            raise ValueError("No valid catalog products to train on")
        self._profile = HistoryProfile.from_history(history)
        X = self._inputs(matrix)
        y = self._labels(products, history)
        m = len(y)

        with np.errstate(over="raise", invalid="raise", divide="raise"):
            for _ in range(self.epochs):
                activations = self._forward(X)
                output = activations[-1]
                delta = 2.0 * (output - y) / m * output * (1.0 - output)

                for i in reversed(range(len(self.weights))):
                    grad_W = activations[i].T @ delta
                    grad_b = delta.sum(axis=0)
                    if i > 0:
                        next_delta = (delta @ self.weights[i].T) * (1.0 - activations[i] ** 2)
                    self.weights[i] -= self.learning_rate * grad_W
                    self.biases[i] -= self.learning_rate * grad_b
                    if i > 0:
                        delta = next_delta
                self._project()

            loss = float(mean_squared_error(y, self._forward(X)[-1]))

        if not np.isfinite(loss) or not all(np.isfinite(W).all() for W in self.weights):
            raise FloatingPointError("Optimization diverged")

        logger.debug(f"Neural training finished: {m} examples, loss={loss:.6f}")
        return loss

    def predict(self, vector: np.ndarray) -> float:
        """Score one feature vector.

        Args:
            vector: Feature vector built by the scorer's extractor

        Returns:
            Relevance score in [0, 1]
        """
        output = self._forward(self._inputs(np.asarray(vector, dtype=float).reshape(1, -1)))[-1]
        return float(np.clip(output[0, 0], 0.0, 1.0))

    def predict_many(self, matrix: np.ndarray) -> np.ndarray:
        """Score a matrix of feature vectors in one forward pass.

        Args:
            matrix: One feature vector per row

        Returns:
            Array of scores in [0, 1], one per row
        """
        if not len(matrix):
            return np.empty(0)
        return np.clip(self._forward(self._inputs(matrix))[-1][:, 0], 0.0, 1.0)

    def get_parameters(self) -> Dict:
        """Return copies of the layer sizes, weights and biases."""
        return {
            "layer_sizes": self.layer_sizes,
            "weights": [W.copy() for W in self.weights],
            "biases": [b.copy() for b in self.biases],
        }

    def snapshot(self):
        return copy.deepcopy((self.weights, self.biases, self._profile))

    def restore(self, state) -> None:
        self.weights, self.biases, self._profile = copy.deepcopy(state)

    def reset(self) -> None:
        self._init_parameters()


def build_scorer(
    kind: str,
    extractor: FeatureExtractor,
    catalog: Catalog,
    random_state: RandomState = DEFAULT_RANDOM_STATE,
    **kwargs,
) -> Scorer:
    """Create a scorer by name (``"heuristic"`` or ``"neural"``)."""
    if kind == HeuristicScorer.name:
        return HeuristicScorer(extractor, random_state=random_state, **kwargs)
    if kind == NeuralScorer.name:
        return NeuralScorer(extractor, catalog, random_state=random_state, **kwargs)
    raise ValueError(f"Unknown scorer kind: {kind!r}")

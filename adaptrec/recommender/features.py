"""Feature extraction for catalog products.

Turns a (product, history) pair into a fixed-length vector: category
indicators, tag indicators and three price scalars.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np
from sklearn.preprocessing import MultiLabelBinarizer

from adaptrec.exceptions import ValidationError
from adaptrec.recommender.catalog import Catalog, Product, PurchaseRecord

# Configure module logger
logger = logging.getLogger(__name__)

# Price deviation reported when there is no history to compare against
EMPTY_HISTORY_DEVIATION = 0.5
N_PRICE_FEATURES = 3


@dataclass(frozen=True)
class FeatureView:
    """Human-readable view of a feature vector."""

    category: Optional[str]
    tags: Tuple[str, ...]
    price_norm: float
    price_deviation: float
    in_price_band: bool


class FeatureExtractor:
    """Builds feature vectors with a layout frozen from the catalog.

    Layout: ``[category indicators | tag indicators | price_norm,
    price_deviation, in_price_band]``.
    """

    def __init__(self, catalog: Catalog, max_reference_price: Optional[float] = None):
        self.categories = catalog.categories
        self.tag_vocabulary = catalog.tag_vocabulary
        self.max_reference_price = float(max_reference_price or catalog.max_price)

        self._category_encoder = MultiLabelBinarizer(classes=list(self.categories))
        self._category_encoder.fit([self.categories])
        self._tag_encoder = MultiLabelBinarizer(classes=list(self.tag_vocabulary))
        self._tag_encoder.fit([self.tag_vocabulary])

        self.n_categories = len(self.categories)
        self.n_tags = len(self.tag_vocabulary)
        self.n_features = self.n_categories + self.n_tags + N_PRICE_FEATURES

        # Offsets of the derived price scalars
        self.price_norm_index = self.n_categories + self.n_tags
        self.price_deviation_index = self.price_norm_index + 1
        self.price_band_index = self.price_norm_index + 2

        logger.debug(
            f"Initialized FeatureExtractor: {self.n_categories} categories, "
            f"{self.n_tags} tags, n_features={self.n_features}"
        )

    def validate(self, product: Product) -> None:
        """Raise ValidationError if the product cannot be encoded."""
        if not product.category:
            raise ValidationError(product.product_id, "missing category")
        if product.category not in self.categories:
            raise ValidationError(product.product_id, f"unknown category {product.category!r}")
        if product.tags is None:
            raise ValidationError(product.product_id, "missing tags")

    def extract(self, product: Product, history: Sequence[PurchaseRecord]) -> np.ndarray:
        """Return the feature vector of ``product`` given ``history``.

        Raises:
            ValidationError: If the product's category or tags are missing.
        """
        self.validate(product)

        category_part = self._category_encoder.transform([[product.category]])[0]
        tag_part = self._tag_encoder.transform([list(product.tags)])[0]

        price_norm = min(product.price / self.max_reference_price, 1.0)
        if history:
            prices = np.array([record.product.price for record in history], dtype=float)
            mean_price = prices.mean()
            deviation = min(abs(product.price - mean_price) / (mean_price or 1.0), 1.0)
            in_band = float(prices.min() <= product.price <= prices.max())
        else:
            deviation = EMPTY_HISTORY_DEVIATION
            in_band = 0.0

        return np.concatenate(
            [
                category_part.astype(float),
                tag_part.astype(float),
                np.array([price_norm, deviation, in_band], dtype=float),
            ]
        )

    def extract_many(
        self, products: Sequence[Product], history: Sequence[PurchaseRecord]
    ) -> Tuple[List[Product], np.ndarray, List[Product]]:
        """Extract vectors for a batch, setting malformed products aside.

        Returns:
            A tuple of (valid products, matrix of their vectors, rejected products).
        """
        valid, vectors, rejected = [], [], []
        for product in products:
            try:
                vectors.append(self.extract(product, history))
            except ValidationError as e:
                logger.warning(
                    "Excluding malformed product",
                    extra={"product_id": product.product_id, "reason": e.details["reason"]},
                )
                rejected.append(product)
                continue
            valid.append(product)

        matrix = np.vstack(vectors) if vectors else np.empty((0, self.n_features))
        return valid, matrix, rejected

    def decode(self, vector: np.ndarray) -> FeatureView:
        """Read back the category, tags and price scalars a vector encodes."""
        category_part = vector[: self.n_categories]
        tag_part = vector[self.n_categories : self.price_norm_index]

        category = None
        if category_part.size and category_part.max() > 0:
            category = self.categories[int(np.argmax(category_part))]
        tags = tuple(tag for tag, flag in zip(self.tag_vocabulary, tag_part) if flag > 0)

        return FeatureView(
            category=category,
            tags=tags,
            price_norm=float(vector[self.price_norm_index]),
            price_deviation=float(vector[self.price_deviation_index]),
            in_price_band=bool(vector[self.price_band_index] > 0),
        )

"""Catalog and purchase-history data model.

The catalog is loaded once and never mutated. Purchase histories are plain
ordered lists of PurchaseRecord, oldest first.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

import pandas as pd

from adaptrec.exceptions import UnknownProductError

# Configure module logger
logger = logging.getLogger(__name__)

ProductId = Union[int, str]

CATALOG_COLUMNS = {"product_id", "name", "category", "price", "tags"}
PURCHASE_COLUMNS = {"user_id", "product_id", "timestamp"}
TAG_SEPARATOR = "|"


@dataclass(frozen=True)
class Product:
    """Immutable catalog entry.

    ``category`` and ``tags`` may be None for malformed records; such products
    stay in the catalog but are rejected by feature extraction.
    """

    product_id: ProductId
    name: str
    category: Optional[str]
    price: float
    tags: Optional[Tuple[str, ...]] = ()
    image: str = ""

    def __post_init__(self):
        if not self.price > 0:
            raise ValueError(f"Product {self.product_id!r} has non-positive price {self.price}")
        if self.tags is not None:
            # Keep first-seen order, drop repeats
            object.__setattr__(self, "tags", tuple(dict.fromkeys(self.tags)))


@dataclass(frozen=True)
class PurchaseRecord:
    """A completed purchase."""

    product: Product
    purchased_at: datetime = field(default_factory=datetime.now)

    @property
    def product_id(self) -> ProductId:
        return self.product.product_id


UserHistory = List[PurchaseRecord]


def purchased_ids(history: Sequence[PurchaseRecord]) -> set:
    """Return the set of product ids present in a history."""
    return {record.product_id for record in history}


@dataclass(frozen=True)
class HistorySummary:
    """Spending totals for a purchase history."""

    total_spent: float
    favourite_category: Optional[str]
    favourite_category_count: int


def summarize_history(history: Sequence[PurchaseRecord]) -> HistorySummary:
    """Total spent and most purchased category of a history.

    Ties between categories go to the one purchased first. An empty history
    has no favourite category.
    """
    total = float(sum(record.product.price for record in history))
    counts = Counter(r.product.category for r in history if r.product.category)
    if not counts:
        return HistorySummary(total_spent=total, favourite_category=None, favourite_category_count=0)
    category, count = counts.most_common(1)[0]
    return HistorySummary(total_spent=total, favourite_category=category, favourite_category_count=count)


class Catalog:
    """Fixed, ordered, read-only product collection.

    The category set and the tag vocabulary are derived here once and stay
    frozen for the catalog's lifetime.
    """

    def __init__(self, products: Iterable[Product]):
        self._products: Tuple[Product, ...] = tuple(products)
        self._by_id: Dict[ProductId, Product] = {}
        for product in self._products:
            if product.product_id in self._by_id:
                raise ValueError(f"Duplicate product id in catalog: {product.product_id!r}")
            self._by_id[product.product_id] = product

        self.categories: Tuple[str, ...] = tuple(
            sorted({p.category for p in self._products if p.category})
        )
        self.tag_vocabulary: Tuple[str, ...] = tuple(
            sorted({tag for p in self._products if p.tags for tag in p.tags})
        )
        self.max_price: float = max((p.price for p in self._products), default=1.0)

        logger.info(
            "Catalog initialized",
            extra={
                "num_products": len(self._products),
                "num_categories": len(self.categories),
                "num_tags": len(self.tag_vocabulary),
            },
        )

    def __len__(self) -> int:
        return len(self._products)

    def __iter__(self) -> Iterator[Product]:
        return iter(self._products)

    def __contains__(self, product_id: object) -> bool:
        return product_id in self._by_id

    @property
    def products(self) -> Tuple[Product, ...]:
        return self._products

    def get(self, product_id: ProductId) -> Product:
        """Look up a product by id.

        Raises:
            UnknownProductError: If the id is not in the catalog.
        """
        try:
            return self._by_id[product_id]
        except KeyError:
            raise UnknownProductError(product_id) from None

    def purchase(
        self, product_id: ProductId, purchased_at: Optional[datetime] = None
    ) -> PurchaseRecord:
        """Build a PurchaseRecord for a catalog product."""
        product = self.get(product_id)
        return PurchaseRecord(product=product, purchased_at=purchased_at or datetime.now())


def _parse_tags(value) -> Optional[Tuple[str, ...]]:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return None
    return tuple(tag.strip() for tag in str(value).split(TAG_SEPARATOR) if tag.strip())


def load_catalog_csv(csv_path: str) -> Catalog:
    """Load a catalog from CSV.

    Expects columns ``product_id, name, category, price, tags`` and an
    optional ``image`` column. Tags are separated by ``|``. Empty category or
    tags cells are kept as missing values.

    Args:
        csv_path: Path to the catalog CSV file.

    Returns:
        The loaded Catalog, in file order.

    Raises:
        FileNotFoundError: If CSV file does not exist.
        ValueError: If CSV is missing required columns or is empty.

    Example:
        >>> catalog = load_catalog_csv("data/catalog.csv")
        >>> print(f"{len(catalog)} products in {len(catalog.categories)} categories")
    """
    csv_file = Path(csv_path)
    if not csv_file.exists():
        raise FileNotFoundError(f"CSV file not found: {csv_path}")

    logger.info(f"Loading catalog from {csv_path}")
    df = pd.read_csv(csv_path)

    if not CATALOG_COLUMNS.issubset(df.columns):
        missing = CATALOG_COLUMNS - set(df.columns)
        raise ValueError(f"CSV missing required columns: {missing}")

    if df.empty:
        raise ValueError("Cannot create catalog from empty CSV")

    products = []
    for row in df.itertuples(index=False):
        category = None if pd.isna(row.category) else str(row.category)
        image = getattr(row, "image", "")
        products.append(
            Product(
                product_id=row.product_id.item() if hasattr(row.product_id, "item") else row.product_id,
                name=str(row.name),
                category=category,
                price=float(row.price),
                tags=_parse_tags(row.tags),
                image="" if pd.isna(image) else str(image),
            )
        )

    logger.info(f"Loaded {len(products)} catalog records")
    return Catalog(products)


def load_purchases_csv(csv_path: str, catalog: Catalog, user_id) -> UserHistory:
    """Load one user's purchase history from a purchases CSV.

    Rows are ordered by timestamp so the returned history is oldest first.
    Rows pointing at products outside the catalog are skipped with a warning.

    Raises:
        FileNotFoundError: If CSV file does not exist.
        ValueError: If CSV is missing required columns.
    """
    csv_file = Path(csv_path)
    if not csv_file.exists():
        raise FileNotFoundError(f"CSV file not found: {csv_path}")

    df = pd.read_csv(csv_path, parse_dates=["timestamp"])
    if not PURCHASE_COLUMNS.issubset(df.columns):
        missing = PURCHASE_COLUMNS - set(df.columns)
        raise ValueError(f"CSV missing required columns: {missing}")

    user_rows = df[df["user_id"] == user_id].sort_values("timestamp", kind="stable")

    history: UserHistory = []
    for row in user_rows.itertuples(index=False):
        product_id = row.product_id.item() if hasattr(row.product_id, "item") else row.product_id
        if product_id not in catalog:
            logger.warning(f"Skipping purchase of unknown product {product_id}")
            continue
        history.append(catalog.purchase(product_id, row.timestamp.to_pydatetime()))

    logger.info(f"Loaded {len(history)} purchases for user {user_id}")
    return history

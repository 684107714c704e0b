"""Shared fixtures for the AdaptRec test suite."""

import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import List

import pytest

# Add project root to Python path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from adaptrec.recommender.catalog import Catalog, Product, PurchaseRecord


@pytest.fixture
def audio_catalog() -> Catalog:
    """One purchasable Audio product, five more Audio and five Electronics.

    Audio and Electronics candidates share no tags. Every product costs 100.
    """
    products = [Product(1, "Wireless Earbuds", "Audio", 100.0, ("wireless",))]
    products += [
        Product(pid, f"Speaker {pid}", "Audio", 100.0, ("hi-fi",)) for pid in range(2, 7)
    ]
    products += [
        Product(pid, f"Monitor {pid}", "Electronics", 100.0, ("4k",)) for pid in range(7, 12)
    ]
    return Catalog(products)


@pytest.fixture
def audio_history(audio_catalog: Catalog) -> List[PurchaseRecord]:
    return [audio_catalog.purchase(1, datetime(2024, 1, 1))]


@pytest.fixture
def mixed_catalog() -> Catalog:
    """Twenty-four products over four categories with overlapping tags."""
    layout = {
        "Audio": [("wireless", "bluetooth"), ("hi-fi",), ("wireless", "portable")],
        "Books": [("fiction",), ("science", "bestseller"), ("history",)],
        "Gaming": [("rgb", "pc"), ("wireless", "controller"), ("console",)],
        "Home": [("kitchen", "smart"), ("eco",), ("smart", "compact")],
    }
    products = []
    pid = 1
    for category, tag_sets in layout.items():
        for round_ in range(2):
            for tags in tag_sets:
                price = 20.0 + 15.0 * ((pid * 7) % 11)
                products.append(Product(pid, f"{category} {pid}", category, price, tags))
                pid += 1
    return Catalog(products)


@pytest.fixture
def mixed_history(mixed_catalog: Catalog) -> List[PurchaseRecord]:
    """Three Audio purchases and one Gaming purchase, oldest first."""
    start = datetime(2024, 3, 1)
    return [
        mixed_catalog.purchase(pid, start + timedelta(days=day))
        for day, pid in enumerate([1, 2, 15, 4])
    ]

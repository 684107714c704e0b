"""Generate a fake catalog and purchase data for testing and development.

This module creates a synthetic product catalog (categories, prices, tags)
and simulated purchases in which each user favours a couple of categories,
so that the adaptive model has a pattern to learn.

Example:
    Run the script directly to generate default data:
        $ python scripts/generate_fake_data.py

    Or import and use programmatically:
        from scripts.generate_fake_data import generate_fake_catalog
        catalog_df = generate_fake_catalog(num_products=60)
"""

import argparse
import random
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

# Default configuration constants
DEFAULT_NUM_PRODUCTS = 70
DEFAULT_NUM_USERS = 20
DEFAULT_PURCHASES_PER_USER = 12
DEFAULT_DAYS_BACK = 90
DEFAULT_SEED = 42
SECONDS_PER_DAY = 86400

# Category -> (price range, tag pool)
CATEGORY_PROFILES: Dict[str, Dict] = {
    "Audio": {"price": (20, 400), "tags": ["wireless", "bluetooth", "noise-cancelling", "portable", "hi-fi"]},
    "Electronics": {"price": (50, 1500), "tags": ["smart", "usb-c", "portable", "4k", "wireless"]},
    "Gaming": {"price": (30, 700), "tags": ["rgb", "controller", "console", "pc", "wireless"]},
    "Home": {"price": (10, 300), "tags": ["kitchen", "smart", "eco", "decor", "compact"]},
    "Sports": {"price": (15, 500), "tags": ["outdoor", "fitness", "running", "eco", "portable"]},
    "Books": {"price": (8, 60), "tags": ["fiction", "science", "history", "bestseller", "kids"]},
    "Fashion": {"price": (15, 250), "tags": ["casual", "premium", "eco", "running", "classic"]},
}


def generate_fake_catalog(
    num_products: int = DEFAULT_NUM_PRODUCTS,
    seed: int = DEFAULT_SEED,
) -> pd.DataFrame:
    """Generate a synthetic product catalog.

    Products are spread round-robin over the categories; each gets a price
    in its category's range and two or three tags from its tag pool.

    Returns:
        DataFrame with columns product_id, name, category, price, tags, image.

    Raises:
        ValueError: If num_products is not positive.
    """
    if num_products <= 0:
        raise ValueError("num_products must be positive")

    rng = random.Random(seed)
    categories = list(CATEGORY_PROFILES)
    rows = []
    for i in range(num_products):
        category = categories[i % len(categories)]
        profile = CATEGORY_PROFILES[category]
        low, high = profile["price"]
        tags = rng.sample(profile["tags"], rng.randint(2, 3))
        product_id = i + 1
        rows.append({
            "product_id": product_id,
            "name": f"{category} item {product_id}",
            "category": category,
            "price": round(rng.uniform(low, high), 2),
            "tags": "|".join(tags),
            "image": f"product_{product_id}.png",
        })
    return pd.DataFrame(rows)


def generate_fake_purchases(
    catalog_df: pd.DataFrame,
    num_users: int = DEFAULT_NUM_USERS,
    purchases_per_user: int = DEFAULT_PURCHASES_PER_USER,
    end_date: Optional[datetime] = None,
    seed: int = DEFAULT_SEED,
) -> pd.DataFrame:
    """Generate purchases where each user prefers two categories.

    About three quarters of each user's purchases come from their two
    favourite categories; the rest are drawn from the whole catalog.

    Returns:
        DataFrame with columns user_id, product_id, timestamp sorted by
        timestamp.
    """
    if num_users <= 0 or purchases_per_user <= 0:
        raise ValueError("num_users and purchases_per_user must be positive")

    rng = random.Random(seed)
    end_date = end_date or datetime.now()
    start_date = end_date - timedelta(days=DEFAULT_DAYS_BACK)
    total_seconds = int((end_date - start_date).total_seconds())

    by_category: Dict[str, List[int]] = {
        category: group["product_id"].tolist()
        for category, group in catalog_df.groupby("category")
    }
    all_ids = catalog_df["product_id"].tolist()

    purchases = []
    for user_id in range(1, num_users + 1):
        favourites = rng.sample(sorted(by_category), min(2, len(by_category)))
        for _ in range(purchases_per_user):
            if rng.random() < 0.75:
                product_id = rng.choice(by_category[rng.choice(favourites)])
            else:
                product_id = rng.choice(all_ids)
            purchases.append({
                "user_id": user_id,
                "product_id": product_id,
                "timestamp": start_date + timedelta(seconds=rng.randrange(total_seconds)),
            })

    df = pd.DataFrame(purchases)
    return df.sort_values("timestamp").reset_index(drop=True)


def main() -> None:
    """Write a catalog CSV and a purchases CSV."""
    parser = argparse.ArgumentParser(description="Generate fake catalog and purchase data")
    parser.add_argument("--output-dir", type=str, default="data", help="Output directory (default: data)")
    parser.add_argument("--num-products", type=int, default=DEFAULT_NUM_PRODUCTS)
    parser.add_argument("--num-users", type=int, default=DEFAULT_NUM_USERS)
    parser.add_argument("--purchases-per-user", type=int, default=DEFAULT_PURCHASES_PER_USER)
    parser.add_argument("--seed", type=int, default=DEFAULT_SEED)
    args = parser.parse_args()

    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    catalog_df = generate_fake_catalog(args.num_products, seed=args.seed)
    purchases_df = generate_fake_purchases(
        catalog_df, args.num_users, args.purchases_per_user, seed=args.seed
    )

    catalog_path = output_dir / "catalog.csv"
    purchases_path = output_dir / "purchases.csv"
    catalog_df.to_csv(catalog_path, index=False)
    purchases_df.to_csv(purchases_path, index=False)

    print(f"Generated {len(catalog_df)} products in {catalog_df['category'].nunique()} categories")
    print(f"Generated {len(purchases_df)} purchases for {args.num_users} users")
    print(f"Saved to {catalog_path} and {purchases_path}")


if __name__ == "__main__":
    main()

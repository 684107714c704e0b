"""CLI script for getting product recommendations.

Useful for testing and evaluation. Replays a user's purchases through a
fresh session, retraining after every purchase the way the live service
does, then prints the recommendations and model statistics.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional, Tuple

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from adaptrec.api.logging_config import setup_logging
from adaptrec.exceptions import AdaptRecException
from adaptrec.recommender.catalog import load_catalog_csv, load_purchases_csv
from adaptrec.recommender.evaluate import evaluate_recommendations
from adaptrec.recommender.ranking import Recommendation
from adaptrec.recommender.service import RecommendationService
from adaptrec.recommender.train import TrainingConfig

logger = logging.getLogger(__name__)


def get_recommendations(
    user_id: int,
    catalog_path: str = "data/catalog.csv",
    purchases_path: str = "data/purchases.csv",
    scorer: str = "heuristic",
    top_n: Optional[int] = None,
    evaluate: bool = False,
) -> Tuple[List[Recommendation], Dict, Optional[Dict]]:
    """Replay a user's history and recommend.

    Args:
        user_id: User whose purchases to replay
        catalog_path: Catalog CSV
        purchases_path: Purchases CSV
        scorer: "heuristic" or "neural"
        top_n: Number of recommendations (default: derived from history size)
        evaluate: If True, also compute quality metrics

    Returns:
        Tuple of (recommendations, stats, optional quality report)
    """
    try:
        catalog = load_catalog_csv(catalog_path)
        history = load_purchases_csv(purchases_path, catalog, user_id)
        service = RecommendationService(catalog, TrainingConfig(scorer=scorer))

        for i in range(1, len(history) + 1):
            service.train(history[:i])

        recommendations = service.recommend(history, top_n)
        stats = service.get_stats()
        report = None
        if evaluate:
            report = evaluate_recommendations(
                history, recommendations, stats, len(catalog.categories)
            )
        return recommendations, stats, report

    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except AdaptRecException as e:
        print(f"Error: {e.message}", file=sys.stderr)
        sys.exit(1)


def main() -> None:
    """Main CLI function."""
    parser = argparse.ArgumentParser(
        description="Get product recommendations for a user",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/recommend_cli.py 3
  python scripts/recommend_cli.py 3 --top-n 5
  python scripts/recommend_cli.py 3 --scorer neural --evaluate
        """
    )

    parser.add_argument("user_id", type=int, help="User ID to get recommendations for")
    parser.add_argument(
        "--top-n",
        type=int,
        default=None,
        help="Number of recommendations (default: derived from the number of purchases)"
    )
    parser.add_argument(
        "--scorer",
        type=str,
        choices=["heuristic", "neural"],
        default="heuristic",
        help="Scoring model (default: heuristic)"
    )
    parser.add_argument("--catalog", type=str, default="data/catalog.csv", help="Catalog CSV")
    parser.add_argument("--purchases", type=str, default="data/purchases.csv", help="Purchases CSV")
    parser.add_argument("--evaluate", action="store_true", help="Print quality metrics")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    args = parser.parse_args()

    setup_logging("INFO" if args.verbose else "WARNING", json_format=False)

    recommendations, stats, report = get_recommendations(
        user_id=args.user_id,
        catalog_path=args.catalog,
        purchases_path=args.purchases,
        scorer=args.scorer,
        top_n=args.top_n,
        evaluate=args.evaluate,
    )

    print(f"\nRecommendations for user {args.user_id} (scorer: {args.scorer}, "
          f"generation {stats['generation']}):")
    if not recommendations:
        print("  No purchases yet, nothing to recommend.")
    for rank, rec in enumerate(recommendations, start=1):
        print(f"  {rank:2d}. [{rec.score:.3f}] {rec.product.name} ({rec.category}) - {rec.rationale}")

    if stats["training_log"]:
        last = stats["training_log"][-1]
        print(f"\nLast training pass: {last.num_purchases} purchases, loss {last.loss:.4f}")

    if report:
        print("\nQuality metrics:")
        print(json.dumps(report, indent=2))

    print()


if __name__ == "__main__":
    main()

"""CLI script for sampling recommendations from a store snapshot.

Useful for testing and evaluation. Draws weighted samples for a user and
prints them to the console.
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from akin.recommender.config import DEFAULT_SAMPLE_SIZE
from akin.recommender.engine import RecommendationEngine
from akin.recommender.exceptions import NotFoundError
from akin.recommender.utils import load_store_snapshot

# Setup logging
logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s: %(message)s"
)
logger = logging.getLogger(__name__)


def main() -> None:
    """Main CLI function."""
    parser = argparse.ArgumentParser(
        description="Sample recommendations for a user",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/sample_cli.py user001
  python scripts/sample_cli.py user001 -n 5 --seed 42
  python scripts/sample_cli.py user001 --all
        """
    )

    parser.add_argument("user_id", type=str, help="User ID to sample for")
    parser.add_argument(
        "-n",
        type=int,
        default=DEFAULT_SAMPLE_SIZE,
        help=f"Number of samples to draw (default: {DEFAULT_SAMPLE_SIZE})"
    )
    parser.add_argument(
        "--store-dir",
        type=str,
        default="store",
        help="Directory containing the store snapshot (default: store)"
    )
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    parser.add_argument(
        "--all",
        action="store_true",
        help="Print every persisted recommendation instead of sampling"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.INFO)

    try:
        engine = RecommendationEngine(store=load_store_snapshot(args.store_dir))
    except FileNotFoundError as e:
        print(f"Error: Snapshot not found in {args.store_dir}", file=sys.stderr)
        print(f"  {e}", file=sys.stderr)
        sys.exit(1)

    if args.all:
        try:
            row = engine.get_recommendations_for_user(args.user_id)
        except NotFoundError as e:
            print(f"Error: {e.message}", file=sys.stderr)
            sys.exit(1)
        recommendations = sorted(row["recommendations"], key=lambda r: r["weight"], reverse=True)
        print(f"\nAll recommendations for user {args.user_id}:")
        for rec in recommendations:
            print(f"  {rec['item']}: {rec['weight']:.4f}")
        print()
        return

    samples = engine.sample_for_user(args.user_id, args.n, random_state=args.seed)

    print(f"\nSampled recommendations for user {args.user_id}:")
    if not samples:
        print("  (none)")
    for sample in samples:
        print(f"  {sample['item']}: {sample['score']:.4f}")
    print()


if __name__ == "__main__":
    main()

"""Command-line interface for running the Akin batch pipeline.

Loads activity from CSV into an in-memory store, recalculates item
weights, similarities and recommendations, and saves a store snapshot the
API can serve from.

Example:
    Run with default settings:
        $ python scripts/run_pipeline.py data/fake_activity.csv

    Run with custom parameters:
        $ python scripts/run_pipeline.py data/activity.csv \\
            --store-dir store/production \\
            --concurrency 4 \\
            --max-days 90 \\
            --action-weight purchase=3
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Dict, List

# Add project root to Python path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from akin.recommender.config import (
    DEFAULT_CONCURRENCY,
    DEFAULT_EASING,
    DEFAULT_EXPONENT,
    DEFAULT_MAX_DAYS,
    DecayConfig,
    EngineConfig,
)
from akin.recommender.engine import RecommendationEngine
from akin.recommender.exceptions import AkinException
from akin.recommender.store import (
    USER_ITEM_WEIGHTS,
    USER_RECOMMENDATIONS,
    USER_SIMILARITIES,
)
from akin.recommender.utils import (
    build_user_item_matrix,
    check_snapshot_exists,
    load_activity_csv,
    load_store_snapshot,
    save_store_snapshot,
)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the script.

    Args:
        verbose: If True, set log level to DEBUG. Otherwise, use INFO.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def parse_action_weights(values: List[str]) -> Dict[str, float]:
    """Parse ``action=weight`` pairs.

    Raises:
        ValueError: If a pair is malformed.
    """
    weights = {}
    for value in values:
        action, sep, weight = value.partition("=")
        if not sep or not action:
            raise ValueError(f"Expected action=weight, got '{value}'")
        weights[action] = float(weight)
    return weights


def parse_arguments() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Run the Akin collaborative-filtering pipeline over CSV activity.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with default settings
  python scripts/run_pipeline.py data/activity.csv

  # Add the CSV to an existing snapshot and recompute with 4 workers
  python scripts/run_pipeline.py data/activity.csv --append --concurrency 4

  # Weight purchases three times as much as views
  python scripts/run_pipeline.py data/activity.csv --action-weight purchase=3
        """,
    )

    parser.add_argument(
        "csv_path",
        type=str,
        help="Path to CSV file with columns: user_id, item_id, action, "
        "item_metadata, timestamp",
    )
    parser.add_argument(
        "--store-dir",
        type=str,
        default="store",
        help="Directory where the store snapshot is read and written (default: store)",
    )
    parser.add_argument(
        "--append",
        action="store_true",
        help="Load the existing snapshot first and add the CSV activity to it",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=DEFAULT_CONCURRENCY,
        help=f"Users processed at a time per stage (default: {DEFAULT_CONCURRENCY})",
    )
    parser.add_argument(
        "--max-days",
        type=float,
        default=DEFAULT_MAX_DAYS,
        help=f"Age in days after which activity stops counting (default: {DEFAULT_MAX_DAYS})",
    )
    parser.add_argument(
        "--exponent",
        type=float,
        default=DEFAULT_EXPONENT,
        help=f"Decay curve exponent (default: {DEFAULT_EXPONENT})",
    )
    parser.add_argument(
        "--easing",
        type=float,
        default=DEFAULT_EASING,
        help=f"Decay curve easing (default: {DEFAULT_EASING})",
    )
    parser.add_argument(
        "--action-weight",
        action="append",
        default=[],
        metavar="ACTION=WEIGHT",
        help="Base weight for an action; may be repeated",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )

    return parser.parse_args()


def main() -> int:
    """Main entry point for the pipeline script.

    Returns:
        Exit code: 0 on success, 1 on error.
    """
    try:
        args = parse_arguments()
        setup_logging(verbose=args.verbose)
        logger = logging.getLogger(__name__)

        config = EngineConfig(
            decay=DecayConfig(
                max_days=args.max_days, exponent=args.exponent, easing=args.easing
            ),
            action_weights=parse_action_weights(args.action_weight),
            concurrency=args.concurrency,
        )

        store = None
        if args.append and check_snapshot_exists(args.store_dir):
            store = load_store_snapshot(args.store_dir)

        engine = RecommendationEngine(store=store, config=config)
        loaded = load_activity_csv(args.csv_path, engine.store)

        logger.info("=" * 70)
        logger.info("Pipeline Configuration")
        logger.info("=" * 70)
        logger.info(f"CSV path:        {args.csv_path}")
        logger.info(f"Activity rows:   {loaded}")
        logger.info(f"Store directory: {args.store_dir}")
        logger.info(f"Concurrency:     {config.concurrency}")
        logger.info(f"Decay:           {config.decay}")
        logger.info(f"Action weights:  {config.action_weights or 'defaults'}")
        logger.info("=" * 70)

        durations = engine.recalculate_all()
        matrix, user_map, item_map = build_user_item_matrix(engine.store)
        snapshot_path = save_store_snapshot(engine.store, args.store_dir)

        logger.info("=" * 70)
        logger.info("Pipeline Summary")
        logger.info("=" * 70)
        logger.info(f"Users:            {len(user_map)}")
        logger.info(f"Items:            {len(item_map)}")
        logger.info(f"Non-zero weights: {matrix.nnz}")
        logger.info(f"Similarities:     {engine.store.count(USER_SIMILARITIES)}")
        logger.info(f"Weight rows:      {engine.store.count(USER_ITEM_WEIGHTS)}")
        logger.info(f"Recommendations:  {engine.store.count(USER_RECOMMENDATIONS)}")
        for stage, duration_ms in durations.items():
            logger.info(f"{stage:<17} {duration_ms} ms")
        logger.info(f"Snapshot saved to: {snapshot_path.absolute()}")
        logger.info("=" * 70)

        return 0

    except FileNotFoundError as e:
        logging.error(f"File error: {e}")
        return 1
    except (ValueError, AkinException) as e:
        logging.error(f"Pipeline error: {e}")
        return 1
    except KeyboardInterrupt:
        logging.warning("Pipeline interrupted by user")
        return 130
    except Exception as e:
        logging.error(f"Unexpected error: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())

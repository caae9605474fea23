"""Generate fake user activity data for testing and development.

This module creates a synthetic activity log for the Akin pipeline: CSV
rows of users viewing, liking and purchasing items at random times.

Example:
    Run the script directly to generate default data:
        $ python scripts/generate_fake_activity.py

    Or import and use programmatically:
        from scripts.generate_fake_activity import generate_fake_activity
        df = generate_fake_activity(num_users=100, num_items=200)
"""

import random
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional, Sequence

import pandas as pd

# Default configuration constants
DEFAULT_NUM_USERS = 50
DEFAULT_NUM_ITEMS = 100
DEFAULT_NUM_EVENTS = 1000
DEFAULT_DAYS_BACK = 200
DEFAULT_ACTIONS = ("view", "view", "view", "like", "purchase")
SECONDS_PER_DAY = 86400


def generate_fake_activity(
    num_users: int = DEFAULT_NUM_USERS,
    num_items: int = DEFAULT_NUM_ITEMS,
    num_events: int = DEFAULT_NUM_EVENTS,
    actions: Sequence[str] = DEFAULT_ACTIONS,
    end_date: Optional[datetime] = None,
    days_back: int = DEFAULT_DAYS_BACK,
    seed: Optional[int] = None,
) -> pd.DataFrame:
    """Generate a synthetic activity log.

    Timestamps span ``days_back`` days, which by default reaches past the
    180-day age-off window so some events decay to nothing.

    Args:
        num_users: Number of unique users to simulate. Must be positive.
        num_items: Number of unique items available. Must be positive.
        num_events: Total number of activity rows. Must be positive.
        actions: Actions to draw from (repeat an action to make it likelier).
        end_date: Latest possible timestamp. Defaults to now (UTC).
        days_back: Width of the timestamp window in days.
        seed: Optional random seed for reproducible output.

    Returns:
        A DataFrame with columns user_id, item_id, item_metadata, action and
        timestamp, sorted by timestamp.

    Raises:
        ValueError: If any numeric parameter is non-positive.
    """
    if num_users <= 0 or num_items <= 0 or num_events <= 0 or days_back <= 0:
        raise ValueError(
            "num_users, num_items, num_events and days_back must be positive"
        )

    rng = random.Random(seed)
    end_date = end_date or datetime.now(timezone.utc)

    events = []
    for _ in range(num_events):
        item_number = rng.randint(1, num_items)
        timestamp = end_date - timedelta(
            days=rng.randrange(days_back), seconds=rng.randrange(SECONDS_PER_DAY)
        )
        events.append({
            "user_id": f"user{rng.randint(1, num_users):03d}",
            "item_id": f"item{item_number:03d}",
            "item_metadata": "item",
            "action": rng.choice(list(actions)),
            "timestamp": timestamp.isoformat(),
        })

    df = pd.DataFrame(events)
    df = df.sort_values("timestamp").reset_index(drop=True)

    return df


def main() -> None:
    """Generate default fake activity and save it to data/fake_activity.csv."""
    print(f"Generating {DEFAULT_NUM_EVENTS} fake activity events...")
    print(f"Users: {DEFAULT_NUM_USERS}, Items: {DEFAULT_NUM_ITEMS}")

    try:
        df = generate_fake_activity()
    except ValueError as e:
        print(f"Error generating data: {e}")
        return

    data_dir = Path(__file__).parent.parent / "data"
    data_dir.mkdir(exist_ok=True)

    output_path = data_dir / "fake_activity.csv"
    df.to_csv(output_path, index=False)

    print(f"\nData generated successfully!")
    print(f"Saved to: {output_path}")
    print(f"\nData summary:")
    print(f"  Total events: {len(df)}")
    print(f"  Unique users: {df['user_id'].nunique()}")
    print(f"  Unique items: {df['item_id'].nunique()}")
    print(f"  Actions: {df['action'].value_counts().to_dict()}")


if __name__ == "__main__":
    main()

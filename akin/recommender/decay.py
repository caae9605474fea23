"""Time-based decay of user activity.

Each activity contributes its action's base weight scaled by an inverted
ease-in-out cubic of its age, reaching zero at ``max_days``.
"""

from datetime import datetime, timezone
from typing import Dict, Optional

from akin.recommender.config import DEFAULT_ACTION_WEIGHT, DecayConfig


def _as_utc(value: datetime) -> datetime:
    # naive timestamps are stored as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def days_old(occurred_at: datetime, now: Optional[datetime] = None) -> int:
    """Return the age of an activity in whole days.

    Activities dated in the future are treated as happening now.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    age = (_as_utc(now) - _as_utc(occurred_at)).days
    return age if age > 0 else 0


def decay_percentage(age_in_days: float, config: DecayConfig) -> float:
    """Fraction of the base weight that survives at the given age.

    Returns 1.0 for a brand new activity and 0.0 past ``config.max_days``.
    """
    age = max(0.0, age_in_days)
    if age > config.max_days:
        return 0.0

    relative_age = age / config.max_days
    if relative_age < 0.5:
        return 1 - config.easing * relative_age ** config.exponent
    return config.easing * (1 - relative_age) ** config.exponent


def activity_weight(
    action: str,
    age_in_days: float,
    config: DecayConfig,
    action_weights: Optional[Dict[str, float]] = None,
) -> float:
    """Weight contributed by one activity.

    Args:
        action: The action the user took (e.g. "view", "purchase").
        age_in_days: Age of the activity. Negative ages count as 0.
        config: Age-off configuration.
        action_weights: Optional per-action base weights.

    Returns:
        ``base_weight(action) * decay_percentage(age)``.
    """
    base_weight = (action_weights or {}).get(action, DEFAULT_ACTION_WEIGHT)
    return base_weight * decay_percentage(age_in_days, config)

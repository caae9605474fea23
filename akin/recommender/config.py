"""Configuration objects for the Akin pipeline.

All tunable values of a run live in an explicit ``EngineConfig`` that is
passed into every stage. The engine hands each run its own copy, so a change
made while a run is in progress only affects later runs.
"""

import copy
import math
from dataclasses import dataclass, field
from typing import Dict

from akin.recommender.exceptions import ConfigurationError

# Decay defaults
DEFAULT_MAX_DAYS = 180
DEFAULT_EXPONENT = 3
DEFAULT_EASING = 2
DEFAULT_ACTION_WEIGHT = 1.0

# Pipeline defaults
DEFAULT_CONCURRENCY = 2
DEFAULT_SIMILARITY_THRESHOLD = 0.1

# Sampling defaults
DEFAULT_MIN_RECOMMENDATION_WEIGHT = 0.5
DEFAULT_MAX_OWN_WEIGHT = 2.0
DEFAULT_SAMPLE_SIZE = 20


@dataclass
class DecayConfig:
    """Age-off configuration for the inverted ease-in-out cubic decay.

    Attributes:
        max_days: Age in days after which an activity contributes nothing.
        exponent: Power applied to the relative age.
        easing: Multiplier applied on both halves of the curve.
    """

    max_days: float = DEFAULT_MAX_DAYS
    exponent: float = DEFAULT_EXPONENT
    easing: float = DEFAULT_EASING

    def validate(self) -> None:
        """Raise ConfigurationError if any value is out of range.

        Besides the sign checks, ``easing * 0.5 ** exponent`` must not exceed
        0.5. Past that bound the first half of the curve ends below where
        the second half starts (older activity would outweigh newer), and
        for larger easing it goes negative.
        """
        for name in ("max_days", "exponent", "easing"):
            value = getattr(self, name)
            if not math.isfinite(value):
                raise ConfigurationError(
                    f"{name} must be a finite number, got {value}",
                    details={name: value},
                )
        if self.max_days <= 0:
            raise ConfigurationError(
                f"max_days must be positive, got {self.max_days}",
                details={"max_days": self.max_days},
            )
        if self.exponent < 0:
            raise ConfigurationError(
                f"exponent must be non-negative, got {self.exponent}",
                details={"exponent": self.exponent},
            )
        if self.easing < 0:
            raise ConfigurationError(
                f"easing must be non-negative, got {self.easing}",
                details={"easing": self.easing},
            )
        if self.easing * 0.5 ** self.exponent > 0.5:
            raise ConfigurationError(
                f"easing {self.easing} is too large for exponent {self.exponent}: "
                f"easing * 0.5 ** exponent must be at most 0.5",
                details={"exponent": self.exponent, "easing": self.easing},
            )


@dataclass
class SampleConfig:
    """Serve-time filtering thresholds for the sampler.

    An item survives filtering when its recommendation weight is above
    ``min_recommendation_weight`` or the user has an own weight for it of
    at most ``max_own_weight``. Items with no own weight only pass on the
    first condition.
    """

    min_recommendation_weight: float = DEFAULT_MIN_RECOMMENDATION_WEIGHT
    max_own_weight: float = DEFAULT_MAX_OWN_WEIGHT
    default_sample_size: int = DEFAULT_SAMPLE_SIZE

    def validate(self) -> None:
        if self.default_sample_size < 0:
            raise ConfigurationError(
                f"default_sample_size must be non-negative, got {self.default_sample_size}",
                details={"default_sample_size": self.default_sample_size},
            )


@dataclass
class EngineConfig:
    """Everything a pipeline run or a sample call needs to know.

    Attributes:
        decay: Age-off configuration.
        action_weights: Per-action base weights. Actions not listed use
            DEFAULT_ACTION_WEIGHT.
        concurrency: Number of users processed at a time by each stage.
        similarity_threshold: Similarities at or below this value are not
            used when aggregating recommendations.
        sample: Serve-time sampling thresholds.
    """

    decay: DecayConfig = field(default_factory=DecayConfig)
    action_weights: Dict[str, float] = field(default_factory=dict)
    concurrency: int = DEFAULT_CONCURRENCY
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD
    sample: SampleConfig = field(default_factory=SampleConfig)

    def validate(self) -> None:
        """Validate every nested section.

        Raises:
            ConfigurationError: If any value is out of range.
        """
        self.decay.validate()
        self.sample.validate()
        validate_concurrency(self.concurrency)
        for action, weight in self.action_weights.items():
            validate_action_weight(action, weight)

    def action_weight(self, action: str) -> float:
        return self.action_weights.get(action, DEFAULT_ACTION_WEIGHT)

    def copy(self) -> "EngineConfig":
        """Return an isolated deep copy for a single run."""
        return copy.deepcopy(self)


def validate_concurrency(concurrency: int) -> None:
    if not isinstance(concurrency, int) or concurrency < 1:
        raise ConfigurationError(
            f"concurrency must be a positive integer, got {concurrency!r}",
            details={"concurrency": concurrency},
        )


def validate_action_weight(action: str, weight: float) -> None:
    if not math.isfinite(weight) or weight < 0:
        raise ConfigurationError(
            f"Weight for action '{action}' must be a finite non-negative number, got {weight}",
            details={"action": action, "weight": weight},
        )

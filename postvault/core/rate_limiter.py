"""Adaptive rate limiting for Instagram API requests."""

import random
import time
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Mapping, Optional

from postvault.utils.config import MAX_BACKOFF_MULTIPLIER, RATE_LIMITS
from postvault.utils.logging import get_logger

logger = get_logger(__name__)


class RateLimitClass(Enum):
    """Request classes, each with its own delay profile."""
    PRIMARY_QUERY = "primary_query"
    COMMENT_LISTING = "comment_listing"
    REPLY_LISTING = "reply_listing"
    REPLY_PAGINATION = "reply_pagination"


@dataclass(frozen=True)
class RateLimitProfile:
    """Base delay range (seconds) and the factor applied on each throttle."""
    min_delay: float
    max_delay: float
    backoff: float


def default_profiles() -> Dict[RateLimitClass, RateLimitProfile]:
    """Build profiles from config.RATE_LIMITS."""
    return {
        cls: RateLimitProfile(
            min_delay=RATE_LIMITS[cls.value]["min"],
            max_delay=RATE_LIMITS[cls.value]["max"],
            backoff=RATE_LIMITS[cls.value]["backoff"],
        )
        for cls in RateLimitClass
    }


class AdaptiveRateLimiter:
    """
    Computes inter-request delays that grow when Instagram throttles us.

    Each request class carries a multiplier starting at 1.0. Every
    throttling signal multiplies it by the class backoff factor, capped at
    MAX_BACKOFF_MULTIPLIER. Multipliers never decay for the lifetime of the
    limiter, so one limiter should be shared by a whole batch run.

    The limiter never sleeps itself; callers await the returned duration.
    """

    def __init__(
        self,
        profiles: Optional[Mapping[RateLimitClass, RateLimitProfile]] = None,
        max_multiplier: float = MAX_BACKOFF_MULTIPLIER,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize rate limiter.

        Args:
            profiles: Delay profile per request class (default: from config)
            max_multiplier: Upper bound for every class multiplier
            rng: Random source for jitter (default: module-level random)
        """
        self.profiles = dict(profiles) if profiles is not None else default_profiles()
        self.max_multiplier = max_multiplier
        self._rng = rng or random.Random()
        self._multipliers: Dict[RateLimitClass, float] = {cls: 1.0 for cls in self.profiles}
        self._throttle_counts: Dict[RateLimitClass, int] = {cls: 0 for cls in self.profiles}
        self.last_throttle_time: Optional[float] = None

    def delay(self, rate_class: RateLimitClass) -> float:
        """
        Get the delay to wait before the next request of this class.

        Args:
            rate_class: Request class

        Returns:
            Delay in seconds, uniform in [min, max] times the class multiplier
        """
        profile = self.profiles[rate_class]
        base = self._rng.uniform(profile.min_delay, profile.max_delay)
        return base * self._multipliers[rate_class]

    def record_throttled(self, rate_class: RateLimitClass) -> float:
        """
        Register a throttling signal for a request class.

        Args:
            rate_class: Request class that was throttled

        Returns:
            The new multiplier for the class
        """
        profile = self.profiles[rate_class]
        current = self._multipliers[rate_class]
        updated = min(current * profile.backoff, self.max_multiplier)
        self._multipliers[rate_class] = updated
        self._throttle_counts[rate_class] += 1
        self.last_throttle_time = time.time()
        logger.warning(
            f"⚠️ Throttled on {rate_class.value}: delay multiplier {current:.2f}x -> {updated:.2f}x"
        )
        return updated

    def multiplier(self, rate_class: RateLimitClass) -> float:
        """Current multiplier for a request class."""
        return self._multipliers[rate_class]

    def throttle_count(self, rate_class: RateLimitClass) -> int:
        """Number of throttling signals recorded for a request class."""
        return self._throttle_counts[rate_class]

    def was_throttled(self) -> bool:
        """Whether any class has been throttled since creation."""
        return any(count > 0 for count in self._throttle_counts.values())

    def get_stats(self) -> dict:
        """
        Get rate limiter statistics.

        Returns:
            Dictionary with per-class multipliers and throttle counts
        """
        return {
            "multipliers": {cls.value: m for cls, m in self._multipliers.items()},
            "throttle_counts": {cls.value: c for cls, c in self._throttle_counts.items()},
            "last_throttle_time": self.last_throttle_time,
        }

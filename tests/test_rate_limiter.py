"""Tests for the adaptive rate limiter."""

import random

import pytest

from postvault.core.rate_limiter import (
    AdaptiveRateLimiter,
    RateLimitClass,
    RateLimitProfile,
    default_profiles,
)
from postvault.utils.config import RATE_LIMITS


def fixed_profiles(backoff: float = 2.0):
    return {cls: RateLimitProfile(1.0, 1.0, backoff) for cls in RateLimitClass}


class TestDelay:
    @pytest.mark.parametrize("rate_class", list(RateLimitClass))
    def test_fresh_delay_within_profile_range(self, rate_class):
        limiter = AdaptiveRateLimiter(rng=random.Random(1))
        profile = limiter.profiles[rate_class]

        for _ in range(50):
            delay = limiter.delay(rate_class)
            assert profile.min_delay <= delay <= profile.max_delay

    def test_delay_scales_with_multiplier(self):
        limiter = AdaptiveRateLimiter(profiles=fixed_profiles())

        limiter.record_throttled(RateLimitClass.COMMENT_LISTING)

        assert limiter.delay(RateLimitClass.COMMENT_LISTING) == pytest.approx(2.0)
        assert limiter.delay(RateLimitClass.REPLY_LISTING) == pytest.approx(1.0)

    def test_default_profiles_follow_config(self):
        profiles = default_profiles()

        for cls, profile in profiles.items():
            assert profile.min_delay == RATE_LIMITS[cls.value]["min"]
            assert profile.max_delay == RATE_LIMITS[cls.value]["max"]


class TestThrottling:
    def test_multiplier_grows_by_backoff_factor(self):
        limiter = AdaptiveRateLimiter(profiles=fixed_profiles(backoff=1.5))

        assert limiter.record_throttled(RateLimitClass.PRIMARY_QUERY) == pytest.approx(1.5)
        assert limiter.record_throttled(RateLimitClass.PRIMARY_QUERY) == pytest.approx(2.25)
        assert limiter.throttle_count(RateLimitClass.PRIMARY_QUERY) == 2

    @pytest.mark.parametrize("rate_class", list(RateLimitClass))
    def test_multiplier_never_exceeds_cap(self, rate_class):
        limiter = AdaptiveRateLimiter()

        for _ in range(25):
            limiter.record_throttled(rate_class)
            assert limiter.multiplier(rate_class) <= 4.0

        assert limiter.multiplier(rate_class) == pytest.approx(4.0)

    def test_classes_are_independent(self):
        limiter = AdaptiveRateLimiter()

        limiter.record_throttled(RateLimitClass.REPLY_LISTING)

        assert limiter.multiplier(RateLimitClass.REPLY_LISTING) > 1.0
        assert limiter.multiplier(RateLimitClass.COMMENT_LISTING) == 1.0
        assert limiter.throttle_count(RateLimitClass.COMMENT_LISTING) == 0

    def test_was_throttled_and_stats(self):
        limiter = AdaptiveRateLimiter()
        assert not limiter.was_throttled()
        assert limiter.get_stats()["last_throttle_time"] is None

        limiter.record_throttled(RateLimitClass.COMMENT_LISTING)

        stats = limiter.get_stats()
        assert limiter.was_throttled()
        assert stats["throttle_counts"]["comment_listing"] == 1
        assert stats["multipliers"]["primary_query"] == 1.0
        assert stats["last_throttle_time"] is not None

    def test_throttle_is_logged(self, caplog):
        limiter = AdaptiveRateLimiter(profiles=fixed_profiles())

        with caplog.at_level("WARNING"):
            limiter.record_throttled(RateLimitClass.COMMENT_LISTING)

        assert "comment_listing" in caplog.text

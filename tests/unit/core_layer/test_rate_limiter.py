"""
Unit Tests for SlidingWindowLimiter

Runs against the in-memory Redis with a manual clock. Covers the sliding
window arithmetic, key derivation, retry-after and the fail-open policy.
"""

import hashlib

import pytest

from taskguard.core.exceptions import ConfigurationError, RateLimitExceededError
from taskguard.core.resilience.rate_limiter import (
    RateLimitDecision,
    RateLimitRule,
    RequestIdentity,
    SlidingWindowLimiter,
    derive_rate_limit_key,
)

CLIENT = RequestIdentity(ip="203.0.113.7")


@pytest.fixture
def rule():
    return RateLimitRule(limit=5, window_ms=60_000)


@pytest.fixture
def limiter(store, rule, fake_clock, mock_metrics):
    return SlidingWindowLimiter(store, rule, clock=fake_clock.millis, metrics=mock_metrics)


@pytest.mark.unit
class TestKeyDerivation:
    def test_ip_is_hashed(self):
        expected = hashlib.sha256(b"203.0.113.7").hexdigest()[:16]
        assert derive_rate_limit_key(CLIENT) == expected

    def test_subject_is_appended(self):
        key = derive_rate_limit_key(RequestIdentity(ip="203.0.113.7", subject_id="42"))
        assert key.endswith(":42")
        assert "203.0.113.7" not in key

    def test_missing_ip_hashes_unknown(self):
        expected = hashlib.sha256(b"unknown").hexdigest()[:16]
        assert derive_rate_limit_key(RequestIdentity(ip=None)) == expected

    def test_custom_key_func(self):
        rule = RateLimitRule(limit=1, window_ms=1000, key_func=lambda identity: "global")
        assert rule.key_for(CLIENT) == "global"


@pytest.mark.unit
class TestRule:
    def test_describe(self, rule):
        assert rule.describe() == "Maximum 5 requests per 60 seconds."

    def test_window_seconds_rounds_up(self):
        assert RateLimitRule(limit=1, window_ms=1500).window_seconds == 2

    @pytest.mark.parametrize(("limit", "window_ms"), [(0, 1000), (1, 0), (-1, 1000)])
    def test_non_positive_rejected(self, limit, window_ms):
        with pytest.raises(ConfigurationError):
            RateLimitRule(limit=limit, window_ms=window_ms)


@pytest.mark.unit
class TestSlidingWindow:
    async def test_remaining_counts_down_then_rejects(self, limiter, fake_clock):
        remaining = []
        for _ in range(5):
            decision = await limiter.check(CLIENT)
            assert decision.allowed
            remaining.append(decision.remaining)
            fake_clock.advance(1)

        assert remaining == [4, 3, 2, 1, 0]

        rejected = await limiter.check(CLIENT)
        assert not rejected.allowed
        assert rejected.remaining == 0
        assert rejected.current == 5
        assert 0 < rejected.retry_after <= 60

    async def test_rejected_request_is_not_recorded(self, limiter, fake_redis, store):
        for _ in range(5):
            await limiter.check(CLIENT)
        await limiter.check(CLIENT)
        await limiter.check(CLIENT)

        key = store.build_key(derive_rate_limit_key(CLIENT), "rate_limit")
        assert len(fake_redis.data[key]) == 5

    async def test_window_slides(self, limiter, fake_clock):
        for _ in range(5):
            await limiter.check(CLIENT)
        assert not (await limiter.check(CLIENT)).allowed

        fake_clock.advance(60.001)
        decision = await limiter.check(CLIENT)
        assert decision.allowed
        assert decision.remaining == 4

    async def test_same_millisecond_requests_are_distinct(self, limiter):
        decisions = [await limiter.check(CLIENT) for _ in range(5)]
        assert [d.remaining for d in decisions] == [4, 3, 2, 1, 0]

    async def test_clients_are_isolated(self, limiter):
        for _ in range(5):
            await limiter.check(CLIENT)
        other = await limiter.check(RequestIdentity(ip="198.51.100.1"))
        assert other.allowed
        assert other.remaining == 4

    async def test_authenticated_subject_gets_own_window(self, limiter):
        for _ in range(5):
            await limiter.check(CLIENT)
        subject = await limiter.check(RequestIdentity(ip="203.0.113.7", subject_id="42"))
        assert subject.allowed

    async def test_key_expires_with_window(self, limiter, fake_redis, store):
        await limiter.check(CLIENT)
        key = store.build_key(derive_rate_limit_key(CLIENT), "rate_limit")
        assert await fake_redis.ttl(key) == 60

    async def test_reset_at_is_now_plus_window(self, limiter, fake_clock):
        decision = await limiter.check(CLIENT)
        assert decision.reset_at_ms == fake_clock.millis() + 60_000
        assert decision.reset_at_iso().endswith("Z")

    async def test_per_call_rule_override(self, limiter):
        strict = RateLimitRule(limit=1, window_ms=1000)
        assert (await limiter.check(CLIENT, strict)).allowed
        assert not (await limiter.check(CLIENT, strict)).allowed

    async def test_reset_forgets_client(self, limiter):
        for _ in range(5):
            await limiter.check(CLIENT)
        assert await limiter.reset(CLIENT) is True
        assert (await limiter.check(CLIENT)).allowed

    async def test_metrics_recorded(self, limiter, mock_metrics):
        for _ in range(6):
            await limiter.check(CLIENT)
        outcomes = [c.args[0] for c in mock_metrics.record_rate_limit_decision.call_args_list]
        assert outcomes == ["admitted"] * 5 + ["rejected"]


@pytest.mark.unit
class TestEnforce:
    async def test_enforce_raises_with_numbers(self, limiter):
        for _ in range(5):
            await limiter.enforce(CLIENT)

        with pytest.raises(RateLimitExceededError) as exc_info:
            await limiter.enforce(CLIENT)

        error = exc_info.value
        assert error.message == "Rate limit exceeded. Maximum 5 requests per 60 seconds."
        assert (error.limit, error.current, error.remaining) == (5, 5, 0)
        assert 0 < error.retry_after <= 60

    async def test_enforce_returns_decision(self, limiter):
        decision = await limiter.enforce(CLIENT)
        assert isinstance(decision, RateLimitDecision)


@pytest.mark.unit
class TestFailOpen:
    async def test_store_down_admits_as_degraded(self, limiter, fake_redis, mock_metrics):
        fake_redis.down = True
        decision = await limiter.check(CLIENT)

        assert decision.allowed
        assert decision.degraded
        assert decision.remaining == 4
        mock_metrics.record_rate_limit_decision.assert_called_with("failed_open")

    async def test_store_down_never_rejects(self, limiter, fake_redis):
        fake_redis.down = True
        for _ in range(20):
            assert (await limiter.check(CLIENT)).allowed

    async def test_failed_insert_still_admits(self, limiter, fake_redis):
        fake_redis.fail_on = {"pipeline"}
        decision = await limiter.check(CLIENT)
        assert decision.allowed
        assert decision.degraded

    async def test_failed_insert_counts_one_outcome(self, limiter, fake_redis, mock_metrics):
        fake_redis.fail_on = {"pipeline"}
        await limiter.check(CLIENT)
        outcomes = [c.args[0] for c in mock_metrics.record_rate_limit_decision.call_args_list]
        assert outcomes == ["failed_open"]

    async def test_retry_after_falls_back_to_window(self, limiter, fake_redis):
        for _ in range(5):
            await limiter.check(CLIENT)
        fake_redis.fail_on = {"ttl"}

        decision = await limiter.check(CLIENT)
        assert not decision.allowed
        assert decision.retry_after == 60

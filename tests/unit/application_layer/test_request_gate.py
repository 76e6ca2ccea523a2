"""
Unit Tests for RequestGate
"""

import pytest
from starlette.requests import Request

from taskguard.application.api.middleware.rate_limit import RequestGate, rate_limit_headers
from taskguard.core.exceptions import RateLimitExceededError
from taskguard.core.resilience.rate_limiter import RateLimitRule, SlidingWindowLimiter


def make_request(headers=None, client=("10.0.0.1", 5000)):
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/api/v1/tasks",
        "query_string": b"",
        "headers": [(name.lower().encode(), value.encode()) for name, value in (headers or {}).items()],
        "client": client,
    }
    return Request(scope)


@pytest.fixture
def limiter(store, fake_clock, mock_metrics):
    return SlidingWindowLimiter(
        store, RateLimitRule(limit=5, window_ms=60_000), clock=fake_clock.millis, metrics=mock_metrics
    )


@pytest.mark.unit
class TestClientIdentity:
    def test_socket_peer_by_default(self, limiter):
        request = make_request({"X-Forwarded-For": "203.0.113.7"})
        assert RequestGate(limiter).client_ip(request) == "10.0.0.1"

    def test_first_forwarded_hop_when_trusted(self, limiter):
        request = make_request({"X-Forwarded-For": "203.0.113.7, 10.0.0.2"})
        assert RequestGate(limiter, trust_forwarded_for=True).client_ip(request) == "203.0.113.7"

    def test_empty_forwarded_header_falls_back(self, limiter):
        request = make_request({"X-Forwarded-For": " "})
        assert RequestGate(limiter, trust_forwarded_for=True).client_ip(request) == "10.0.0.1"

    def test_no_client(self, limiter):
        assert RequestGate(limiter).client_ip(make_request(client=None)) is None

    def test_subject_from_state(self, limiter):
        request = make_request()
        request.state.subject_id = "42"
        assert RequestGate(limiter).identity(request).subject_id == "42"


@pytest.mark.unit
class TestRuleFor:
    def test_default_rule_when_no_override(self, limiter):
        assert RequestGate(limiter).rule_for() is limiter.default_rule

    def test_override_merges_over_default(self, limiter):
        rule = RequestGate(limiter).rule_for(limit=10)
        assert (rule.limit, rule.window_ms) == (10, 60_000)


@pytest.mark.unit
class TestEvaluate:
    async def test_disabled_gate_admits_without_recording(self, limiter, fake_redis):
        gate = RequestGate(limiter, enabled=False)
        assert await gate.evaluate(make_request()) is None
        assert fake_redis.calls == []

    async def test_decision_left_on_request_state(self, limiter):
        request = make_request()
        decision = await RequestGate(limiter).evaluate(request)

        assert request.state.rate_limit is decision
        assert rate_limit_headers(decision)["X-RateLimit-Remaining"] == "4"

    async def test_rejection_raises(self, limiter):
        gate = RequestGate(limiter)
        for _ in range(5):
            await gate.evaluate(make_request())

        request = make_request()
        with pytest.raises(RateLimitExceededError):
            await gate.evaluate(request)
        assert request.state.rate_limit.allowed is False

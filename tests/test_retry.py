"""Tests for multiai/retry.py — pure policy, no I/O."""

import pytest

from config.config_loader import RetryConfig
from multiai.retry import Fail, Retry, RetryPolicy, classify_status, is_hard_cap, next_action


def test_backoff_doubles():
    policy = RetryPolicy(backoff_base_sec=1.0)
    assert [policy.delay_for(a) for a in range(3)] == [1.0, 2.0, 4.0]


def test_rate_limit_retried_with_backoff():
    assert next_action(0, 429) == Retry(1.0)
    assert next_action(1, 429) == Retry(2.0)


def test_budget_exhausted_fails_with_kind():
    assert next_action(2, 429) == Fail("rate_limited")


def test_hard_cap_not_retried():
    assert next_action(0, 429, True) == Fail("rate_limited")


@pytest.mark.parametrize("status,kind", [(401, "generic_upstream"), (403, "generic_upstream"), (404, "endpoint_not_found")])
def test_non_retryable_statuses(status, kind):
    assert next_action(0, status) == Fail(kind)


def test_server_errors_retried():
    assert next_action(0, 503) == Retry(1.0)


def test_other_client_errors_retried():
    assert isinstance(next_action(0, 400), Retry)


def test_timeout_retried_then_classified():
    assert next_action(0, None, timed_out=True) == Retry(1.0)
    assert next_action(2, None, timed_out=True) == Fail("timeout")


def test_no_provider_available_from_404_message():
    action = next_action(0, 404, provider_message="No allowed providers are available for the selected model.")
    assert action == Fail("no_provider_available")


def test_classify_status():
    assert classify_status(429) == "rate_limited"
    assert classify_status(500) == "upstream_server_error"
    assert classify_status(None) == "upstream_server_error"
    assert classify_status(418) == "generic_upstream"


def test_is_hard_cap():
    assert is_hard_cap('{"error":{"message":"Rate limit exceeded: limit_rpd"}}')
    assert is_hard_cap("Daily limit reached for free models")
    assert not is_hard_cap("Too many requests")
    assert not is_hard_cap(None)


def test_custom_policy_from_config():
    policy = RetryPolicy.from_config(RetryConfig(max_attempts=2, backoff_base_sec=0.5, hard_cap_markers=["quota"]))
    assert next_action(0, 500, policy=policy) == Retry(0.5)
    assert next_action(1, 500, policy=policy) == Fail("upstream_server_error")
    assert is_hard_cap("quota exceeded", policy.hard_cap_markers)


def test_policy_validation():
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)
    with pytest.raises(ValueError):
        RetryPolicy(backoff_base_sec=-1)

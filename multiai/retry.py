"""Pure retry/backoff policy and upstream failure classification. No I/O."""

from collections.abc import Iterable
from dataclasses import dataclass, field

from config.config_loader import RetryConfig

# Upstream statuses that never succeed on a retry.
_NON_RETRYABLE_STATUSES = {401, 403, 404}


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    backoff_base_sec: float = 1.0
    hard_cap_markers: tuple[str, ...] = field(default=("Daily limit reached", "limit_rpd"))

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.backoff_base_sec < 0:
            raise ValueError("backoff_base_sec must be >= 0")

    @classmethod
    def from_config(cls, retry: RetryConfig) -> "RetryPolicy":
        return cls(
            max_attempts=retry.max_attempts,
            backoff_base_sec=retry.backoff_base_sec,
            hard_cap_markers=tuple(retry.hard_cap_markers),
        )

    def delay_for(self, attempt: int) -> float:
        """Delay after the given 0-indexed attempt: base * 2**attempt (1s, 2s, 4s...)."""
        return self.backoff_base_sec * (2**attempt)


DEFAULT_RETRY_POLICY = RetryPolicy()


@dataclass(frozen=True)
class Retry:
    delay_sec: float


@dataclass(frozen=True)
class Fail:
    kind: str


def is_hard_cap(body: str | None, markers: Iterable[str] = DEFAULT_RETRY_POLICY.hard_cap_markers) -> bool:
    """True when a 429 body signals a daily cap that retries cannot get past."""
    if not body:
        return False
    return any(marker in body for marker in markers)


def classify_status(status: int | None, provider_message: str = "", *, timed_out: bool = False) -> str:
    """Map an upstream failure onto a stable error kind."""
    if timed_out:
        return "timeout"
    if status is None:
        return "upstream_server_error"
    if status == 429:
        return "rate_limited"
    if status == 404:
        if "No allowed providers" in provider_message:
            return "no_provider_available"
        return "endpoint_not_found"
    if status >= 500:
        return "upstream_server_error"
    return "generic_upstream"


def next_action(
    attempt: int,
    status: int | None,
    is_hard_cap: bool = False,
    *,
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    provider_message: str = "",
    timed_out: bool = False,
) -> Retry | Fail:
    """Decide what to do after a failed 0-indexed attempt.

    ``status`` is None when no HTTP response arrived (timeout or connection
    failure).
    """
    kind = classify_status(status, provider_message, timed_out=timed_out)
    if attempt + 1 >= policy.max_attempts:
        return Fail(kind)
    if status == 429 and is_hard_cap:
        return Fail(kind)
    if status in _NON_RETRYABLE_STATUSES:
        return Fail(kind)
    return Retry(policy.delay_for(attempt))

"""ProviderGateway: one classified chat call with retry/backoff and health side effects."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from multiai.errors import (
    EndpointNotFound,
    GatewayIsolationError,
    GenericUpstream,
    ModelUnavailable,
    NoProviderAvailable,
    ProviderError,
    RateLimited,
    RequestTimeout,
    UpstreamServerError,
    excerpt,
)
from multiai.health import HealthAdvisoryStore
from multiai.models import ChatMessage, ChatResult, GatewayKind
from multiai.providers.base import ChatTransport, TransportError
from multiai.retry import DEFAULT_RETRY_POLICY, Retry, RetryPolicy, is_hard_cap, next_action

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


def build_error(kind: str, model_id: str, failure: TransportError, timeout_sec: float) -> ProviderError:
    """Turn a classified transport failure into the user-facing ProviderError."""
    message = failure.provider_message
    if kind == "timeout":
        return RequestTimeout(model_id, timeout_sec)
    if kind == "rate_limited":
        return RateLimited(model_id, reset_hint=failure.reset_hint, provider_message=message)
    if kind == "endpoint_not_found":
        return EndpointNotFound(model_id, provider_message=message)
    if kind == "no_provider_available":
        return NoProviderAvailable(model_id, provider_message=message)
    if kind == "upstream_server_error":
        return UpstreamServerError(model_id, status=failure.status, provider_message=message)
    return GenericUpstream(model_id, failure.status or 0, provider_message=message)


class ProviderGateway:
    """One gateway family (primary or restricted) bound to one transport.

    ``is_restricted`` tells the gateway which upstream ids belong to the
    restricted family; a call for a model outside this gateway's family is a
    hard error, never a fallback.
    """

    def __init__(
        self,
        kind: GatewayKind,
        transport: ChatTransport,
        is_restricted: Callable[[str], bool],
        *,
        health: HealthAdvisoryStore | None = None,
        retry: RetryPolicy = DEFAULT_RETRY_POLICY,
        timeout_sec: float = 15.0,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.kind = kind
        self.transport = transport
        self._is_restricted = is_restricted
        self._health = health
        self._retry = retry
        self._timeout_sec = timeout_sec
        self._sleep = sleep

    def accepts(self, upstream_model_id: str) -> bool:
        return self._is_restricted(upstream_model_id) == (self.kind == "restricted")

    async def call(
        self,
        upstream_model_id: str,
        messages: list[ChatMessage],
        timeout_sec: float | None = None,
    ) -> ChatResult:
        """Run one chat completion with up to ``max_attempts`` attempts.

        Raises:
            GatewayIsolationError: If the model belongs to the other gateway family.
            ModelUnavailable: If the model is inside its health cooldown window.
            ProviderError: Classified failure after the retry budget is spent.
        """
        if not self.accepts(upstream_model_id):
            expected = "restricted" if self._is_restricted(upstream_model_id) else "primary"
            raise GatewayIsolationError(upstream_model_id, expected, self.kind)

        if self._health is not None and self._health.in_cooldown(upstream_model_id):
            logger.warning("Model %s is in cooldown, not calling upstream", upstream_model_id)
            rec = self._health.get(upstream_model_id)
            raise ModelUnavailable(upstream_model_id, provider_message=rec.error_message if rec else None)

        timeout = timeout_sec if timeout_sec is not None else self._timeout_sec
        attempt = 0
        while True:
            try:
                result = await self.transport.complete(upstream_model_id, messages, timeout)
            except TransportError as exc:
                await self._record_failure(upstream_model_id, exc)
                action = next_action(
                    attempt,
                    exc.status,
                    is_hard_cap(exc.body, self._retry.hard_cap_markers),
                    policy=self._retry,
                    provider_message=exc.provider_message,
                    timed_out=exc.timed_out,
                )
                if isinstance(action, Retry):
                    logger.warning(
                        "%s attempt %d/%d failed (%s), retrying in %.1fs",
                        upstream_model_id,
                        attempt + 1,
                        self._retry.max_attempts,
                        exc.status or ("timeout" if exc.timed_out else "no response"),
                        action.delay_sec,
                    )
                    await self._sleep(action.delay_sec)
                    attempt += 1
                    continue

                logger.error(
                    "%s failed after %d attempt(s): %s %s",
                    upstream_model_id,
                    attempt + 1,
                    action.kind,
                    excerpt(exc.provider_message),
                )
                raise build_error(action.kind, upstream_model_id, exc, timeout) from exc

            await self._record(upstream_model_id, True, None)
            return result

    async def _record_failure(self, model_id: str, failure: TransportError) -> None:
        if failure.status is None:
            return
        # 429 means throttled, not down.
        unavailable = failure.status == 404 or failure.status >= 500
        await self._record(
            model_id,
            not unavailable,
            f"{self.transport.name()} {failure.status}: {excerpt(failure.provider_message)}",
        )

    async def _record(self, model_id: str, is_available: bool, error_message: str | None) -> None:
        if self._health is None:
            return
        try:
            await self._health.record(model_id, is_available, error_message)
        except Exception as exc:
            logger.warning("Failed to record health for %s (non-fatal): %s", model_id, exc)

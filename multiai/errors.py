"""Error taxonomy for the orchestration core.

Every error carries a stable ``kind`` (used in DispatchResult.error_kind and
logs) and a short ``user_message`` that is safe to show to the end user.
Provider payloads are reduced to a short excerpt before they reach either.
"""

from datetime import datetime, timezone

_EXCERPT_LEN = 200


def excerpt(text: str | None, limit: int = _EXCERPT_LEN) -> str:
    """Collapse whitespace and truncate provider text for logs and messages."""
    if not text:
        return ""
    flat = " ".join(text.split())
    if len(flat) <= limit:
        return flat
    return flat[: limit - 3] + "..."


class MultiAIError(Exception):
    """Base for all errors raised by the orchestration core."""

    kind = "error"
    retryable = False

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    @property
    def user_message(self) -> str:
        return self.message


class AuthRequired(MultiAIError):
    kind = "auth_required"

    def __init__(self, model_id: str) -> None:
        self.model_id = model_id
        super().__init__(f"Model {model_id} is a paid model. Sign in to use it.")


class Forbidden(MultiAIError):
    kind = "forbidden"

    def __init__(self, model_id: str) -> None:
        self.model_id = model_id
        super().__init__(f"Model {model_id} is restricted to administrators.")


class NoModelsAvailable(MultiAIError):
    kind = "no_models_available"

    def __init__(self, requested: list[str]) -> None:
        self.requested = list(requested)
        if requested:
            message = (
                "None of the requested models are available to you "
                f"({', '.join(requested)}). Sign in or pick free models."
            )
        else:
            message = "No models were selected for synthesis."
        super().__init__(message)


class AllModelsFailed(MultiAIError):
    kind = "all_models_failed"

    def __init__(self, failures: dict[str, str]) -> None:
        self.failures = dict(failures)
        super().__init__(
            f"All {len(failures)} models failed to respond. Try again shortly or choose other models."
        )


class ServerMisconfiguration(MultiAIError):
    kind = "server_misconfiguration"

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Server misconfiguration: {detail}")

    @property
    def user_message(self) -> str:
        return "The service is not configured correctly. Contact the administrator."


class GatewayIsolationError(MultiAIError):
    """A model was about to be dispatched through the wrong gateway family."""

    kind = "gateway_isolation"

    def __init__(self, model_id: str, expected: str, actual: str) -> None:
        self.model_id = model_id
        super().__init__(
            f"Refusing to route {model_id} through the {actual} gateway (requires {expected})"
        )


class ProviderError(MultiAIError):
    """Raised when an upstream provider call fails after classification."""

    kind = "provider_error"

    def __init__(
        self,
        model_id: str,
        message: str,
        *,
        status: int | None = None,
        provider_message: str | None = None,
    ) -> None:
        self.model_id = model_id
        self.status = status
        self.provider_message = excerpt(provider_message)
        super().__init__(f"[{model_id}] {message}")
        self._user_text = message

    @property
    def user_message(self) -> str:
        return self._user_text


class RateLimited(ProviderError):
    kind = "rate_limited"
    retryable = True

    def __init__(self, model_id: str, *, reset_hint: str | None = None, provider_message: str | None = None) -> None:
        self.reset_hint = reset_hint
        if reset_hint:
            message = f"Too many requests for {model_id}. Try again after {format_reset_hint(reset_hint)}."
        else:
            message = f"Too many requests for {model_id}. Try again in 10-60 seconds or pick another model."
        super().__init__(model_id, message, status=429, provider_message=provider_message)


class ModelUnavailable(ProviderError):
    kind = "model_unavailable"

    def __init__(self, model_id: str, *, cooldown_active: bool = True, provider_message: str | None = None) -> None:
        self.cooldown_active = cooldown_active
        super().__init__(
            model_id,
            f"Model {model_id} is temporarily unavailable. Choose another model.",
            status=503,
            provider_message=provider_message,
        )


class EndpointNotFound(ProviderError):
    kind = "endpoint_not_found"

    def __init__(self, model_id: str, *, provider_message: str | None = None) -> None:
        super().__init__(
            model_id,
            f"Model {model_id} is currently not served by any endpoint. Choose another model.",
            status=404,
            provider_message=provider_message,
        )


class NoProviderAvailable(ProviderError):
    kind = "no_provider_available"

    def __init__(self, model_id: str, *, provider_message: str | None = None) -> None:
        super().__init__(
            model_id,
            f"No provider is currently allowed to serve {model_id}. Choose another model.",
            status=404,
            provider_message=provider_message,
        )


class UpstreamServerError(ProviderError):
    kind = "upstream_server_error"
    retryable = True

    def __init__(self, model_id: str, *, status: int | None = None, provider_message: str | None = None) -> None:
        label = f" ({status})" if status else ""
        super().__init__(
            model_id,
            f"The model provider had a temporary error{label}. Try again shortly.",
            status=status,
            provider_message=provider_message,
        )


class RequestTimeout(ProviderError):
    kind = "timeout"
    retryable = True

    def __init__(self, model_id: str, timeout_sec: float) -> None:
        self.timeout_sec = timeout_sec
        super().__init__(model_id, f"{model_id} did not answer within {timeout_sec:g}s. Try again shortly.")


class GenericUpstream(ProviderError):
    kind = "generic_upstream"

    def __init__(self, model_id: str, status: int, *, provider_message: str | None = None) -> None:
        super().__init__(
            model_id,
            f"The request could not be processed ({status}).",
            status=status,
            provider_message=provider_message,
        )


def format_reset_hint(raw: str) -> str:
    """Render an X-RateLimit-Reset value as a concrete time.

    Accepts epoch milliseconds, epoch seconds, or a relative number of seconds;
    anything else is returned unchanged.
    """
    value = raw.strip()
    try:
        number = float(value)
    except ValueError:
        return value
    if number > 1e12:
        number /= 1000.0
    if number > 1e9:
        at = datetime.fromtimestamp(number, tz=timezone.utc)
        return at.strftime("%H:%M:%S UTC")
    return f"{int(number)} seconds"

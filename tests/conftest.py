"""Shared pytest fixtures."""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from config.config_loader import SynthesisConfig
from multiai.catalog import ModelCatalog
from multiai.gateway import ProviderGateway
from multiai.health import HealthAdvisoryStore
from multiai.identity import StaticIdentity
from multiai.models import ANONYMOUS, Caller, ChatMessage, ChatResult
from multiai.providers.base import ChatTransport, TransportError
from multiai.retry import RetryPolicy
from multiai.router import ModelRouter
from multiai.service import ChatService

CATALOG_RECORDS = [
    {"id": "gpt-4o", "name": "GPT-4o", "provider": "openai", "input_price": 2.5, "output_price": 10},
    {"id": "gemini-2.0-flash", "name": "Gemini 2.0 Flash", "provider": "google", "input_price": 0.1, "output_price": 0.4},
    {
        "id": "perplexity/sonar",
        "name": "Perplexity Sonar",
        "provider": "perplexity",
        "input_price": 1,
        "output_price": 1,
        "restriction": "admin_only",
    },
    {"id": "qwen/qwen-2.5-72b-instruct:free", "name": "Qwen 2.5 72B", "provider": "alibaba", "input_price": 0, "output_price": 0},
    {"id": "google/gemma-3-27b-it:free", "name": "Gemma 3 27B", "provider": "google", "input_price": 0, "output_price": 0},
    {"id": "meta-llama/llama-3.3-70b-instruct:free", "name": "Llama 3.3", "provider": "meta", "input_price": 0, "output_price": 0},
]

MODEL_MAP = {"gpt-4o": "openai/gpt-4o", "gemini-2.0-flash": "google/gemini-2.0-flash"}
RESTRICTED_MODELS = {"perplexity/sonar": "sonar", "sonar": "sonar"}

ADMIN = Caller(authenticated=True, role="admin", subject="root", email="root@example.com")
USER = Caller(authenticated=True, role="user", subject="u-1", email="user@example.com")


def reply(content: str = "Mock response", model: str = "mock-model") -> ChatResult:
    return ChatResult(content=content, model=model, latency_sec=0.1)


def http_failure(status: int, body: str = "", reset_hint: str | None = None) -> TransportError:
    return TransportError("fake", f"HTTP {status}", status=status, body=body, reset_hint=reset_hint)


class FakeTransport(ChatTransport):
    """Test double transport.

    ``script`` maps an upstream model id to a list of outcomes consumed in
    order; an outcome is a ChatResult, a string (reply content) or an
    exception to raise. Once a script runs out, ``default`` is returned.
    """

    def __init__(
        self,
        transport_name: str = "fake",
        script: dict[str, list] | None = None,
        default: str = "Mock response",
        listed_models: list[str] | None = None,
    ) -> None:
        self._name = transport_name
        self._script = {k: list(v) for k, v in (script or {}).items()}
        self._default = default
        self._listed = listed_models
        self.calls: list[tuple[str, list[ChatMessage], float]] = []

    def queue(self, model: str, *outcomes) -> None:
        self._script.setdefault(model, []).extend(outcomes)

    def name(self) -> str:
        return self._name

    async def complete(self, model: str, messages: list[ChatMessage], timeout_sec: float) -> ChatResult:
        self.calls.append((model, list(messages), timeout_sec))
        queue = self._script.get(model)
        outcome = queue.pop(0) if queue else self._default
        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, str):
            return reply(outcome, model)
        return outcome

    async def list_models(self) -> list[str]:
        if self._listed is None:
            raise TransportError(self._name, "Failed to fetch models: 500", status=500)
        return list(self._listed)

    def called_models(self) -> list[str]:
        return [model for model, _, _ in self.calls]


class RecordingSleep:
    """Injected sleep that records delays instead of waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def catalog() -> ModelCatalog:
    return ModelCatalog.from_records(CATALOG_RECORDS)


@pytest.fixture
def router() -> ModelRouter:
    return ModelRouter(MODEL_MAP, RESTRICTED_MODELS)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def health_store(clock: FakeClock) -> HealthAdvisoryStore:
    return HealthAdvisoryStore(clock=clock)


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def synthesis_config() -> SynthesisConfig:
    return SynthesisConfig(
        free_model="qwen/qwen-2.5-72b-instruct:free",
        premium_model="gemini-2.0-flash",
        chunk_size=3,
        chunk_pause_sec=0.25,
    )


@pytest.fixture
def primary_transport() -> FakeTransport:
    return FakeTransport("openrouter")


@pytest.fixture
def restricted_transport() -> FakeTransport:
    return FakeTransport("perplexity", default="Search answer")


@pytest.fixture
def make_service(catalog, router, health_store, recording_sleep, primary_transport, restricted_transport):
    """Factory: build a ChatService for a given caller over the fake transports."""

    def _make(caller: Caller = ANONYMOUS, **kwargs) -> ChatService:
        gateways = {
            "primary": ProviderGateway(
                "primary",
                primary_transport,
                router.is_restricted,
                health=health_store,
                retry=RetryPolicy(),
                sleep=recording_sleep,
            ),
            "restricted": ProviderGateway(
                "restricted",
                restricted_transport,
                router.is_restricted,
                health=health_store,
                retry=RetryPolicy(),
                sleep=recording_sleep,
            ),
        }
        return ChatService(catalog, router, gateways, StaticIdentity(caller), **kwargs)

    return _make


@pytest.fixture
def sample_history() -> list[ChatMessage]:
    return [
        ChatMessage("user", "Should we use YAML or JSON for config?"),
        ChatMessage("assistant", "YAML for humans, JSON for machines."),
    ]


@pytest.fixture
def output_dir(tmp_path: Path) -> Path:
    return tmp_path / "output"

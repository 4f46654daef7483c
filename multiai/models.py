"""Pure dataclasses for the chat orchestration core. No I/O, no deps."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

Role = Literal["user", "assistant", "system"]
Tier = Literal["free", "premium"]
Restriction = Literal["none", "admin_only"]
GatewayKind = Literal["primary", "restricted"]


@dataclass(frozen=True)
class ChatMessage:
    role: Role
    content: str


@dataclass(frozen=True)
class ModelDescriptor:
    id: str
    display_name: str
    provider: str
    input_price_per_million: float
    output_price_per_million: float
    context_window_tokens: int | None = None
    is_active: bool = True
    restriction: Restriction = "none"

    @property
    def tier(self) -> Tier:
        if self.input_price_per_million == 0 and self.output_price_per_million == 0:
            return "free"
        return "premium"


@dataclass
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class ChatResult:
    content: str
    model: str             # model string reported by the upstream
    usage: Usage | None = None
    citations: list[str] = field(default_factory=list)
    latency_sec: float = 0.0


@dataclass(frozen=True)
class Route:
    upstream_model_id: str
    gateway: GatewayKind


@dataclass
class DispatchResult:
    model_id: str
    content: str = ""
    error_kind: str | None = None
    error_message: str | None = None

    @property
    def ok(self) -> bool:
        return self.error_kind is None and bool(self.content)


@dataclass
class ModelReply:
    model_id: str
    content: str


@dataclass
class SynthesisOutcome:
    per_model_responses: list[ModelReply]
    synthesis: str
    synthesis_model: str
    failures: list[DispatchResult] = field(default_factory=list)
    duration_sec: float = 0.0


@dataclass(frozen=True)
class Caller:
    authenticated: bool
    role: Literal["admin", "user"] = "user"
    subject: str | None = None
    email: str | None = None


ANONYMOUS = Caller(authenticated=False)


@dataclass
class HealthRecord:
    model_id: str
    is_available: bool
    checked_at: datetime
    error_message: str | None = None

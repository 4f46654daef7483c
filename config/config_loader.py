"""Load settings.yaml into typed dataclasses. Checks gateway credentials at startup."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"


@dataclass
class GatewayConfig:
    name: str              # "primary" or "restricted"
    base_url: str
    api_key_env: str
    timeout_sec: float = 15.0
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class RoutingConfig:
    model_map: dict[str, str] = field(default_factory=dict)
    restricted_models: dict[str, str] = field(default_factory=dict)
    fold_system_models: list[str] = field(default_factory=list)


@dataclass
class RetryConfig:
    max_attempts: int = 3
    backoff_base_sec: float = 1.0
    hard_cap_markers: list[str] = field(default_factory=lambda: ["Daily limit reached", "limit_rpd"])


@dataclass
class HealthConfig:
    cooldown_min: float = 30
    freshness_min: float = 10
    ping_pause_sec: float = 0.3


@dataclass
class SynthesisConfig:
    free_model: str
    premium_model: str
    chunk_size: int = 3
    chunk_pause_sec: float = 0.25
    default_models: list[str] = field(default_factory=list)


@dataclass
class AuthConfig:
    secret_env: str = "MULTIAI_AUTH_SECRET"
    token_ttl_min: float = 60


@dataclass
class PromptsConfig:
    synthesis: str


@dataclass
class DefaultsConfig:
    output_dir: Path
    audit_log: Path | None = None
    system_prompt: str = ""


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    gateways: dict[str, GatewayConfig]
    routing: RoutingConfig
    retry: RetryConfig
    health: HealthConfig
    synthesis: SynthesisConfig
    auth: AuthConfig
    prompts: PromptsConfig
    catalog: list[dict] = field(default_factory=list)
    available_gateways: set[str] = field(default_factory=set)


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing.
    Logs missing gateway credentials but does not raise. A call routed to a
    gateway outside available_gateways fails later with ServerMisconfiguration.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    defaults_raw = raw["defaults"]
    audit_log = defaults_raw.get("audit_log")
    defaults = DefaultsConfig(
        output_dir=Path(defaults_raw["output_dir"]),
        audit_log=Path(audit_log) if audit_log else None,
        system_prompt=str(defaults_raw.get("system_prompt", "")),
    )

    routing_raw = raw.get("routing", {})
    routing = RoutingConfig(
        model_map={str(k): str(v) for k, v in routing_raw.get("model_map", {}).items()},
        restricted_models={str(k): str(v) for k, v in routing_raw.get("restricted_models", {}).items()},
        fold_system_models=[str(m) for m in routing_raw.get("fold_system_models", [])],
    )

    retry_raw = raw.get("retry", {})
    retry = RetryConfig(
        max_attempts=int(retry_raw.get("max_attempts", 3)),
        backoff_base_sec=float(retry_raw.get("backoff_base_sec", 1.0)),
    )
    if "hard_cap_markers" in retry_raw:
        retry.hard_cap_markers = [str(m) for m in retry_raw["hard_cap_markers"]]

    health_raw = raw.get("health", {})
    health = HealthConfig(
        cooldown_min=float(health_raw.get("cooldown_min", 30)),
        freshness_min=float(health_raw.get("freshness_min", 10)),
        ping_pause_sec=float(health_raw.get("ping_pause_sec", 0.3)),
    )

    synthesis_raw = raw["synthesis"]
    synthesis = SynthesisConfig(
        free_model=str(synthesis_raw["free_model"]),
        premium_model=str(synthesis_raw["premium_model"]),
        chunk_size=int(synthesis_raw.get("chunk_size", 3)),
        chunk_pause_sec=float(synthesis_raw.get("chunk_pause_sec", 0.25)),
        default_models=list(synthesis_raw.get("default_models", [])),
    )
    if synthesis.chunk_size < 1:
        raise ValueError(f"synthesis.chunk_size must be >= 1, got {synthesis.chunk_size}")

    auth_raw = raw.get("auth", {})
    auth = AuthConfig(
        secret_env=str(auth_raw.get("secret_env", "MULTIAI_AUTH_SECRET")),
        token_ttl_min=float(auth_raw.get("token_ttl_min", 60)),
    )

    prompts = PromptsConfig(synthesis=raw["prompts"]["synthesis"])

    gateways: dict[str, GatewayConfig] = {}
    available_gateways: set[str] = set()

    for gateway_name, gateway_raw in raw["gateways"].items():
        gateway_cfg = GatewayConfig(
            name=gateway_name,
            base_url=gateway_raw["base_url"],
            api_key_env=gateway_raw["api_key_env"],
            timeout_sec=float(gateway_raw.get("timeout_sec", 15)),
            headers={str(k): str(v) for k, v in (gateway_raw.get("headers") or {}).items()},
        )
        gateways[gateway_name] = gateway_cfg

        api_key = os.environ.get(gateway_raw["api_key_env"], "").strip()
        if api_key:
            available_gateways.add(gateway_name)
            logger.info("Gateway available: %s", gateway_name)
        else:
            logger.info(
                "Gateway skipped (no API key): %s — set %s in .env",
                gateway_name,
                gateway_raw["api_key_env"],
            )

    return AppConfig(
        defaults=defaults,
        gateways=gateways,
        routing=routing,
        retry=retry,
        health=health,
        synthesis=synthesis,
        auth=auth,
        prompts=prompts,
        catalog=list(raw.get("catalog", [])),
        available_gateways=available_gateways,
    )

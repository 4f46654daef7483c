"""Model health checks: populate the health advisory store from the upstream catalog or pings."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from multiai.health import HealthAdvisoryStore
from multiai.models import ChatMessage
from multiai.providers.base import ChatTransport, TransportError
from multiai.router import ModelRouter

logger = logging.getLogger(__name__)

_PING_MESSAGES = [ChatMessage("user", "ping")]
_TIMEOUT_SEC = 15.0

# The restricted provider publishes no model list.
KNOWN_RESTRICTED_MODELS = {
    "sonar",
    "sonar-pro",
    "sonar-reasoning",
    "sonar-reasoning-pro",
    "sonar-deep-research",
    "r1-1776",
}


async def _ping_one(transport: ChatTransport, upstream_id: str) -> tuple[bool, str]:
    """Ping a single model. Returns (ok, error_message); a 429 still counts as up."""
    try:
        await transport.complete(upstream_id, _PING_MESSAGES, _TIMEOUT_SEC)
        return True, ""
    except TransportError as exc:
        if exc.status == 429:
            return True, "Rate limited but available"
        return False, str(exc)


async def _check_catalog(
    transport: ChatTransport,
    upstream_ids: list[str],
) -> dict[str, tuple[bool, str]]:
    try:
        listed = set(await transport.list_models())
    except (TransportError, NotImplementedError) as exc:
        logger.error("Error fetching upstream model list: %s", exc)
        return {m: (False, "Failed to fetch model list") for m in upstream_ids}

    logger.info("Fetched %d models from %s catalog", len(listed), transport.name())
    return {
        m: (True, "") if m in listed else (False, "Model not found in upstream catalog")
        for m in upstream_ids
    }


async def run_health_checks(
    model_ids: list[str],
    router: ModelRouter,
    transports: dict[str, ChatTransport],
    store: HealthAdvisoryStore,
    mode: str = "catalog",
    pause_sec: float = 0.3,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> dict[str, tuple[bool, str]]:
    """Check availability of the given public model ids and upsert the results.

    Args:
        model_ids: Public model ids to check.
        router: Resolves public ids to upstream ids and gateway family.
        transports: Transport per gateway family ("primary", "restricted").
        store: Health advisory store to write into.
        mode: "catalog" (free, uses the upstream model list) or "ping" (one tiny completion each).
        pause_sec: Pause between pings in ping mode.

    Returns:
        Dict mapping public model id -> (ok, error_message).
        error_message is "" when ok is True.
    """
    if mode not in ("catalog", "ping"):
        raise ValueError(f"Unknown health check mode: {mode}")

    routes = {m: router.resolve(m) for m in model_ids}
    results: dict[str, tuple[bool, str]] = {}

    primary_ids = [m for m, r in routes.items() if r.gateway == "primary"]
    restricted_ids = [m for m, r in routes.items() if r.gateway == "restricted"]

    primary = transports.get("primary")
    if primary_ids and primary is None:
        logger.warning("Primary gateway not configured, skipping %d models", len(primary_ids))
        results.update({m: (False, "API key not configured") for m in primary_ids})
    elif primary_ids and mode == "catalog":
        by_upstream = await _check_catalog(primary, [routes[m].upstream_model_id for m in primary_ids])
        results.update({m: by_upstream[routes[m].upstream_model_id] for m in primary_ids})
    elif primary_ids:
        for index, model_id in enumerate(primary_ids):
            if index:
                await sleep(pause_sec)
            results[model_id] = await _ping_one(primary, routes[model_id].upstream_model_id)

    for model_id in restricted_ids:
        known = routes[model_id].upstream_model_id in KNOWN_RESTRICTED_MODELS
        results[model_id] = (True, "") if known else (False, "Unknown restricted model")

    for model_id, (ok, err) in results.items():
        logger.info("%s: %s %s", model_id, "OK" if ok else "FAIL", err)
        await store.record(routes[model_id].upstream_model_id, ok, err or None)

    return results

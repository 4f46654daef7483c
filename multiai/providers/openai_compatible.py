"""OpenAI-compatible chat-completion transport using the openai SDK with native async.

Serves both the primary multi-model gateway and the restricted search gateway;
they differ only in base_url, credential and extra headers.
"""

import asyncio
import json
import logging
import os
import time

import openai
from openai import AsyncOpenAI

from config.config_loader import GatewayConfig
from multiai.errors import ServerMisconfiguration
from multiai.models import ChatMessage, ChatResult, Usage
from multiai.providers.base import ChatTransport, TransportError

logger = logging.getLogger(__name__)


def _extract_provider_message(body: str, fallback: str) -> str:
    """Pull the human-readable message out of common error payload shapes."""
    try:
        parsed = json.loads(body)
    except ValueError:
        return body or fallback
    if not isinstance(parsed, dict):
        return body or fallback
    error = parsed.get("error")
    if isinstance(error, dict):
        metadata = error.get("metadata") or {}
        msg = error.get("message") or metadata.get("raw")
    else:
        msg = error or parsed.get("message")
    return msg if isinstance(msg, str) and msg else body or fallback


class OpenAICompatibleTransport(ChatTransport):
    """Chat completions against an OpenAI-compatible endpoint via the openai SDK."""

    def __init__(self, config: GatewayConfig, client: AsyncOpenAI | None = None) -> None:
        self._config = config
        if client is None:
            api_key = os.environ.get(config.api_key_env, "").strip()
            if not api_key:
                raise ServerMisconfiguration(f"missing API key {config.api_key_env} for {config.name} gateway")
            # Retries are owned by ProviderGateway.
            client = AsyncOpenAI(
                api_key=api_key,
                base_url=config.base_url,
                default_headers=config.headers or None,
                max_retries=0,
            )
        self._client = client

    def name(self) -> str:
        return self._config.name

    async def complete(self, model: str, messages: list[ChatMessage], timeout_sec: float) -> ChatResult:
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(
                    model=model,
                    messages=[{"role": m.role, "content": m.content} for m in messages],
                    stream=False,
                ),
                timeout=timeout_sec,
            )
        except (TimeoutError, openai.APITimeoutError) as exc:
            raise TransportError(
                self.name(), f"Request timed out after {timeout_sec}s", timed_out=True
            ) from exc
        except openai.APIStatusError as exc:
            raise TransportError(
                self.name(),
                f"HTTP {exc.status_code}",
                status=exc.status_code,
                body=exc.response.text,
                provider_message=_extract_provider_message(exc.response.text, exc.message),
                reset_hint=exc.response.headers.get("X-RateLimit-Reset"),
            ) from exc
        except openai.APIConnectionError as exc:
            raise TransportError(self.name(), f"Connection failed: {exc}") from exc

        latency = time.monotonic() - start

        choice = response.choices[0] if response.choices else None
        content = (choice.message.content or "") if choice else ""

        usage: Usage | None = None
        if response.usage:
            usage = Usage(
                prompt_tokens=response.usage.prompt_tokens,
                completion_tokens=response.usage.completion_tokens,
                total_tokens=response.usage.total_tokens,
            )

        logger.info(
            "%s %s: %.2fs, %s tokens",
            self.name(),
            model,
            latency,
            usage.total_tokens if usage else None,
        )

        return ChatResult(
            content=content,
            model=response.model or model,
            usage=usage,
            citations=list(getattr(response, "citations", None) or []),
            latency_sec=latency,
        )

    async def list_models(self) -> list[str]:
        try:
            return [m.id async for m in self._client.models.list()]
        except openai.APIStatusError as exc:
            raise TransportError(self.name(), f"Failed to fetch models: {exc.status_code}", status=exc.status_code) from exc
        except openai.APIConnectionError as exc:
            raise TransportError(self.name(), f"Failed to fetch models: {exc}") from exc

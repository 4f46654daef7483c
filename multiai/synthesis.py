"""Synthesis orchestration: chunked fan-out, partial-failure aggregation, final merge call."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from config.config_loader import SynthesisConfig
from multiai.errors import AllModelsFailed, MultiAIError, NoModelsAvailable
from multiai.models import ChatMessage, DispatchResult, ModelReply, SynthesisOutcome
from multiai.normalizer import normalize
from multiai.service import ChatService

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]
ChunkCallback = Callable[[int, list[DispatchResult]], None]


def chunked(items: list[str], size: int) -> list[list[str]]:
    return [items[i : i + size] for i in range(0, len(items), size)]


def format_responses(replies: list[ModelReply]) -> str:
    """Label each surviving response with its model id."""
    return "\n\n".join(f"### {r.model_id}\n{r.content}" for r in replies)


def build_synthesis_prompt(template: str, question: str, replies: list[ModelReply]) -> str:
    return template.format(question=question, responses=format_responses(replies))


class SynthesisOrchestrator:
    """Fan a prompt out to several models and merge the answers into one.

    ``state`` moves idle -> dispatching -> aggregating -> synthesizing -> done,
    or to failed when the invocation raises.
    """

    def __init__(
        self,
        service: ChatService,
        config: SynthesisConfig,
        prompt_template: str,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._service = service
        self._config = config
        self._template = prompt_template
        self._sleep = sleep
        self.state = "idle"

    def select_synthesis_model(self, requested_model_ids: list[str]) -> str:
        """Premium synthesis only when the requested set includes a premium model."""
        if any(self._service.effective_tier(m) == "premium" for m in requested_model_ids):
            return self._config.premium_model
        return self._config.free_model

    def _set_state(self, state: str) -> None:
        logger.debug("Synthesis state: %s -> %s", self.state, state)
        self.state = state

    async def _dispatch_one(self, messages: list[ChatMessage], model_id: str) -> DispatchResult:
        """Call one model. Never raises; failures land in error_kind."""
        try:
            result = await self._service.send_message(messages, model_id)
        except MultiAIError as exc:
            logger.warning("Error from %s: %s", model_id, exc)
            return DispatchResult(model_id, error_kind=exc.kind, error_message=exc.user_message)
        except Exception as exc:
            logger.warning("Unexpected failure from %s: %s", model_id, exc)
            return DispatchResult(model_id, error_kind="unexpected", error_message=str(exc))
        return DispatchResult(model_id, content=result.content)

    async def _dispatch_all(
        self,
        messages: list[ChatMessage],
        model_ids: list[str],
        on_chunk_complete: ChunkCallback | None,
    ) -> list[DispatchResult]:
        chunks = chunked(model_ids, self._config.chunk_size)
        results: list[DispatchResult] = []

        for index, chunk in enumerate(chunks):
            logger.info("Dispatching chunk %d/%d: %s", index + 1, len(chunks), ", ".join(chunk))
            chunk_results = await asyncio.gather(*(self._dispatch_one(messages, m) for m in chunk))
            results.extend(chunk_results)

            if on_chunk_complete:
                on_chunk_complete(index, list(chunk_results))

            if index + 1 < len(chunks):
                await self._sleep(self._config.chunk_pause_sec)

        return results

    async def synthesize(
        self,
        user_prompt: str,
        history: list[ChatMessage],
        target_model_ids: list[str],
        on_chunk_complete: ChunkCallback | None = None,
    ) -> SynthesisOutcome:
        """Run one fan-out + synthesis turn.

        Raises:
            NoModelsAvailable: Nothing left after access filtering; no call made.
            AuthRequired, Forbidden: The caller may not use the synthesis model; no call made.
            AllModelsFailed: Every fan-out call failed; synthesis not attempted.
            MultiAIError: The synthesis call itself failed.
        """
        start = time.monotonic()
        self.state = "idle"
        try:
            caller = self._service.current_caller()
            allowed: list[str] = []
            for model_id in dict.fromkeys(target_model_ids):
                decision = self._service.authorize(model_id, caller)
                if decision.allowed:
                    allowed.append(model_id)
                else:
                    logger.info("Skipping %s for synthesis: %s", model_id, decision.reason)
            if not allowed:
                raise NoModelsAvailable(target_model_ids)

            synthesis_model = self.select_synthesis_model(target_model_ids)
            self._service.authorize(synthesis_model, caller).raise_if_denied()

            messages = [*normalize(history), ChatMessage("user", user_prompt)]

            self._set_state("dispatching")
            results = await self._dispatch_all(messages, allowed, on_chunk_complete)

            self._set_state("aggregating")
            replies = [ModelReply(r.model_id, r.content) for r in results if r.ok]
            failures = [r for r in results if not r.ok]
            logger.info("Fan-out complete: %d/%d models succeeded", len(replies), len(results))
            if not replies:
                raise AllModelsFailed({r.model_id: r.error_kind or "empty_response" for r in failures})

            self._set_state("synthesizing")
            logger.info("Running synthesis via %s", synthesis_model)
            prompt = build_synthesis_prompt(self._template, user_prompt, replies)
            synthesis = await self._service.send_message([ChatMessage("user", prompt)], synthesis_model)
        except Exception:
            self._set_state("failed")
            raise

        self._set_state("done")
        return SynthesisOutcome(
            per_model_responses=replies,
            synthesis=synthesis.content,
            synthesis_model=synthesis_model,
            failures=failures,
            duration_sec=time.monotonic() - start,
        )

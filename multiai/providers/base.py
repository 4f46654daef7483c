"""Abstract base for upstream chat-completion transports."""

from abc import ABC, abstractmethod

from multiai.models import ChatMessage, ChatResult


class TransportError(Exception):
    """Raised by a transport when a single upstream call fails.

    Internal to the gateway, which classifies it into a ProviderError.
    """

    def __init__(
        self,
        transport_name: str,
        message: str,
        *,
        status: int | None = None,
        body: str = "",
        provider_message: str | None = None,
        reset_hint: str | None = None,
        timed_out: bool = False,
    ) -> None:
        self.transport_name = transport_name
        self.status = status
        self.body = body
        self.provider_message = provider_message if provider_message is not None else body
        self.reset_hint = reset_hint
        self.timed_out = timed_out
        super().__init__(f"[{transport_name}] {message}")


class ChatTransport(ABC):
    """One upstream endpoint speaking the chat-completion protocol."""

    @abstractmethod
    def name(self) -> str:
        """Return the short transport name (e.g. 'openrouter', 'perplexity')."""
        ...

    @abstractmethod
    async def complete(
        self,
        model: str,
        messages: list[ChatMessage],
        timeout_sec: float,
    ) -> ChatResult:
        """Perform exactly one chat completion call, no retries.

        Args:
            model: Upstream model identifier.
            messages: Fully prepared message list.
            timeout_sec: Client-side budget for this call.

        Returns:
            ChatResult with content, model and usage.

        Raises:
            TransportError: On non-2xx status, timeout or connection failure.
        """
        ...

    async def list_models(self) -> list[str]:
        """Return the upstream model ids this endpoint currently serves."""
        raise NotImplementedError(f"{self.name()} has no model listing")

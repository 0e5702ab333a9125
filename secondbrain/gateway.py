"""
AI gateway: uniform completion and embedding calls over the active provider.

The gateway validates inputs, delegates to the provider selected from
configuration, and turns metered completions into cost records for whoever
is observing usage (chat sessions, the CLI).
"""

import logging
from typing import Callable, Optional

from .config import ProviderConfig
from .errors import EmptyInputError, ProtocolError
from .providers.base import AIProvider, ProviderRegistry, get_registry
from .types import ChatMessage, UsageRecord

logger = logging.getLogger(__name__)

UsageObserver = Callable[[UsageRecord], None]

# USD per 1K tokens: (input, output)
PRICE_TABLE: dict[str, tuple[float, float]] = {
    "gpt-4o-mini": (0.00015, 0.0006),
    "gpt-4o": (0.0025, 0.01),
    "gpt-4.1": (0.002, 0.008),
    "gpt-4.1-mini": (0.0004, 0.0016),
    "gpt-4.1-nano": (0.0001, 0.0004),
    "gpt-4-turbo": (0.01, 0.03),
    "gpt-3.5-turbo": (0.0005, 0.0015),
}


def compute_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    """Cost in USD of one call, from the static price table.

    Models missing from the table (local models, new releases) cost 0.
    """
    prices = PRICE_TABLE.get(model)
    if prices is None:
        logger.debug("No price known for model %s, counting cost as 0", model)
        return 0.0
    price_in, price_out = prices
    return (input_tokens / 1000) * price_in + (output_tokens / 1000) * price_out


class AIGateway:
    """
    Provider-agnostic entry point for completions and embeddings.

    The provider is chosen once, when the gateway is built. A configuration
    change means building a new gateway (AppState does this).

    Example:
        gateway = AIGateway.from_config(ProviderConfig("ollama", {"model": "mistral"}))
        summary = await gateway.complete(note_text, "Summarize this note")
        vector = await gateway.embed(note_text)
    """

    def __init__(self, provider: AIProvider):
        self._provider = provider
        self._observers: list[UsageObserver] = []

    @classmethod
    def from_config(
        cls,
        config: ProviderConfig,
        registry: Optional[ProviderRegistry] = None,
    ) -> "AIGateway":
        """Build a gateway for the configured provider.

        Raises:
            ConfigurationError: unknown provider or missing credential
        """
        registry = registry or get_registry()
        provider = registry.create(config.name, config.params)
        logger.debug("Gateway using provider %s (model=%s)", config.name, provider.model)
        return cls(provider)

    @property
    def provider(self) -> AIProvider:
        return self._provider

    @property
    def embedding_model(self) -> str:
        return self._provider.embedding_model

    def add_observer(self, observer: UsageObserver) -> Callable[[], None]:
        """Register a usage observer. Returns a function that removes it."""
        self._observers.append(observer)

        def remove() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return remove

    async def complete(
        self,
        input_text: str,
        system_prompt: str,
        *,
        on_usage: Optional[UsageObserver] = None,
    ) -> str:
        """
        Run a single-turn completion.

        Args:
            input_text: User content (note text, selection, ...)
            system_prompt: Instruction for the model
            on_usage: Extra observer for this call only

        Raises:
            EmptyInputError: either argument is blank
            ProviderError, ProtocolError: from the provider
        """
        if not input_text or not input_text.strip():
            raise EmptyInputError("Completion input text is empty")
        if not system_prompt or not system_prompt.strip():
            raise EmptyInputError("Completion system prompt is empty")
        messages = [
            ChatMessage("system", system_prompt),
            ChatMessage("user", input_text),
        ]
        return await self.chat(messages, on_usage=on_usage)

    async def chat(
        self,
        messages: list[ChatMessage],
        *,
        on_usage: Optional[UsageObserver] = None,
    ) -> str:
        """Complete a role-tagged conversation and return the reply text."""
        if not messages:
            raise EmptyInputError("Conversation has no messages")

        result = await self._provider.complete(messages)

        if result.metered:
            record = UsageRecord(
                cost_usd=compute_cost(self._provider.model, result.input_tokens, result.output_tokens),
                input_tokens=result.input_tokens,
                output_tokens=result.output_tokens,
            )
            logger.debug(
                "Completion on %s: %d in / %d out tokens, $%.6f",
                self._provider.model, record.input_tokens, record.output_tokens, record.cost_usd,
            )
            self._notify(record, on_usage)
        return result.text

    async def embed(self, text: str) -> list[float]:
        """
        Embed text with the active provider.

        Raises:
            EmptyInputError: text is blank (callers must pre-filter)
            ProviderError, ProtocolError: from the provider
        """
        if not text or not text.strip():
            raise EmptyInputError("Cannot embed empty text")
        result = await self._provider.embed(text)
        if not result.vector:
            raise ProtocolError("Provider returned an empty embedding", payload=result)
        return result.vector

    def _notify(self, record: UsageRecord, on_usage: Optional[UsageObserver]) -> None:
        observers = list(self._observers)
        if on_usage is not None:
            observers.append(on_usage)
        for observer in observers:
            observer(record)

    async def aclose(self) -> None:
        await self._provider.aclose()

    async def __aenter__(self) -> "AIGateway":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

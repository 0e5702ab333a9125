"""
Base provider protocol and registry.

A provider is one language-model backend exposing the capability pair
secondbrain needs: chat completion and text embedding.
Using Protocol for structural subtyping - no explicit inheritance required.
"""

from typing import Any, Protocol, runtime_checkable

from ..errors import ConfigurationError
from ..types import ChatMessage, CompletionResult, EmbeddingResult


@runtime_checkable
class AIProvider(Protocol):
    """
    Generates completions and embeddings from one backend.

    Implementations wrap a specific service (OpenAI, Ollama, ...) and translate
    the generic request into the service's wire format. They raise
    ProviderError for transport or non-2xx failures and ProtocolError when the
    response body lacks the expected fields. They never retry.

    Example implementation:
        class EchoProvider:
            name = "echo"
            model = "echo-1"
            embedding_model = "echo-1"

            async def complete(self, messages):
                return CompletionResult(text=messages[-1].content)

            async def embed(self, text):
                return EmbeddingResult(vector=[float(len(text)), 1.0])

            async def aclose(self):
                pass
    """

    name: str
    model: str
    embedding_model: str

    async def complete(self, messages: list[ChatMessage]) -> CompletionResult:
        """
        Generate the next assistant message for a role-tagged conversation.

        Args:
            messages: Ordered chat history, system messages included

        Returns:
            CompletionResult with the reply text and, when the backend meters
            usage, input/output token counts
        """
        ...

    async def embed(self, text: str) -> EmbeddingResult:
        """
        Generate an embedding vector for the given text.

        Args:
            text: The text to embed (never blank; callers pre-filter)

        Returns:
            EmbeddingResult with the vector
        """
        ...

    async def aclose(self) -> None:
        """Release network resources."""
        ...


# -----------------------------------------------------------------------------
# Provider Registry
# -----------------------------------------------------------------------------

class ProviderRegistry:
    """
    Registry for discovering and instantiating providers.

    Providers are registered by name and instantiated from configuration,
    so secondbrain.toml can name a provider instead of requiring code changes.

    Example:
        registry = ProviderRegistry()
        registry.register("openai", CloudProvider)
        provider = registry.create("openai", {"model": "gpt-4o-mini"})
    """

    def __init__(self):
        self._providers: dict[str, type] = {}
        self._lazy_loaded = False

    def _ensure_providers_loaded(self) -> None:
        """Lazily load the built-in provider modules."""
        if self._lazy_loaded:
            return
        self._lazy_loaded = True

        # Imports register the classes; nothing is instantiated here
        from . import cloud  # noqa: F401
        from . import local  # noqa: F401

    def register(self, name: str, provider_class: type) -> None:
        """Register a provider class."""
        self._providers[name] = provider_class

    def create(self, name: str, params: dict[str, Any] | None = None) -> AIProvider:
        """Create a provider instance.

        Raises:
            ConfigurationError: unknown name, missing credential, or bad params
        """
        self._ensure_providers_loaded()
        if name not in self._providers:
            available = ", ".join(sorted(self._providers)) or "none"
            raise ConfigurationError(
                f"Unknown provider: '{name}'. "
                f"Available providers: {available}."
            )
        try:
            return self._providers[name](**(params or {}))
        except ConfigurationError:
            raise
        except TypeError as e:
            raise ConfigurationError(
                f"Invalid parameters for provider '{name}': {e}"
            ) from e

    def list_providers(self) -> list[str]:
        """List registered provider names."""
        self._ensure_providers_loaded()
        return sorted(self._providers)


# Global registry instance
# Concrete providers register themselves on import
_registry = ProviderRegistry()


def get_registry() -> ProviderRegistry:
    """Get the global provider registry."""
    return _registry

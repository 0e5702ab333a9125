"""
Cloud provider using OpenAI's chat-completion and embedding APIs.
"""

import logging
from typing import Optional

import httpx
import openai

from ..config import openai_api_key_from_env
from ..errors import ConfigurationError, ProtocolError, ProviderError
from ..types import ChatMessage, CompletionResult, EmbeddingResult
from .base import get_registry

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 120.0


def _error_body(e: openai.APIStatusError) -> str:
    try:
        return e.response.text[:2000]
    except (AttributeError, httpx.ResponseNotRead):
        return str(e.body or "")


class CloudProvider:
    """
    Provider backed by the OpenAI API.

    Requires: SECONDBRAIN_OPENAI_API_KEY or OPENAI_API_KEY environment variable,
    or an api_key parameter (provider.api_key in secondbrain.toml).

    Default models are gpt-4o-mini for completions and text-embedding-ada-002
    for embeddings. Completion responses carry token usage, which the gateway
    turns into cost.

    The SDK's built-in retries are disabled: a failed call fails once and the
    caller decides what to do.
    """

    name = "openai"

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        embedding_model: str = "text-embedding-ada-002",
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        key = api_key or openai_api_key_from_env()
        if not key:
            raise ConfigurationError(
                "OpenAI API key is missing. Set SECONDBRAIN_OPENAI_API_KEY or "
                "OPENAI_API_KEY, or api_key under [provider] in secondbrain.toml"
            )
        self.model = model
        self.embedding_model = embedding_model
        self._client = openai.AsyncOpenAI(
            api_key=key,
            base_url=base_url,
            timeout=timeout,
            max_retries=0,
            http_client=http_client,
        )

    async def complete(self, messages: list[ChatMessage]) -> CompletionResult:
        """Send the conversation to chat completions and return the reply."""
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=[m.to_dict() for m in messages],
            )
        except openai.APIStatusError as e:
            raise ProviderError(
                f"OpenAI completion failed (model={self.model}): HTTP {e.status_code}",
                status=e.status_code,
                body=_error_body(e),
            ) from e
        except openai.APIConnectionError as e:
            raise ProviderError(f"Cannot reach OpenAI: {e}") from e

        try:
            text = response.choices[0].message.content
            usage = response.usage
        except (AttributeError, IndexError, TypeError) as e:
            logger.warning("Malformed OpenAI completion response: %r", response)
            raise ProtocolError("Malformed completion response from OpenAI", payload=response) from e
        if not isinstance(text, str):
            logger.warning("OpenAI completion without text content: %r", response)
            raise ProtocolError("OpenAI completion has no text content", payload=response)

        if usage is None:
            return CompletionResult(text=text.strip())
        return CompletionResult(
            text=text.strip(),
            input_tokens=usage.prompt_tokens,
            output_tokens=usage.completion_tokens,
        )

    async def embed(self, text: str) -> EmbeddingResult:
        """Embed text with the configured embedding model."""
        try:
            response = await self._client.embeddings.create(
                model=self.embedding_model,
                input=text,
                encoding_format="float",
            )
        except openai.APIStatusError as e:
            raise ProviderError(
                f"OpenAI embedding failed (model={self.embedding_model}): HTTP {e.status_code}",
                status=e.status_code,
                body=_error_body(e),
            ) from e
        except openai.APIConnectionError as e:
            raise ProviderError(f"Cannot reach OpenAI: {e}") from e

        try:
            vector = [float(x) for x in response.data[0].embedding]
        except (AttributeError, IndexError, TypeError, ValueError) as e:
            logger.warning("Malformed OpenAI embedding response: %r", response)
            raise ProtocolError("Malformed embedding response from OpenAI", payload=response) from e

        usage = getattr(response, "usage", None)
        return EmbeddingResult(
            vector=vector,
            total_tokens=usage.total_tokens if usage is not None else None,
        )

    async def aclose(self) -> None:
        await self._client.close()


get_registry().register("openai", CloudProvider)

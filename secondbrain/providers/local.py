"""
Local provider using Ollama's HTTP API.

Respects OLLAMA_HOST env var (default: http://localhost:11434).
"""

import logging
import os
from typing import Any

import httpx

from ..errors import ConfigurationError, ProtocolError, ProviderError
from ..types import ChatMessage, CompletionResult, EmbeddingResult
from .base import get_registry

logger = logging.getLogger(__name__)

DEFAULT_OLLAMA_URL = "http://localhost:11434"


def ollama_base_url(base_url: str | None = None) -> str:
    """Resolve the Ollama endpoint: explicit value, OLLAMA_HOST, or localhost."""
    url = base_url or os.environ.get("OLLAMA_HOST") or DEFAULT_OLLAMA_URL
    if "://" not in url:
        url = f"http://{url}"
    return url.rstrip("/")


class LocalProvider:
    """
    Provider backed by a local Ollama server.

    Needs only an endpoint URL and a model name. Ollama does not report usage
    in a form we account for, so completions are unmetered and cost nothing.
    The completion model is also used for embeddings unless embedding_model
    is given.
    """

    name = "ollama"

    def __init__(
        self,
        model: str = "mistral",
        embedding_model: str | None = None,
        base_url: str | None = None,
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not model:
            raise ConfigurationError("Ollama provider requires a model name")
        self.model = model
        self.embedding_model = embedding_model or model
        self.base_url = ollama_base_url(base_url)
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout, connect=10.0),
            transport=transport,
        )

    async def _post(self, path: str, payload: dict, what: str) -> Any:
        """POST JSON and return the decoded body, mapping failures to our errors."""
        try:
            response = await self._client.post(path, json=payload)
        except httpx.HTTPError as e:
            raise ProviderError(
                f"Cannot reach Ollama at {self.base_url}. "
                f"Is Ollama running? Start it with: ollama serve ({e})"
            ) from e

        if not response.is_success:
            detail = response.text[:200] if response.text else ""
            raise ProviderError(
                f"Ollama {what} failed (model={payload['model']}): "
                f"HTTP {response.status_code} from {self.base_url}. {detail}",
                status=response.status_code,
                body=response.text,
            )

        try:
            return response.json()
        except ValueError as e:
            logger.warning("Ollama %s returned non-JSON body: %r", what, response.text[:500])
            raise ProtocolError(f"Ollama {what} returned a non-JSON body", payload=response.text) from e

    async def complete(self, messages: list[ChatMessage]) -> CompletionResult:
        """Send the conversation to /api/chat and return the reply."""
        data = await self._post(
            "/api/chat",
            {
                "model": self.model,
                "messages": [m.to_dict() for m in messages],
                "stream": False,
            },
            "chat",
        )
        try:
            text = data["message"]["content"]
        except (KeyError, TypeError) as e:
            logger.warning("Malformed Ollama chat response: %r", data)
            raise ProtocolError("Malformed chat response from Ollama", payload=data) from e
        if not isinstance(text, str):
            raise ProtocolError("Ollama chat response has no text content", payload=data)
        return CompletionResult(text=text.strip())

    async def embed(self, text: str) -> EmbeddingResult:
        """Embed text via /api/embeddings."""
        data = await self._post(
            "/api/embeddings",
            {"model": self.embedding_model, "prompt": text},
            "embedding",
        )
        try:
            vector = [float(x) for x in data["embedding"]]
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Malformed Ollama embedding response: %r", data)
            raise ProtocolError("Malformed embedding response from Ollama", payload=data) from e
        return EmbeddingResult(vector=vector)

    async def aclose(self) -> None:
        await self._client.aclose()


get_registry().register("ollama", LocalProvider)

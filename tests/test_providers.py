"""Tests for the OpenAI and Ollama providers, against mocked HTTP transports."""

import json

import httpx
import pytest

from secondbrain.errors import ConfigurationError, ProtocolError, ProviderError
from secondbrain.providers import AIProvider, get_registry
from secondbrain.providers.cloud import CloudProvider
from secondbrain.providers.local import LocalProvider, ollama_base_url
from secondbrain.types import ChatMessage


CONVERSATION = [
    ChatMessage("system", "Be brief"),
    ChatMessage("user", "Hello"),
]


def _json_handler(status_code=200, body=None, seen=None):
    """MockTransport handler returning one fixed JSON response."""

    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status_code, json=body)

    return handler


# -----------------------------------------------------------------------------
# Ollama
# -----------------------------------------------------------------------------

class TestOllamaBaseUrl:

    def test_default(self, monkeypatch):
        monkeypatch.delenv("OLLAMA_HOST", raising=False)
        assert ollama_base_url() == "http://localhost:11434"

    def test_env(self, monkeypatch):
        monkeypatch.setenv("OLLAMA_HOST", "gpu-box:11434")
        assert ollama_base_url() == "http://gpu-box:11434"

    def test_explicit_wins(self, monkeypatch):
        monkeypatch.setenv("OLLAMA_HOST", "gpu-box:11434")
        assert ollama_base_url("https://ollama.example.com/") == "https://ollama.example.com"


class TestLocalProvider:

    @pytest.mark.asyncio
    async def test_complete(self):
        seen = []
        transport = httpx.MockTransport(_json_handler(
            body={"message": {"role": "assistant", "content": " Hi there \n"}, "done": True},
            seen=seen,
        ))
        provider = LocalProvider(model="mistral", base_url="http://ollama.test", transport=transport)
        result = await provider.complete(CONVERSATION)
        await provider.aclose()

        assert result.text == "Hi there"
        assert not result.metered
        request = seen[0]
        assert request.url.path == "/api/chat"
        payload = json.loads(request.content)
        assert payload["model"] == "mistral"
        assert payload["stream"] is False
        assert payload["messages"] == [
            {"role": "system", "content": "Be brief"},
            {"role": "user", "content": "Hello"},
        ]

    @pytest.mark.asyncio
    async def test_embed_uses_embedding_model(self):
        seen = []
        transport = httpx.MockTransport(_json_handler(body={"embedding": [0.1, 0.2, 0.3]}, seen=seen))
        provider = LocalProvider(
            model="mistral", embedding_model="nomic-embed-text",
            base_url="http://ollama.test", transport=transport,
        )
        result = await provider.embed("some text")
        await provider.aclose()

        assert result.vector == [0.1, 0.2, 0.3]
        assert seen[0].url.path == "/api/embeddings"
        assert json.loads(seen[0].content) == {"model": "nomic-embed-text", "prompt": "some text"}

    def test_embedding_model_defaults_to_model(self):
        provider = LocalProvider(model="llama3", base_url="http://ollama.test")
        assert provider.embedding_model == "llama3"

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        transport = httpx.MockTransport(_json_handler(404, {"error": "model 'nope' not found"}))
        provider = LocalProvider(model="nope", base_url="http://ollama.test", transport=transport)
        with pytest.raises(ProviderError) as exc:
            await provider.embed("text")
        await provider.aclose()
        assert exc.value.status == 404
        assert "not found" in exc.value.body

    @pytest.mark.asyncio
    async def test_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        provider = LocalProvider(base_url="http://ollama.test", transport=httpx.MockTransport(handler))
        with pytest.raises(ProviderError, match="Is Ollama running"):
            await provider.complete(CONVERSATION)
        await provider.aclose()

    @pytest.mark.asyncio
    async def test_missing_fields(self):
        transport = httpx.MockTransport(_json_handler(body={"done": True}))
        provider = LocalProvider(base_url="http://ollama.test", transport=transport)
        with pytest.raises(ProtocolError):
            await provider.complete(CONVERSATION)
        with pytest.raises(ProtocolError):
            await provider.embed("text")
        await provider.aclose()

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>proxy</html>"))
        provider = LocalProvider(base_url="http://ollama.test", transport=transport)
        with pytest.raises(ProtocolError):
            await provider.embed("text")
        await provider.aclose()

    def test_requires_model(self):
        with pytest.raises(ConfigurationError):
            LocalProvider(model="")


# -----------------------------------------------------------------------------
# OpenAI
# -----------------------------------------------------------------------------

CHAT_RESPONSE = {
    "id": "chatcmpl-1",
    "object": "chat.completion",
    "created": 0,
    "model": "gpt-4o-mini",
    "choices": [{
        "index": 0,
        "message": {"role": "assistant", "content": "  A reply.  "},
        "finish_reason": "stop",
    }],
    "usage": {"prompt_tokens": 12, "completion_tokens": 3, "total_tokens": 15},
}

EMBEDDING_RESPONSE = {
    "object": "list",
    "data": [{"object": "embedding", "index": 0, "embedding": [0.5, -0.5, 0.25]}],
    "model": "text-embedding-ada-002",
    "usage": {"prompt_tokens": 2, "total_tokens": 2},
}


def _cloud(handler) -> CloudProvider:
    return CloudProvider(
        api_key="sk-test",
        base_url="https://openai.test/v1",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


class TestCloudProvider:

    def test_missing_key(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        monkeypatch.delenv("SECONDBRAIN_OPENAI_API_KEY", raising=False)
        with pytest.raises(ConfigurationError, match="API key"):
            CloudProvider()

    def test_key_from_env(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        monkeypatch.setenv("SECONDBRAIN_OPENAI_API_KEY", "sk-env")
        provider = CloudProvider()
        assert provider.model == "gpt-4o-mini"
        assert provider.embedding_model == "text-embedding-ada-002"

    @pytest.mark.asyncio
    async def test_complete(self):
        seen = []
        provider = _cloud(_json_handler(body=CHAT_RESPONSE, seen=seen))
        result = await provider.complete(CONVERSATION)
        await provider.aclose()

        assert result.text == "A reply."
        assert result.input_tokens == 12
        assert result.output_tokens == 3
        request = seen[0]
        assert request.url.path == "/v1/chat/completions"
        assert request.headers["authorization"] == "Bearer sk-test"
        payload = json.loads(request.content)
        assert payload["model"] == "gpt-4o-mini"
        assert payload["messages"][1] == {"role": "user", "content": "Hello"}

    @pytest.mark.asyncio
    async def test_embed(self):
        seen = []
        provider = _cloud(_json_handler(body=EMBEDDING_RESPONSE, seen=seen))
        result = await provider.embed("some text")
        await provider.aclose()

        assert result.vector == [0.5, -0.5, 0.25]
        assert result.total_tokens == 2
        payload = json.loads(seen[0].content)
        assert payload["model"] == "text-embedding-ada-002"
        assert payload["input"] == "some text"

    @pytest.mark.asyncio
    async def test_unauthorized_fails_once(self):
        seen = []
        provider = _cloud(_json_handler(401, {"error": {"message": "Incorrect API key"}}, seen=seen))
        with pytest.raises(ProviderError) as exc:
            await provider.complete(CONVERSATION)
        await provider.aclose()
        assert exc.value.status == 401
        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_server_error_not_retried(self):
        seen = []
        provider = _cloud(_json_handler(500, {"error": {"message": "boom"}}, seen=seen))
        with pytest.raises(ProviderError) as exc:
            await provider.embed("text")
        await provider.aclose()
        assert exc.value.status == 500
        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        provider = _cloud(handler)
        with pytest.raises(ProviderError, match="Cannot reach OpenAI"):
            await provider.complete(CONVERSATION)
        await provider.aclose()

    @pytest.mark.asyncio
    async def test_completion_without_choices(self):
        provider = _cloud(_json_handler(body={**CHAT_RESPONSE, "choices": []}))
        with pytest.raises(ProtocolError):
            await provider.complete(CONVERSATION)
        await provider.aclose()


# -----------------------------------------------------------------------------
# Registry
# -----------------------------------------------------------------------------

class TestRegistry:

    def test_builtin_providers(self):
        assert set(get_registry().list_providers()) >= {"openai", "ollama"}

    def test_create_ollama(self):
        provider = get_registry().create("ollama", {"model": "llama3", "base_url": "http://ollama.test"})
        assert isinstance(provider, LocalProvider)
        assert isinstance(provider, AIProvider)
        assert provider.model == "llama3"

    def test_unknown_name(self):
        with pytest.raises(ConfigurationError, match="Unknown provider"):
            get_registry().create("nope")

    def test_bad_params(self):
        with pytest.raises(ConfigurationError, match="Invalid parameters"):
            get_registry().create("ollama", {"temperature_knob": 3})

    def test_openai_without_key(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        monkeypatch.delenv("SECONDBRAIN_OPENAI_API_KEY", raising=False)
        with pytest.raises(ConfigurationError):
            get_registry().create("openai", {})

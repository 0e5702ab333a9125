"""
Shared pytest fixtures for secondbrain tests.

Provides a fake AI provider and an in-memory note store so tests never
touch the network or the user's vault.
"""

import asyncio
import hashlib
from typing import Optional

import pytest

from secondbrain.cache import EmbeddingCache
from secondbrain.errors import NoteNotFoundError, ProviderError
from secondbrain.gateway import AIGateway
from secondbrain.types import ChatMessage, CompletionResult, EmbeddingResult


class FakeProvider:
    """
    Deterministic provider for testing.

    Embeddings come from `vectors` when the text is listed there, otherwise
    from an md5 hash of the text. Texts in `fail_on` raise ProviderError.
    Tracks how many embedding calls are in flight at once.
    """

    name = "fake"

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        embedding_model: str = "fake-embed",
        reply: str = "fake reply",
        usage: Optional[tuple[int, int]] = (100, 20),
        dimension: int = 8,
    ):
        self.model = model
        self.embedding_model = embedding_model
        self.reply = reply
        self.usage = usage
        self.dimension = dimension
        self.vectors: dict[str, list[float]] = {}
        self.fail_on: set[str] = set()
        self.fail_complete: Optional[Exception] = None
        self.complete_calls: list[list[ChatMessage]] = []
        self.embed_calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    async def complete(self, messages: list[ChatMessage]) -> CompletionResult:
        self.complete_calls.append(list(messages))
        await asyncio.sleep(0)
        if self.fail_complete is not None:
            raise self.fail_complete
        if self.usage is None:
            return CompletionResult(text=self.reply)
        return CompletionResult(text=self.reply, input_tokens=self.usage[0], output_tokens=self.usage[1])

    async def embed(self, text: str) -> EmbeddingResult:
        self.embed_calls.append(text)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            if text in self.fail_on:
                raise ProviderError("embedding failed", status=500)
            if text in self.vectors:
                return EmbeddingResult(vector=list(self.vectors[text]))
            h = hashlib.md5(text.encode()).digest()
            return EmbeddingResult(vector=[(b + 1) / 256.0 for b in h[:self.dimension]])
        finally:
            self.in_flight -= 1

    async def aclose(self) -> None:
        self.closed = True


class InMemoryNoteStore:
    """NoteStore over a dict. Modification times are set explicitly."""

    def __init__(self, notes: Optional[dict[str, str]] = None):
        self._notes: dict[str, tuple[str, float]] = {}
        self._clock = 1000.0
        self._changes: asyncio.Queue = asyncio.Queue()
        for note_id, text in (notes or {}).items():
            self.set(note_id, text)

    def set(self, note_id: str, text: str, mtime: Optional[float] = None) -> None:
        """Create or change a note, advancing its mtime."""
        if mtime is None:
            self._clock += 1
            mtime = self._clock
        self._notes[note_id] = (text, mtime)

    def delete(self, note_id: str) -> None:
        del self._notes[note_id]

    def notify(self, note_id: str) -> None:
        """Queue a change notification for watch()."""
        self._changes.put_nowait(note_id)

    async def read_content(self, note_id: str) -> str:
        if note_id not in self._notes:
            raise NoteNotFoundError(note_id)
        return self._notes[note_id][0]

    async def write_content(self, note_id: str, text: str) -> None:
        self.set(note_id, text)

    async def list_all_note_ids(self) -> list[str]:
        return sorted(self._notes)

    async def get_last_modified(self, note_id: str) -> float:
        if note_id not in self._notes:
            raise NoteNotFoundError(note_id)
        return self._notes[note_id][1]

    async def watch(self, interval: float = 2.0, stop: Optional[asyncio.Event] = None):
        while not self._changes.empty():
            yield self._changes.get_nowait()
        if stop is not None:
            stop.set()


@pytest.fixture
def provider():
    """Create a fresh FakeProvider instance."""
    return FakeProvider()


@pytest.fixture
def gateway(provider):
    return AIGateway(provider)


@pytest.fixture
def cache():
    return EmbeddingCache()


@pytest.fixture
def notes():
    return InMemoryNoteStore({
        "alpha.md": "Alpha note about gardening",
        "beta.md": "Beta note about cooking",
        "gamma.md": "Gamma note about gardening and cooking",
    })

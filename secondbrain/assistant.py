"""
Note actions: summarize, analyze, and find related notes.

These are stateless uses of the gateway. They don't touch chat history.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from .cache import EmbeddingCache
from .config import DEFAULT_BATCH_SIZE, DEFAULT_RELATED_LIMIT, DEFAULT_RELATED_MIN_SIMILARITY
from .errors import AbsentNoteError, ConfigurationError, NoteNotFoundError
from .gateway import AIGateway, UsageObserver
from .indexer import Indexer
from .notes import NoteStore
from .search import search

logger = logging.getLogger(__name__)

SUMMARIZE_PROMPT = "Summarize this note in 3-5 bullet points"

APPEND_SUMMARY_PROMPT = "Summarize this note in 3 bullet points"

ANALYZE_PROMPT = (
    "Analyze this note and provide insights about:\n"
    "1. Main themes and concepts\n"
    "2. Key arguments or points\n"
    "3. Potential areas for expansion\n"
    "4. Questions to consider"
)

SELECTION_PROMPT = "Summarize this text concisely in 1-2 sentences, preserving key information."

RELATED_PROMPT = "Explain in one sentence why these notes are related:"

NO_RELATED_MESSAGE = "No related notes found. Try rebuilding the embeddings cache (secondbrain index)."


@dataclass
class RelatedNote:
    """A related note with its similarity and a short explanation."""
    note_id: str
    similarity: float
    explanation: Optional[str] = None

    @property
    def percentage(self) -> int:
        return round(self.similarity * 100)


def render_related(related: list[RelatedNote]) -> str:
    """Markdown listing of related notes, with wiki links."""
    if not related:
        return NO_RELATED_MESSAGE
    lines = ["**Related Notes Found:**", ""]
    for r in related:
        lines.append(f"### [[{r.note_id}]] ({r.percentage}% related)")
        if r.explanation:
            lines.append(f"> {r.explanation}")
        lines.append("")
    return "\n".join(lines)


def append_summary_callout(selection: str, summary: str) -> str:
    """Selection followed by a collapsed summary callout."""
    return f"{selection}\n\n> [!summary]- AI Summary\n> {summary}\n\n"


class NoteAssistant:
    """
    One-shot AI actions on notes.

    Args:
        gateway: Completion and embedding calls
        notes: The note collection (not needed for summarize_selection)
        indexer: Used to refresh the active note's embedding before searching
        cache: Searched for related notes
        related_limit: Maximum related notes returned
        min_similarity: Related notes must score above this
        batch_size: Concurrent explanation calls per batch
        on_usage: Observer for the cost of every completion made here
    """

    def __init__(
        self,
        gateway: AIGateway,
        notes: Optional[NoteStore] = None,
        indexer: Optional[Indexer] = None,
        cache: Optional[EmbeddingCache] = None,
        *,
        related_limit: int = DEFAULT_RELATED_LIMIT,
        min_similarity: float = DEFAULT_RELATED_MIN_SIMILARITY,
        batch_size: int = DEFAULT_BATCH_SIZE,
        on_usage: Optional[UsageObserver] = None,
    ):
        self._notes = notes
        self._gateway = gateway
        self._indexer = indexer
        self._cache = cache
        self.related_limit = related_limit
        self.min_similarity = min_similarity
        self.batch_size = batch_size
        self._on_usage = on_usage

    @staticmethod
    def _require(note_id: Optional[str]) -> str:
        if not note_id:
            raise AbsentNoteError()
        return note_id

    def _collection(self) -> NoteStore:
        if self._notes is None:
            raise ConfigurationError("This action needs a note collection")
        return self._notes

    async def _complete(self, text: str, prompt: str) -> str:
        return await self._gateway.complete(text, prompt, on_usage=self._on_usage)

    async def summarize(self, note_id: Optional[str]) -> str:
        """3-5 bullet summary of a note."""
        content = await self._collection().read_content(self._require(note_id))
        return await self._complete(content, SUMMARIZE_PROMPT)

    async def analyze(self, note_id: Optional[str]) -> str:
        """Themes, key points, room for expansion, and open questions."""
        content = await self._collection().read_content(self._require(note_id))
        return await self._complete(content, ANALYZE_PROMPT)

    async def append_summary(self, note_id: Optional[str]) -> str:
        """Summarize a note and append the summary to it. Returns the summary."""
        note_id = self._require(note_id)
        content = await self._collection().read_content(note_id)
        summary = await self._complete(content, APPEND_SUMMARY_PROMPT)
        await self._collection().write_content(note_id, f"{content}\n\n---\n**AI Summary:**\n{summary}")
        logger.info("Appended summary to %s", note_id)
        return summary

    async def summarize_selection(self, selection: str) -> str:
        """One or two sentence summary of a text selection."""
        return await self._complete(selection, SELECTION_PROMPT)

    async def find_related(
        self,
        note_id: Optional[str],
        *,
        explain: bool = True,
    ) -> list[RelatedNote]:
        """
        Notes most similar to the given one.

        The note is re-embedded first so the query reflects its current
        content. Cached entries whose note can no longer be read are skipped.
        Explanations are generated in concurrent batches; a failed explanation
        leaves that result without one.
        """
        note_id = self._require(note_id)
        if self._indexer is None or self._cache is None:
            raise ConfigurationError("Finding related notes needs an indexer and an embedding cache")
        entry = await self._indexer.reindex_one(note_id)
        logger.debug("Finding notes related to %s (cache size %d)", note_id, self._cache.size())

        hits = search(
            entry.vector,
            self._cache,
            k=self.related_limit,
            min_similarity=self.min_similarity,
            exclude_id=note_id,
        )
        if not hits:
            return []

        current = await self._collection().read_content(note_id) if explain else ""
        related: list[RelatedNote] = []
        for start in range(0, len(hits), self.batch_size):
            batch = hits[start:start + self.batch_size]
            results = await asyncio.gather(
                *(self._compare(current, hit.note_id, explain) for hit in batch),
                return_exceptions=True,
            )
            for hit, result in zip(batch, results):
                if isinstance(result, BaseException) and not isinstance(result, Exception):
                    raise result
                if isinstance(result, NoteNotFoundError):
                    logger.info("Skipping related note %s: no longer in the vault", hit.note_id)
                    continue
                if isinstance(result, Exception):
                    logger.warning("Could not explain relation to %s: %s", hit.note_id, result)
                    related.append(RelatedNote(hit.note_id, hit.similarity))
                    continue
                related.append(RelatedNote(hit.note_id, hit.similarity, result))
        return related

    async def _compare(self, current: str, other_id: str, explain: bool) -> Optional[str]:
        """One-sentence explanation of how other_id relates to the current note."""
        other = await self._collection().read_content(other_id)
        if not explain:
            return None
        return await self._complete(f"Note 1:\n{current}\n\nNote 2:\n{other}", RELATED_PROMPT)

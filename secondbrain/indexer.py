"""
Incremental indexer: keeps the embedding cache consistent with the notes.

Per-note lifecycle:  UNINDEXED -> INDEXED -> STALE -> INDEXED (re-embedded)

- rebuild_all() re-embeds every note in small concurrent batches
- reindex_one() force re-embeds a single note
- refresh() re-embeds a note only if it is unindexed or stale
- watch() drives refresh() from the note store's change notifications
"""

import asyncio
import logging
from typing import Callable, Optional

from .cache import EmbeddingCache
from .config import DEFAULT_BATCH_SIZE
from .errors import DimensionMismatchError, SecondBrainError
from .gateway import AIGateway
from .notes import NoteStore
from .types import IndexReport, NoteEmbedding, NoteState

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]


class Indexer:
    """
    Owns writes to the embedding cache.

    Args:
        notes: The note collection
        gateway: Produces embeddings
        cache: The cache to maintain
        flush: Persists the cache (AppState.save_cache); called after each
            targeted upsert, after each rebuild batch, and before a rebuild
            reports completion
        batch_size: Number of concurrent embedding calls per rebuild batch
    """

    def __init__(
        self,
        notes: NoteStore,
        gateway: AIGateway,
        cache: EmbeddingCache,
        flush: Optional[Callable[[], None]] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        if batch_size < 1:
            raise ValueError(f"batch_size must be at least 1 (got {batch_size})")
        self._notes = notes
        self._gateway = gateway
        self._cache = cache
        self._flush_fn = flush
        self.batch_size = batch_size

    def _flush(self) -> None:
        if self._flush_fn is not None:
            self._flush_fn()

    # -- State --

    async def state_of(self, note_id: str) -> NoteState:
        """Current indexing state of a note."""
        entry = self._cache.get(note_id)
        if entry is None:
            return NoteState.UNINDEXED
        last_modified = await self._notes.get_last_modified(note_id)
        if last_modified > entry.last_modified:
            return NoteState.STALE
        return NoteState.INDEXED

    async def status(self) -> dict[str, NoteState]:
        """State of every note in the collection."""
        states: dict[str, NoteState] = {}
        for note_id in await self._notes.list_all_note_ids():
            states[note_id] = await self.state_of(note_id)
        return states

    # -- Single note --

    async def reindex_one(self, note_id: str) -> NoteEmbedding:
        """
        Re-embed one note regardless of staleness.

        The cache is only touched after a successful embedding call.

        Raises:
            NoteNotFoundError: the note does not exist
            EmptyInputError: the note is blank
            DimensionMismatchError: the provider's dimensionality differs from
                the cache generation (a full rebuild is needed)
            ProviderError, ProtocolError, ConfigurationError: from the gateway
        """
        # Read mtime before content: a write racing the read leaves the entry stale, not wrong
        last_modified = await self._notes.get_last_modified(note_id)
        content = await self._notes.read_content(note_id)
        vector = await self._gateway.embed(content)
        entry = self._cache.upsert(note_id, vector, last_modified)
        self._flush()
        logger.info("Indexed %s (%d dims)", note_id, len(vector))
        return entry

    async def refresh(self, note_id: str) -> bool:
        """Re-embed the note if it is unindexed or stale. Returns True if it was."""
        state = await self.state_of(note_id)
        if state is NoteState.INDEXED:
            logger.debug("%s is up to date", note_id)
            return False
        await self.reindex_one(note_id)
        return True

    # -- Whole collection --

    async def _embed_note(self, note_id: str) -> Optional[tuple[list[float], float]]:
        """Embed one note for a rebuild. None for a blank note."""
        last_modified = await self._notes.get_last_modified(note_id)
        content = await self._notes.read_content(note_id)
        if not content.strip():
            return None
        vector = await self._gateway.embed(content)
        return vector, last_modified

    async def rebuild_all(self, progress: Optional[ProgressCallback] = None) -> IndexReport:
        """
        Re-embed every note in the collection.

        Notes are processed in batches of batch_size: all embedding calls in a
        batch run concurrently, and the next batch starts only when the whole
        batch has resolved. A note that fails is logged and recorded in the
        report; the rest carry on. Blank notes are skipped and their old
        entries dropped. Entries for notes no longer in the collection are
        pruned once every batch has run.

        If the first vector produced by this rebuild has a different
        dimensionality than the cache (provider or model switched), the cache
        is cleared and a new generation begins.

        Args:
            progress: Called as progress(done, total, note_id) after each note

        Returns:
            IndexReport describing the run
        """
        note_ids = await self._notes.list_all_note_ids()
        report = IndexReport(total=len(note_ids))
        logger.info("Rebuilding embeddings for %d notes", len(note_ids))

        generation_dim: Optional[int] = None
        done = 0
        try:
            for start in range(0, len(note_ids), self.batch_size):
                batch = note_ids[start:start + self.batch_size]
                results = await asyncio.gather(
                    *(self._embed_note(note_id) for note_id in batch),
                    return_exceptions=True,
                )
                for note_id, result in zip(batch, results):
                    done += 1
                    if isinstance(result, BaseException) and not isinstance(result, Exception):
                        raise result  # cancellation and friends are not per-item failures
                    if isinstance(result, Exception):
                        logger.warning("Failed to embed %s: %s", note_id, result)
                        report.failed[note_id] = str(result)
                    elif result is None:
                        logger.debug("Skipping blank note %s", note_id)
                        self._cache.remove(note_id)
                        report.skipped.append(note_id)
                    else:
                        vector, last_modified = result
                        if generation_dim is None:
                            generation_dim = len(vector)
                            current = self._cache.dimension
                            if current is not None and current != generation_dim:
                                logger.warning(
                                    "Embedding dimension changed from %d to %d, "
                                    "starting a new cache generation",
                                    current, generation_dim,
                                )
                                self._cache.clear()
                        try:
                            self._cache.upsert(note_id, vector, last_modified)
                        except DimensionMismatchError as e:
                            logger.warning("Failed to index %s: %s", note_id, e)
                            report.failed[note_id] = str(e)
                        else:
                            report.indexed.append(note_id)
                    if progress is not None:
                        progress(done, report.total, note_id)
                self._flush()

            listed = set(note_ids)
            for note_id in self._cache.note_ids():
                if note_id not in listed:
                    self._cache.remove(note_id)
                    report.pruned.append(note_id)
        finally:
            self._flush()

        logger.info(
            "Rebuild finished: %d indexed, %d failed, %d skipped, %d pruned (cache size %d)",
            len(report.indexed), len(report.failed), len(report.skipped),
            len(report.pruned), self._cache.size(),
        )
        return report

    async def watch(
        self,
        interval: float = 2.0,
        stop: Optional[asyncio.Event] = None,
    ) -> int:
        """
        Keep embeddings fresh as notes change, until `stop` is set.

        Each notification is handled by refresh(); a failure is logged and
        the watch continues.

        Returns:
            Number of notes re-embedded
        """
        refreshed = 0
        async for note_id in self._notes.watch(interval, stop):
            try:
                if await self.refresh(note_id):
                    refreshed += 1
            except (SecondBrainError, OSError) as e:
                logger.warning("Could not re-embed %s: %s", note_id, e)
        return refreshed

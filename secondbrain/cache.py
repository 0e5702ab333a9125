"""
Embedding cache: note id -> (vector, last modified).

The cache is an in-memory mapping with a serialized form that AppState
persists as JSON. Every entry in one cache generation has the same vector
dimensionality; mixing dimensionalities (e.g. after switching providers)
is refused rather than tolerated.
"""

import logging
from typing import Any, Iterator, Optional

from .errors import DimensionMismatchError
from .types import NoteEmbedding

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1.0"


class EmbeddingCache:
    """
    Mapping from note id to its NoteEmbedding.

    Owned by the Indexer; search reads it without mutating.
    """

    def __init__(self, schema_version: str = SCHEMA_VERSION):
        self.schema_version = schema_version
        self._entries: dict[str, NoteEmbedding] = {}

    def get(self, note_id: str) -> Optional[NoteEmbedding]:
        return self._entries.get(note_id)

    def upsert(self, note_id: str, vector: list[float], last_modified: float) -> NoteEmbedding:
        """
        Insert or fully replace the entry for note_id.

        Raises:
            DimensionMismatchError: vector length differs from the cache's
                current generation (any other entry's length)
        """
        dimension = self.dimension
        if dimension is not None and len(vector) != dimension:
            # Replacing the only entry starts over, so it cannot conflict
            if not (len(self._entries) == 1 and note_id in self._entries):
                raise DimensionMismatchError(dimension, len(vector), note_id)
        entry = NoteEmbedding(note_id=note_id, vector=list(vector), last_modified=last_modified)
        self._entries[note_id] = entry
        return entry

    def remove(self, note_id: str) -> bool:
        return self._entries.pop(note_id, None) is not None

    def clear(self) -> None:
        """Drop all entries. The schema version is unchanged."""
        self._entries.clear()

    def size(self) -> int:
        return len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, note_id: object) -> bool:
        return note_id in self._entries

    def __iter__(self) -> Iterator[NoteEmbedding]:
        return iter(list(self._entries.values()))

    def note_ids(self) -> list[str]:
        return sorted(self._entries)

    @property
    def dimension(self) -> Optional[int]:
        """Vector length of the current generation, None when empty."""
        for entry in self._entries.values():
            return len(entry.vector)
        return None

    # -- Serialization --

    def to_dict(self) -> dict[str, Any]:
        return {
            "embeddings": [
                {
                    "path": e.note_id,
                    "embedding": e.vector,
                    "lastModified": e.last_modified,
                }
                for e in self._entries.values()
            ],
            "version": self.schema_version,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "EmbeddingCache":
        """
        Rebuild a cache from its serialized form.

        A blob with another schema version, or one that cannot be parsed,
        yields an empty cache so the next rebuild starts clean.
        """
        cache = cls()
        if not isinstance(data, dict):
            logger.warning("Embedding cache blob is not an object, starting empty")
            return cache

        version = data.get("version")
        if version != SCHEMA_VERSION:
            logger.warning(
                "Embedding cache version %r does not match %r, starting empty (rebuild needed)",
                version, SCHEMA_VERSION,
            )
            return cache

        try:
            for raw in data.get("embeddings", []):
                cache.upsert(
                    str(raw["path"]),
                    [float(x) for x in raw["embedding"]],
                    float(raw["lastModified"]),
                )
        except (KeyError, TypeError, ValueError) as e:
            # DimensionMismatchError is a ValueError: mixed generations count as corrupt
            logger.warning("Embedding cache is corrupt (%s), starting empty", e)
            return cls()
        return cache

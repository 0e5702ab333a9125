"""
Data types for secondbrain.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal, Optional


Role = Literal["user", "assistant", "system"]

ROLES: frozenset[str] = frozenset({"user", "assistant", "system"})


@dataclass
class NoteEmbedding:
    """
    Cached embedding for one note.

    Attributes:
        note_id: Stable note identifier (vault-relative path)
        vector: Embedding vector
        last_modified: Note modification time (POSIX seconds) when embedded
    """
    note_id: str
    vector: list[float]
    last_modified: float

    @property
    def dimension(self) -> int:
        return len(self.vector)


@dataclass(frozen=True)
class SimilarNote:
    """A search hit: note id and its cosine similarity to the query."""
    note_id: str
    similarity: float

    @property
    def percentage(self) -> int:
        """Similarity as a rounded percentage, for display."""
        return round(self.similarity * 100)


@dataclass
class ChatMessage:
    """A single role-tagged chat message."""
    role: Role
    content: str

    def __post_init__(self):
        if self.role not in ROLES:
            raise ValueError(f"Invalid chat role: {self.role!r}")

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class UsageRecord:
    """Token usage and cost of a single completion call."""
    cost_usd: float
    input_tokens: int
    output_tokens: int


@dataclass
class UsageStats:
    """Usage accumulated over a chat session. Never decremented."""
    cost_usd: float = 0.0
    input_tokens: int = 0
    output_tokens: int = 0
    calls: int = 0

    def add(self, record: UsageRecord) -> None:
        self.cost_usd += record.cost_usd
        self.input_tokens += record.input_tokens
        self.output_tokens += record.output_tokens
        self.calls += 1

    def snapshot(self) -> "UsageStats":
        return UsageStats(self.cost_usd, self.input_tokens, self.output_tokens, self.calls)


@dataclass(frozen=True)
class CompletionResult:
    """
    Raw result of a provider completion call.

    Token counts are None when the backend does not meter usage.
    """
    text: str
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None

    @property
    def metered(self) -> bool:
        return self.input_tokens is not None and self.output_tokens is not None


@dataclass(frozen=True)
class EmbeddingResult:
    """Raw result of a provider embedding call."""
    vector: list[float]
    total_tokens: Optional[int] = None


class NoteState(str, Enum):
    """Indexing state of a single note."""
    UNINDEXED = "unindexed"
    INDEXED = "indexed"
    STALE = "stale"


@dataclass
class IndexReport:
    """Outcome of a full rebuild."""
    total: int = 0
    indexed: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)
    pruned: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

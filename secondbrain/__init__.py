"""
secondbrain - AI-powered related notes, summaries and chat for markdown notes.

Quick start:
    from secondbrain import AppState, Indexer, NoteAssistant

    state = AppState.load()
    indexer = Indexer(state.note_store(), state.gateway(), state.cache, flush=state.save_cache)
    await indexer.rebuild_all()

Configuration lives in ~/.secondbrain/secondbrain.toml (or SECONDBRAIN_STORE_PATH).
"""

__version__ = "0.1.0"

from .assistant import NoteAssistant, RelatedNote
from .cache import EmbeddingCache
from .chat import ChatSession
from .errors import (
    AbsentNoteError,
    ConfigurationError,
    DimensionMismatchError,
    EmptyInputError,
    NoteNotFoundError,
    ProtocolError,
    ProviderError,
    SecondBrainError,
)
from .gateway import AIGateway
from .indexer import Indexer
from .notes import NoteStore, VaultNoteStore
from .search import cosine_similarity
from .state import AppState
from .types import ChatMessage, IndexReport, NoteEmbedding, NoteState, SimilarNote, UsageRecord, UsageStats

__all__ = [
    "AIGateway",
    "AbsentNoteError",
    "AppState",
    "ChatMessage",
    "ChatSession",
    "ConfigurationError",
    "DimensionMismatchError",
    "EmbeddingCache",
    "EmptyInputError",
    "IndexReport",
    "Indexer",
    "NoteAssistant",
    "NoteEmbedding",
    "NoteNotFoundError",
    "NoteState",
    "NoteStore",
    "ProtocolError",
    "ProviderError",
    "RelatedNote",
    "SecondBrainError",
    "SimilarNote",
    "UsageRecord",
    "UsageStats",
    "VaultNoteStore",
    "cosine_similarity",
]

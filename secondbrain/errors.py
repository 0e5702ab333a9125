"""
Error types and error logging for secondbrain.

Logs full stack traces for debugging while showing clean messages to users.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path


class SecondBrainError(Exception):
    """Base class for all secondbrain errors."""


class ConfigurationError(SecondBrainError):
    """Provider is misconfigured (missing credential, unknown provider).

    The user must fix settings; the operation is aborted and never retried.
    """


class ProviderError(SecondBrainError):
    """A provider answered with a non-success status or could not be reached."""

    def __init__(self, message: str, status: int | None = None, body: str = ""):
        super().__init__(message)
        self.status = status
        self.body = body


class ProtocolError(SecondBrainError):
    """A provider response is missing the fields we expect."""

    def __init__(self, message: str, payload=None):
        super().__init__(message)
        self.payload = payload


class EmptyInputError(SecondBrainError, ValueError):
    """Blank text was passed where content is required."""


class DimensionMismatchError(SecondBrainError, ValueError):
    """Two vectors that must share a dimensionality do not."""

    def __init__(self, expected: int, actual: int, note_id: str | None = None):
        where = f" for {note_id}" if note_id else ""
        super().__init__(
            f"Embedding dimension mismatch{where}: expected {expected}, got {actual}"
        )
        self.expected = expected
        self.actual = actual
        self.note_id = note_id


class AbsentNoteError(SecondBrainError):
    """An operation that needs an active note was requested without one."""

    def __init__(self, message: str = "Please open a note first!"):
        super().__init__(message)


class NoteNotFoundError(SecondBrainError, KeyError):
    """The note collection has no note with this id."""

    def __init__(self, note_id: str):
        super().__init__(note_id)
        self.note_id = note_id

    def __str__(self) -> str:
        return f"Note not found: {self.note_id}"


def _error_log_path() -> Path:
    """Resolve error log path, respecting SECONDBRAIN_STORE_PATH."""
    store = os.environ.get("SECONDBRAIN_STORE_PATH")
    if store:
        return Path(store) / "secondbrain-errors.log"
    return Path.home() / ".secondbrain" / "secondbrain-errors.log"


def log_exception(exc: Exception, context: str = "") -> Path:
    """
    Log exception with full traceback to file.

    Args:
        exc: The exception that occurred
        context: Optional context string (e.g., command name)

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path()
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(f"\n{'='*60}\n")
            f.write(f"[{timestamp}]")
            if context:
                f.write(f" {context}")
            f.write("\n")
            f.write("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
    except OSError:
        pass  # Can't write error log, don't crash over it
    return log_path

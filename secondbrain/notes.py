"""
Note storage: the collection of notes secondbrain indexes.

NoteStore is the narrow interface the rest of the package depends on.
VaultNoteStore implements it over a directory of markdown files, with note
ids being POSIX paths relative to the vault root ("projects/idea.md").
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import AsyncIterator, Optional, Protocol, runtime_checkable

from .errors import NoteNotFoundError

logger = logging.getLogger(__name__)

NOTE_EXTENSIONS = frozenset({".md"})


@runtime_checkable
class NoteStore(Protocol):
    """
    Read/write access to a note collection plus change notification.
    """

    async def read_content(self, note_id: str) -> str:
        """Return the note's text. Raises NoteNotFoundError."""
        ...

    async def write_content(self, note_id: str, text: str) -> None:
        """Replace the note's text (creating it if needed)."""
        ...

    async def list_all_note_ids(self) -> list[str]:
        """All note ids in the collection, sorted."""
        ...

    async def get_last_modified(self, note_id: str) -> float:
        """Modification time (POSIX seconds). Raises NoteNotFoundError."""
        ...

    def watch(
        self,
        interval: float = 2.0,
        stop: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[str]:
        """Yield the id of each note whose content changes, until `stop` is set."""
        ...


class VaultNoteStore:
    """
    Markdown notes in a directory tree.

    Hidden files and directories (dot-prefixed) and symlinks are skipped.
    File I/O runs in worker threads so the event loop stays responsive.
    """

    def __init__(self, root: Path, extensions: frozenset[str] = NOTE_EXTENSIONS):
        self.root = Path(root).expanduser().resolve()
        self.extensions = extensions
        if not self.root.is_dir():
            raise NotADirectoryError(f"Vault directory not found: {self.root}")

    def _path(self, note_id: str) -> Path:
        """Resolve a note id to a path inside the vault."""
        if not note_id or note_id.startswith("/"):
            raise NoteNotFoundError(note_id)
        path = (self.root / note_id).resolve()
        if self.root not in path.parents:
            # Refuse ids like "../outside.md"
            raise NoteNotFoundError(note_id)
        if path.suffix.lower() not in self.extensions:
            raise NoteNotFoundError(note_id)
        return path

    def _scan(self) -> dict[str, float]:
        """Walk the vault: note id -> mtime."""
        found: dict[str, float] = {}
        for dirpath, dirnames, filenames in os.walk(self.root):
            # Prune hidden directories in place
            dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
            for name in filenames:
                if name.startswith("."):
                    continue
                path = Path(dirpath) / name
                if path.is_symlink() or path.suffix.lower() not in self.extensions:
                    continue
                try:
                    mtime = path.stat().st_mtime
                except OSError:
                    continue  # vanished between listing and stat
                found[path.relative_to(self.root).as_posix()] = mtime
        return found

    async def read_content(self, note_id: str) -> str:
        path = self._path(note_id)
        try:
            return await asyncio.to_thread(path.read_text, encoding="utf-8")
        except FileNotFoundError as e:
            raise NoteNotFoundError(note_id) from e

    async def write_content(self, note_id: str, text: str) -> None:
        path = self._path(note_id)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text, encoding="utf-8")

        await asyncio.to_thread(_write)

    async def list_all_note_ids(self) -> list[str]:
        found = await asyncio.to_thread(self._scan)
        return sorted(found)

    async def get_last_modified(self, note_id: str) -> float:
        path = self._path(note_id)
        try:
            stat = await asyncio.to_thread(path.stat)
        except FileNotFoundError as e:
            raise NoteNotFoundError(note_id) from e
        return stat.st_mtime

    async def watch(
        self,
        interval: float = 2.0,
        stop: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[str]:
        """
        Poll the vault and yield ids of new or modified notes.

        The first scan establishes a baseline and yields nothing.
        Stops when `stop` is set (checked once per interval).
        """
        known = await asyncio.to_thread(self._scan)
        while stop is None or not stop.is_set():
            if stop is not None:
                try:
                    await asyncio.wait_for(stop.wait(), timeout=interval)
                    return
                except asyncio.TimeoutError:
                    pass
            else:
                await asyncio.sleep(interval)

            current = await asyncio.to_thread(self._scan)
            for note_id, mtime in sorted(current.items()):
                previous = known.get(note_id)
                if previous is None or mtime > previous:
                    logger.debug("Detected change in %s", note_id)
                    yield note_id
            known = current

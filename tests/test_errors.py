"""Tests for error types, the error log and the ops log."""

import logging

from secondbrain.errors import (
    AbsentNoteError,
    DimensionMismatchError,
    EmptyInputError,
    NoteNotFoundError,
    SecondBrainError,
    log_exception,
)
from secondbrain.logging_config import configure_ops_log, remove_ops_log


class TestErrorTypes:

    def test_hierarchy(self):
        for cls in (AbsentNoteError, DimensionMismatchError, EmptyInputError, NoteNotFoundError):
            assert issubclass(cls, SecondBrainError)

    def test_messages(self):
        assert str(AbsentNoteError()) == "Please open a note first!"
        assert str(NoteNotFoundError("x.md")) == "Note not found: x.md"
        assert str(DimensionMismatchError(3, 2, "x.md")) == (
            "Embedding dimension mismatch for x.md: expected 3, got 2"
        )


class TestLogException:

    def test_writes_traceback(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SECONDBRAIN_STORE_PATH", str(tmp_path))
        try:
            raise RuntimeError("kaboom")
        except RuntimeError as e:
            path = log_exception(e, context="unit test")
        assert path == tmp_path / "secondbrain-errors.log"
        text = path.read_text()
        assert "unit test" in text
        assert "RuntimeError: kaboom" in text
        assert "Traceback" in text


class TestOpsLog:

    def test_records_info(self, tmp_path):
        handler = configure_ops_log(tmp_path)
        try:
            logging.getLogger("secondbrain.indexer").info("Indexed %s", "a.md")
        finally:
            remove_ops_log(handler)
        assert "Indexed a.md" in (tmp_path / "secondbrain-ops.log").read_text()

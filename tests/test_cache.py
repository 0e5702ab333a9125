"""Tests for the embedding cache and its serialized form."""

import pytest

from secondbrain.cache import SCHEMA_VERSION, EmbeddingCache
from secondbrain.errors import DimensionMismatchError


class TestUpsert:

    def test_insert_and_get(self, cache):
        entry = cache.upsert("a.md", [1.0, 0.0], 10.0)
        assert cache.get("a.md") == entry
        assert entry.dimension == 2
        assert cache.size() == 1
        assert "a.md" in cache

    def test_replace_keeps_single_entry(self, cache):
        cache.upsert("a.md", [1.0, 0.0], 10.0)
        cache.upsert("a.md", [0.0, 1.0], 20.0)
        assert cache.size() == 1
        assert cache.get("a.md").vector == [0.0, 1.0]
        assert cache.get("a.md").last_modified == 20.0

    def test_vector_is_copied(self, cache):
        vector = [1.0, 2.0]
        cache.upsert("a.md", vector, 1.0)
        vector.append(3.0)
        assert cache.get("a.md").vector == [1.0, 2.0]

    def test_dimension_mismatch_refused(self, cache):
        cache.upsert("a.md", [1.0, 0.0], 1.0)
        with pytest.raises(DimensionMismatchError) as exc:
            cache.upsert("b.md", [1.0, 0.0, 0.0], 1.0)
        assert exc.value.expected == 2
        assert exc.value.actual == 3
        assert "b.md" not in cache

    def test_sole_entry_may_change_dimension(self, cache):
        cache.upsert("a.md", [1.0, 0.0], 1.0)
        cache.upsert("a.md", [1.0, 0.0, 0.0], 2.0)
        assert cache.dimension == 3


class TestMaintenance:

    def test_remove(self, cache):
        cache.upsert("a.md", [1.0], 1.0)
        assert cache.remove("a.md") is True
        assert cache.remove("a.md") is False
        assert cache.size() == 0

    def test_clear_resets_dimension(self, cache):
        cache.upsert("a.md", [1.0, 2.0], 1.0)
        cache.clear()
        assert cache.size() == 0
        assert cache.dimension is None
        cache.upsert("b.md", [1.0, 2.0, 3.0], 1.0)
        assert cache.dimension == 3

    def test_note_ids_sorted(self, cache):
        for note_id in ("c.md", "a.md", "b.md"):
            cache.upsert(note_id, [1.0], 1.0)
        assert cache.note_ids() == ["a.md", "b.md", "c.md"]

    def test_iteration_tolerates_removal(self, cache):
        cache.upsert("a.md", [1.0], 1.0)
        cache.upsert("b.md", [1.0], 1.0)
        for entry in cache:
            cache.remove(entry.note_id)
        assert len(cache) == 0


class TestSerialization:

    def test_blob_layout(self, cache):
        cache.upsert("notes/a.md", [0.5, 0.25], 123.0)
        blob = cache.to_dict()
        assert blob == {
            "embeddings": [{"path": "notes/a.md", "embedding": [0.5, 0.25], "lastModified": 123.0}],
            "version": SCHEMA_VERSION,
        }

    def test_round_trip(self, cache):
        cache.upsert("a.md", [0.5, 0.25], 1.0)
        cache.upsert("b.md", [0.1, 0.9], 2.0)
        restored = EmbeddingCache.from_dict(cache.to_dict())
        assert restored.note_ids() == ["a.md", "b.md"]
        assert restored.get("b.md").vector == [0.1, 0.9]
        assert restored.get("b.md").last_modified == 2.0

    def test_version_mismatch_starts_empty(self):
        blob = {"embeddings": [{"path": "a.md", "embedding": [1.0], "lastModified": 1}], "version": "0.9"}
        assert EmbeddingCache.from_dict(blob).size() == 0

    def test_missing_version_starts_empty(self):
        blob = {"embeddings": [{"path": "a.md", "embedding": [1.0], "lastModified": 1}]}
        assert EmbeddingCache.from_dict(blob).size() == 0

    @pytest.mark.parametrize("blob", [
        None,
        [],
        "garbage",
        {"version": SCHEMA_VERSION, "embeddings": [{"path": "a.md"}]},
        {"version": SCHEMA_VERSION, "embeddings": [{"path": "a.md", "embedding": ["x"], "lastModified": 1}]},
        {"version": SCHEMA_VERSION, "embeddings": [
            {"path": "a.md", "embedding": [1.0, 0.0], "lastModified": 1},
            {"path": "b.md", "embedding": [1.0, 0.0, 0.0], "lastModified": 1},
        ]},
    ])
    def test_corrupt_blob_starts_empty(self, blob):
        assert EmbeddingCache.from_dict(blob).size() == 0

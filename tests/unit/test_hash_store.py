"""Unit tests for the persisted file-hash state."""

import json

import pytest

from codebase_vector.core.errors import StateError
from codebase_vector.infrastructure.state.hash_store import HashStateStore


@pytest.fixture
def store(tmp_path):
    return HashStateStore(tmp_path / "state")


class TestPathFor:
    def test_named_after_project(self, store, tmp_path):
        assert store.path_for("abc") == tmp_path / "state" / "abc_file_hashes.json"

    def test_blank_project_uses_default(self, store, tmp_path):
        assert store.path_for("") == tmp_path / "state" / "default_file_hashes.json"


class TestLoad:
    """Tests for HashStateStore.load."""

    def test_missing_file_is_empty_map(self, store):
        assert store.load("abc") == {}

    def test_round_trip(self, store):
        hashes = {"/p/a.py": "h1", "/p/b.py": "h2"}
        store.save("abc", hashes)

        assert store.load("abc") == hashes

    def test_corrupt_file_raises(self, store):
        path = store.path_for("abc")
        path.parent.mkdir(parents=True)
        path.write_text("{not json")

        with pytest.raises(StateError, match="Corrupt"):
            store.load("abc")

    def test_non_object_raises(self, store):
        path = store.path_for("abc")
        path.parent.mkdir(parents=True)
        path.write_text("[1, 2]")

        with pytest.raises(StateError):
            store.load("abc")

    def test_empty_file_is_empty_map(self, store):
        path = store.path_for("abc")
        path.parent.mkdir(parents=True)
        path.write_text("")

        assert store.load("abc") == {}


class TestSave:
    """Tests for HashStateStore.save."""

    def test_creates_state_dir(self, store):
        store.save("abc", {"/p/a.py": "h"})

        assert store.path_for("abc").is_file()
        assert json.loads(store.path_for("abc").read_text()) == {"/p/a.py": "h"}

    def test_no_temp_file_left_behind(self, store):
        store.save("abc", {"/p/a.py": "h"})

        leftovers = [p.name for p in store.state_dir.iterdir() if p.name.endswith(".tmp")]
        assert leftovers == []

    def test_overwrites_previous_state(self, store):
        store.save("abc", {"/p/a.py": "h1"})
        store.save("abc", {"/p/b.py": "h2"})

        assert store.load("abc") == {"/p/b.py": "h2"}

    def test_unwritable_dir_raises(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("a file, not a directory")

        with pytest.raises(StateError):
            HashStateStore(blocker / "state").save("abc", {})


class TestClear:
    """Tests for HashStateStore.clear."""

    def test_clear_existing(self, store):
        store.save("abc", {"/p/a.py": "h"})

        assert store.clear("abc") is True
        assert store.load("abc") == {}

    def test_clear_missing(self, store):
        assert store.clear("abc") is False

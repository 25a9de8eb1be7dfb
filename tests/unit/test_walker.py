"""Unit tests for SourceFileWalker."""

import os

import pytest

from codebase_vector.core.errors import WalkError
from codebase_vector.infrastructure.filesystem.walker import SourceFileWalker


def touch(root, rel, text="x = 1\n"):
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


def rel_names(root, files):
    return sorted(os.path.relpath(f, root).replace(os.sep, "/") for f in files)


class TestEnumerate:
    """Tests for SourceFileWalker.enumerate."""

    def test_keeps_supported_extensions_only(self, tmp_path):
        touch(tmp_path, "a.py")
        touch(tmp_path, "b.go")
        touch(tmp_path, "c.TS")
        touch(tmp_path, "README.md")
        touch(tmp_path, "data.json")

        files = SourceFileWalker().enumerate(str(tmp_path))

        assert rel_names(tmp_path, files) == ["a.py", "b.go", "c.TS"]

    def test_prunes_excluded_dirs(self, tmp_path):
        touch(tmp_path, "src/main.py")
        touch(tmp_path, "node_modules/lib/index.js")
        touch(tmp_path, ".git/hooks/pre-commit.py")
        touch(tmp_path, "pkg/__pycache__/m.py")
        touch(tmp_path, "vendor/x.go")

        files = SourceFileWalker().enumerate(str(tmp_path))

        assert rel_names(tmp_path, files) == ["src/main.py"]

    def test_honors_root_ignore_file(self, tmp_path):
        (tmp_path / ".gitignore").write_text("generated/\n*_pb2.py\n/scripts/\n")
        touch(tmp_path, "app.py")
        touch(tmp_path, "generated/api.py")
        touch(tmp_path, "proto/msg_pb2.py")
        touch(tmp_path, "scripts/run.py")
        touch(tmp_path, "lib/scripts/keep.py")

        files = SourceFileWalker().enumerate(str(tmp_path))

        assert rel_names(tmp_path, files) == ["app.py", "lib/scripts/keep.py"]

    def test_custom_ignore_source(self, tmp_path):
        class StaticPatterns:
            def load(self, root):
                return ["tests"]

        touch(tmp_path, "a.py")
        touch(tmp_path, "tests/test_a.py")

        files = SourceFileWalker(ignore_source=StaticPatterns()).enumerate(str(tmp_path))

        assert rel_names(tmp_path, files) == ["a.py"]

    def test_returns_absolute_paths(self, tmp_path):
        touch(tmp_path, "pkg/a.py")

        files = SourceFileWalker().enumerate(str(tmp_path))

        assert all(os.path.isabs(f) for f in files)

    def test_empty_directory(self, tmp_path):
        assert SourceFileWalker().enumerate(str(tmp_path)) == []

    def test_missing_root_raises(self, tmp_path):
        with pytest.raises(WalkError):
            SourceFileWalker().enumerate(str(tmp_path / "missing"))

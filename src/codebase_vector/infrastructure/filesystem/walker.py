import os

from loguru import logger

from codebase_vector.core.errors import WalkError
from codebase_vector.core.languages import detect_language
from codebase_vector.core.ports import IIgnorePatternSource
from codebase_vector.infrastructure.filesystem.ignore import GitIgnoreSource, is_ignored_path

EXCLUDED_DIRS: frozenset[str] = frozenset(
    {
        # Version control
        ".git",
        ".hg",
        ".svn",
        # Dependencies
        "node_modules",
        "vendor",
        ".venv",
        "venv",
        # Build output
        "dist",
        "build",
        ".next",
        # Caches
        "__pycache__",
        ".mypy_cache",
        ".pytest_cache",
        ".ruff_cache",
    }
)


class SourceFileWalker:
    """Enumerates indexable source files under a project root.

    Prunes the fixed exclusion set and anything matched by the root-level
    ignore file, then keeps files whose extension maps to a known language.
    Enumeration order is unspecified.
    """

    def __init__(
        self,
        ignore_source: IIgnorePatternSource | None = None,
        excluded_dirs: frozenset[str] = EXCLUDED_DIRS,
    ) -> None:
        self.ignore_source = ignore_source or GitIgnoreSource()
        self.excluded_dirs = excluded_dirs

    def enumerate(self, root: str) -> list[str]:
        if not os.path.isdir(root):
            raise WalkError(f"Cannot walk '{root}': not a directory")

        patterns = self.ignore_source.load(root)
        files: list[str] = []

        def _on_error(err: OSError) -> None:
            if err.filename is not None and os.path.normpath(err.filename) == os.path.normpath(root):
                raise WalkError(f"Cannot walk '{root}': {err}") from err
            logger.debug("Skipping unreadable entry {}: {}", err.filename, err)

        for dirpath, dirnames, filenames in os.walk(root, onerror=_on_error):
            rel_dir = os.path.relpath(dirpath, root)
            if rel_dir == ".":
                rel_dir = ""

            # Prune in place so os.walk never descends into excluded subtrees
            dirnames[:] = [
                d
                for d in dirnames
                if d not in self.excluded_dirs
                and not is_ignored_path(_join_rel(rel_dir, d), patterns, is_dir=True)
            ]

            for name in filenames:
                if not detect_language(name):
                    continue
                if is_ignored_path(_join_rel(rel_dir, name), patterns):
                    continue
                files.append(os.path.join(dirpath, name))

        return files


def _join_rel(rel_dir: str, name: str) -> str:
    return f"{rel_dir.replace(os.sep, '/')}/{name}" if rel_dir else name

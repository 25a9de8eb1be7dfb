"""
Minimal .gitignore-style matching for the source walker.

Supported: comments (#), blank lines, directory patterns (dir/), globs
(*, ?, [..]), anchored patterns (/pattern) and bare names matched as a path
segment anywhere. Negation (!pattern) and nested ignore files are not
supported; negated lines are dropped at load time.
"""

import fnmatch
import os
from pathlib import Path

from loguru import logger

GITIGNORE_FILENAME = ".gitignore"
_GLOB_CHARS = "*?["


class GitIgnoreSource:
    """Loads patterns from the root-level ignore file of a project."""

    def __init__(self, filename: str = GITIGNORE_FILENAME) -> None:
        self.filename = filename

    def load(self, root: str) -> list[str]:
        path = Path(root) / self.filename
        if not path.is_file():
            return []

        try:
            text = path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.debug("Could not read ignore file {}: {}", path, e)
            return []

        return parse_patterns(text.splitlines())


def parse_patterns(lines: list[str]) -> list[str]:
    patterns: list[str] = []
    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("!"):
            logger.debug("Negated ignore pattern not supported, skipping: {}", line)
            continue
        patterns.append(line)
    return patterns


def is_ignored_path(rel_path: str, patterns: list[str], is_dir: bool = False) -> bool:
    """Tests a root-relative path (either separator) against ignore patterns.

    Directory patterns only match directories, either the path itself when
    ``is_dir`` is set or one of its parent segments.
    """
    rel_path = rel_path.strip().replace(os.sep, "/").replace("\\", "/")
    if rel_path.startswith("./"):
        rel_path = rel_path[2:]
    if not rel_path or rel_path == ".":
        return False

    segments = rel_path.split("/")
    basename = segments[-1]
    dir_segments = segments if is_dir else segments[:-1]

    for pattern in patterns:
        p = pattern.strip().replace("\\", "/")
        if not p:
            continue
        if p.startswith("./"):
            p = p[2:]

        anchored = p.startswith("/")
        p = p.lstrip("/")

        if p.endswith("/"):
            directory = p.rstrip("/")
            if not directory:
                continue
            if rel_path.startswith(directory + "/") or (is_dir and rel_path == directory):
                return True
            if not anchored and "/" not in directory and directory in dir_segments:
                return True
            continue

        if fnmatch.fnmatchcase(rel_path, p):
            return True

        if anchored or "/" in p:
            continue

        if any(ch in p for ch in _GLOB_CHARS):
            if fnmatch.fnmatchcase(basename, p):
                return True
        elif p in segments:
            return True

    return False

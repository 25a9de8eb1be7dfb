"""Project identity: canonical roots, project ids, collection names and path keys."""

import os
from pathlib import Path

from codebase_vector.core.errors import InvalidPathError
from codebase_vector.core.fingerprint import fingerprint

DEFAULT_COLLECTION_NAME = "codebase_default"
COLLECTION_PREFIX = "codebase_"


def normalize_root(path: str | os.PathLike[str]) -> str:
    """Resolves a project root to an absolute, cleaned, symlink-free path.

    Raises InvalidPathError if the path does not exist or is not a directory.
    """
    raw = str(path).strip()
    if not raw:
        raise InvalidPathError("Project root must not be empty")

    candidate = Path(raw).expanduser()
    try:
        resolved = candidate.resolve(strict=True)
    except (FileNotFoundError, RuntimeError) as e:
        raise InvalidPathError(f"Project root does not exist: {raw}") from e
    except OSError as e:
        raise InvalidPathError(f"Project root is not accessible: {raw} ({e})") from e

    if not resolved.is_dir():
        raise InvalidPathError(f"Project root is not a directory: {raw}")
    return str(resolved)


def normalize_file_path(path: str | os.PathLike[str]) -> str:
    """Canonical key for a file: absolute, cleaned, forward slashes, lower-cased on Windows.

    Returns an empty string for blank input.
    """
    raw = str(path).strip()
    if not raw:
        return ""

    normalized = os.path.normpath(os.path.abspath(raw)).replace(os.sep, "/")
    if os.name == "nt":
        normalized = normalized.lower()
    return normalized


def compute_project_id(canonical_root: str | os.PathLike[str]) -> str:
    """Stable opaque id for a project: the digest of its normalized root path."""
    key = normalize_file_path(canonical_root)
    if not key:
        raise InvalidPathError("Cannot compute a project id for an empty path")
    return fingerprint(key)


def collection_name(project_id: str | None) -> str:
    """Vector store namespace for a project; blank ids share the default collection."""
    project_id = (project_id or "").strip()
    if not project_id:
        return DEFAULT_COLLECTION_NAME
    return f"{COLLECTION_PREFIX}{project_id}"


def canonicalize_hash_keys(hashes: dict[str, str], root: str) -> dict[str, str]:
    """Re-keys persisted hash state against ``root``.

    Relative keys are joined onto the root, every key is passed through
    normalize_file_path, and blank keys are dropped.
    """
    if not hashes or not root.strip():
        return dict(hashes)

    base = os.path.normpath(root.strip())
    canonical: dict[str, str] = {}
    for key, digest in hashes.items():
        key = key.strip()
        if not key:
            continue
        native = key.replace("/", os.sep)
        if not os.path.isabs(native):
            native = os.path.join(base, native)
        canonical[normalize_file_path(native)] = digest
    return canonical


def collection_for_root(root: str | os.PathLike[str]) -> str:
    """Collection name of the project rooted at ``root``."""
    return collection_name(compute_project_id(normalize_root(root)))


def resolve_path_prefixes(root: str, prefixes: list[str]) -> list[str]:
    """Stored paths are absolute; relative prefixes are taken from the project root."""
    return [
        normalize_file_path(p if os.path.isabs(p) else os.path.join(root, p))
        for p in prefixes
        if p.strip()
    ]

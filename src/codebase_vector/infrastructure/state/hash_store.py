import json
import os
from pathlib import Path

from loguru import logger

from codebase_vector.core.errors import StateError

DEFAULT_STATE_DIR = "~/.codebase"
STATE_FILE_SUFFIX = "_file_hashes.json"


class HashStateStore:
    """Persists the per-project map of canonical file path -> content fingerprint.

    One JSON object per project, named after the project id, under a
    user-scoped state directory. Writes go through a temporary file and an
    atomic rename so a crashed run never leaves a truncated map behind.
    """

    def __init__(self, state_dir: str | os.PathLike[str] = DEFAULT_STATE_DIR) -> None:
        self.state_dir = Path(state_dir).expanduser()

    def path_for(self, project_id: str) -> Path:
        project_id = project_id.strip() or "default"
        return self.state_dir / f"{project_id}{STATE_FILE_SUFFIX}"

    def load(self, project_id: str) -> dict[str, str]:
        """Returns the last persisted map; a missing file is an empty map."""
        path = self.path_for(project_id)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as e:
            raise StateError(f"Failed to read hash state {path}: {e}") from e

        try:
            data = json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError as e:
            raise StateError(f"Corrupt hash state {path}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise StateError(f"Corrupt hash state {path}: expected a JSON object")
        return {str(k): str(v) for k, v in data.items()}

    def save(self, project_id: str, hashes: dict[str, str]) -> None:
        path = self.path_for(project_id)
        tmp = path.with_suffix(path.suffix + ".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with tmp.open("w", encoding="utf-8") as handle:
                json.dump(hashes, handle, indent=2, sort_keys=True)
                handle.write("\n")
            tmp.replace(path)
        except OSError as e:
            raise StateError(f"Failed to write hash state {path}: {e}") from e
        logger.debug("Saved {} file hashes to {}", len(hashes), path)

    def clear(self, project_id: str) -> bool:
        """Deletes the persisted map. Returns False if there was nothing to delete."""
        path = self.path_for(project_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StateError(f"Failed to delete hash state {path}: {e}") from e
        return True

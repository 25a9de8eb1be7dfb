import os

LANGUAGE_EXTENSIONS: dict[str, str] = {
    ".go": "go",
    ".py": "python",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
}


def detect_language(path: str) -> str:
    """Returns the language for a file extension, or an empty string if unsupported."""
    ext = os.path.splitext(path)[1].lower()
    return LANGUAGE_EXTENSIONS.get(ext, "")


def supported_extensions() -> list[str]:
    return sorted(LANGUAGE_EXTENSIONS)

from importlib.metadata import version

try:
    __version__ = version("codebase-vector")
except Exception:
    __version__ = "unknown"

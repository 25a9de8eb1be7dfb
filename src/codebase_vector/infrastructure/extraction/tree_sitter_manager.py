import importlib
import re
import threading

from tree_sitter import Language, Node, Parser, Query, QueryCursor

# Grammar name -> (module, function returning the language pointer)
GRAMMAR_MODULES: dict[str, tuple[str, str]] = {
    "go": ("tree_sitter_go", "language"),
    "javascript": ("tree_sitter_javascript", "language"),
    "typescript": ("tree_sitter_typescript", "language_typescript"),
    "tsx": ("tree_sitter_typescript", "language_tsx"),
}

# Units spanning fewer lines than this are not worth embedding
MIN_UNIT_LINES = 3

_language_cache: dict[str, Language] = {}
_query_cache: dict[tuple[str, str], Query] = {}
_cache_lock = threading.Lock()

_COMMENT_MARKERS = re.compile(r"^\s*(//+|/\*+|\*+/?)\s?")


def get_language(grammar: str) -> Language:
    """Loads the compiled grammar for ``grammar`` once per process."""
    with _cache_lock:
        if grammar in _language_cache:
            return _language_cache[grammar]

        module_info = GRAMMAR_MODULES.get(grammar)
        if not module_info:
            raise ValueError(f"Unsupported tree-sitter grammar: {grammar}")

        module_name, func_name = module_info
        try:
            module = importlib.import_module(module_name)
        except ImportError as e:
            raise ImportError(
                f"Grammar package '{module_name}' not installed. "
                f"Install it with: pip install {module_name.replace('_', '-')}"
            ) from e

        language = Language(getattr(module, func_name)())
        _language_cache[grammar] = language
        return language


def new_parser(grammar: str) -> Parser:
    """Returns a fresh parser; parsers are not shared between indexing threads."""
    return Parser(get_language(grammar))


def run_query(grammar: str, node: Node, query_src: str) -> dict[str, list[Node]]:
    """Runs ``query_src`` over the subtree of ``node``, returning captures by name."""
    key = (grammar, query_src)
    with _cache_lock:
        query = _query_cache.get(key)
    if query is None:
        query = Query(get_language(grammar), query_src)
        with _cache_lock:
            _query_cache[key] = query
    return QueryCursor(query).captures(node)


def node_text(node: Node | None) -> str:
    if node is None or node.text is None:
        return ""
    return node.text.decode("utf-8", errors="replace")


def squash(text: str) -> str:
    """Collapses runs of whitespace, so multi-line headers read as one line."""
    return " ".join(text.split())


def line_span(node: Node) -> tuple[int, int]:
    """1-indexed, inclusive start and end lines of ``node``."""
    return node.start_point[0] + 1, node.end_point[0] + 1


def is_long_enough(node: Node) -> bool:
    start, end = line_span(node)
    return end - start + 1 >= MIN_UNIT_LINES


def header_text(data: bytes, node: Node, body: Node | None) -> str:
    """Source text of ``node`` up to where its body starts."""
    end = body.start_byte if body is not None else node.end_byte
    return squash(data[node.start_byte : end].decode("utf-8", errors="replace"))


def leading_comment(node: Node) -> str:
    """Text of the comment block directly above ``node``, markers stripped."""
    comments: list[Node] = []
    expected_row = node.start_point[0]
    sibling = node.prev_sibling
    while sibling is not None and sibling.type == "comment":
        if sibling.end_point[0] != expected_row - 1:
            break
        comments.append(sibling)
        expected_row = sibling.start_point[0]
        sibling = sibling.prev_sibling

    lines: list[str] = []
    for comment in reversed(comments):
        for line in node_text(comment).splitlines():
            line = _COMMENT_MARKERS.sub("", line.rstrip())
            if line.endswith("*/"):
                line = line[:-2].rstrip()
            lines.append(line)
    return "\n".join(lines).strip()

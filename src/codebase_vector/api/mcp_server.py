import asyncio

from mcp.server.fastmcp import FastMCP

from codebase_vector.api.state import _services
from codebase_vector.config import settings
from codebase_vector.core.errors import CodebaseVectorError
from codebase_vector.core.identity import collection_for_root
from codebase_vector.core.models import QueryFilter

mcp = FastMCP("codebase-vector")


def _language_filter(language: str | None, min_lines: int = 0) -> QueryFilter:
    return QueryFilter(languages=[language] if language else [], min_lines=min_lines)


@mcp.tool()
async def search_code(
    query: str, project_root: str, limit: int = 10, language: str | None = None
) -> str:
    """
    Search an indexed project's functions and methods via semantic vector search.

    Args:
        query: Natural-language description of the code you are looking for.
        project_root: Root directory of the indexed project.
        limit: Maximum number of results to return.
        language: Optional language (python, go, javascript, typescript) to restrict the search.
    """
    service = _services.get("search")
    if not service:
        return "Error: Search service is not initialized."

    try:
        results = await asyncio.to_thread(
            service.search,
            query,
            limit=limit,
            query_filter=_language_filter(language),
            collection=collection_for_root(project_root),
        )
    except (CodebaseVectorError, ValueError) as e:
        return f"Search execution failed: {e}"

    if not results:
        return f"No results found for query: '{query}'"

    output = [f"Found {len(results)} results for '{query}':\n"]
    for hit in results:
        chunk = hit.payload
        output.append(
            f"--- Result (Score: {hit.score:.4f}) ---\n"
            f"Location: {chunk.file_path}:{chunk.start_line}-{chunk.end_line}\n"
            f"Unit: {chunk.node_type} {chunk.node_name}\n"
            f"Content:\n{chunk.content}\n"
        )
    return "\n".join(output)


@mcp.tool()
async def find_duplicates(
    project_root: str,
    threshold: float | None = None,
    min_lines: int = 0,
    language: str | None = None,
) -> str:
    """
    Find groups of near-duplicate functions in an indexed project.

    Args:
        project_root: Root directory of the indexed project.
        threshold: Minimum cosine similarity between two units (defaults to the configured value).
        min_lines: Ignore units shorter than this many lines.
        language: Optional language to restrict the comparison.
    """
    service = _services.get("duplicates")
    if not service:
        return "Error: Duplicate service is not initialized."

    threshold = settings.duplicate_threshold if threshold is None else threshold
    try:
        groups = await asyncio.to_thread(
            service.find_duplicates,
            _language_filter(language, min_lines),
            threshold,
            collection=collection_for_root(project_root),
        )
    except CodebaseVectorError as e:
        return f"Duplicate detection failed: {e}"

    if not groups:
        return f"No duplicates found at threshold {threshold:.2f}"

    output = [f"Found {len(groups)} duplicate groups:\n"]
    for i, group in enumerate(sorted(groups, key=lambda g: -g.avg_score), start=1):
        lines = [f"--- Group {i} (Avg score: {group.avg_score:.4f}) ---"]
        if group.reason:
            lines.append(f"Reason: {group.reason}")
        lines.extend(
            f"{c.file_path}:{c.start_line}-{c.end_line} ({c.node_type} {c.node_name})"
            for c in group.chunks
        )
        output.append("\n".join(lines) + "\n")
    return "\n".join(output)

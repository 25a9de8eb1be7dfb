"""Service instances shared by the HTTP API and the MCP server."""

from typing import TYPE_CHECKING, Any

from codebase_vector.services.search import SearchService

if TYPE_CHECKING:
    from codebase_vector.cli import EngineDeps

# Keys: "search", "duplicates", "indexing"
_services: dict[str, Any] = {}


def init_services(deps: "EngineDeps") -> None:
    from codebase_vector.cli import _build_duplicate_service, _build_indexing_service

    _services["search"] = SearchService(deps.embedder, deps.store)
    _services["duplicates"] = _build_duplicate_service(deps)
    _services["indexing"] = _build_indexing_service(deps)

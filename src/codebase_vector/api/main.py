import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from codebase_vector.api.state import _services, init_services
from codebase_vector.cli import _build_dependencies
from codebase_vector.config import settings
from codebase_vector.core.errors import CodebaseVectorError, InvalidPathError
from codebase_vector.core.identity import collection_for_root, normalize_root, resolve_path_prefixes
from codebase_vector.core.models import DuplicateGroup, IndexSummary, QueryFilter, SearchHit

# One in-flight index run per project root
_index_locks: dict[str, asyncio.Lock] = {}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown events for the API."""
    print("\n[Startup] Initializing embedder and LanceDB connection...")

    try:
        init_services(_build_dependencies())
        print("[Startup] API is ready to accept concurrent requests.")
    except Exception as e:
        print(f"[Startup] Failed to initialize services: {e}")
        raise

    yield

    print("\n[Shutdown] Cleaning up resources...")
    _services.clear()
    _index_locks.clear()


app = FastAPI(
    title="codebase-vector API",
    description="Async API for semantic code search and duplicate detection.",
    version="0.1.0",
    lifespan=lifespan,
)


class ProjectRequest(BaseModel):
    project_root: str = Field(..., description="Root directory of an indexed project.")


class FilteredRequest(ProjectRequest):
    filter: QueryFilter = Field(default_factory=QueryFilter)


class SearchRequest(FilteredRequest):
    """Schema for a semantic code search request."""

    query: str = Field(..., min_length=1, description="Natural-language description of the code.")
    limit: int = Field(10, ge=1, le=100, description="Maximum number of results to return.")


class SearchResponse(BaseModel):
    query: str
    collection: str
    results: list[SearchHit]


class DuplicatesRequest(FilteredRequest):
    """Schema for a duplicate detection request."""

    threshold: float | None = Field(None, ge=0.0, le=1.0, description="Minimum cosine similarity.")


class DuplicatesResponse(BaseModel):
    collection: str
    groups: list[DuplicateGroup]


def _resolve(request: ProjectRequest) -> tuple[str, str]:
    try:
        root = normalize_root(request.project_root)
    except InvalidPathError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return root, collection_for_root(root)


def _with_prefixes(query_filter: QueryFilter, root: str) -> QueryFilter:
    return query_filter.model_copy(
        update={"path_prefixes": resolve_path_prefixes(root, query_filter.path_prefixes)}
    )


def _service(name: str):
    service = _services.get(name)
    if service is None:
        raise HTTPException(status_code=503, detail=f"The {name} service is not initialized.")
    return service


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Basic health check endpoint."""
    if not _services:
        raise HTTPException(status_code=503, detail="Services initializing or failed")

    return {
        "status": "healthy",
        "embedder_provider": settings.embedder.provider,
        "embedder_model": settings.embedder.model_name,
    }


@app.post("/search", response_model=SearchResponse)
async def search(request: SearchRequest) -> SearchResponse:
    """Executes a semantic search asynchronously."""
    service = _service("search")
    root, collection = _resolve(request)

    try:
        results = await asyncio.to_thread(
            service.search,
            request.query,
            request.limit,
            _with_prefixes(request.filter, root),
            collection,
        )
    except (CodebaseVectorError, ValueError) as e:
        raise HTTPException(status_code=500, detail=f"Search execution failed: {e}") from e
    return SearchResponse(query=request.query, collection=collection, results=results)


@app.post("/duplicates", response_model=DuplicatesResponse)
async def duplicates(request: DuplicatesRequest) -> DuplicatesResponse:
    """Finds near-duplicate groups in a project's collection."""
    service = _service("duplicates")
    root, collection = _resolve(request)
    threshold = settings.duplicate_threshold if request.threshold is None else request.threshold

    try:
        groups = await asyncio.to_thread(
            service.find_duplicates,
            _with_prefixes(request.filter, root),
            threshold,
            collection,
        )
    except CodebaseVectorError as e:
        raise HTTPException(status_code=500, detail=f"Duplicate detection failed: {e}") from e
    return DuplicatesResponse(collection=collection, groups=groups)


@app.post("/index", response_model=IndexSummary)
async def index(request: ProjectRequest) -> IndexSummary:
    """Runs an incremental index of the project; concurrent runs for one root are rejected."""
    service = _service("indexing")
    root, _ = _resolve(request)

    lock = _index_locks.setdefault(root, asyncio.Lock())
    if lock.locked():
        raise HTTPException(status_code=409, detail=f"Indexing already in progress for {root}")

    async with lock:
        try:
            return await asyncio.to_thread(service.index_project, root)
        except CodebaseVectorError as e:
            raise HTTPException(status_code=500, detail=f"Indexing failed: {e}") from e

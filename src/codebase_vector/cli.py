import os
from typing import Annotated, Any, NamedTuple

import typer

from codebase_vector.config import settings
from codebase_vector.core.errors import CodebaseVectorError
from codebase_vector.core.identity import (
    collection_for_root,
    compute_project_id,
    normalize_root,
    resolve_path_prefixes,
)
from codebase_vector.core.models import QueryFilter
from codebase_vector.core.ports import IEmbedder
from codebase_vector.core.registry import ComponentRegistry
from codebase_vector.infrastructure.classification.openai_classifier import OpenAIPairClassifier
from codebase_vector.infrastructure.state.hash_store import HashStateStore
from codebase_vector.infrastructure.storage.lancedb_engine import LanceDBStore
from codebase_vector.services.duplicates import DuplicateService
from codebase_vector.services.indexing import IndexingService
from codebase_vector.services.search import SearchService

app = typer.Typer(
    help="codebase-vector: Incremental Semantic Code Index and Duplicate Finder",
    no_args_is_help=True,
)


class EngineDeps(NamedTuple):
    """Container for resolved engine dependencies."""

    embedder: Any
    store: Any
    extractors: Any
    state_store: HashStateStore
    classifier: Any


def version_callback(value: bool) -> None:
    if value:
        from codebase_vector import __version__

        typer.echo(f"codebase-vector version: {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    config_file: Annotated[
        str, typer.Option("--config-file", "-c", help="Path to config.yaml file.")
    ] = "config.yaml",
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-v",
            help="Show the version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """codebase-vector: Incremental Semantic Code Index and Duplicate Finder."""
    from codebase_vector.config import load_settings
    from codebase_vector.logger import configure_logger

    # Export to environment so uvicorn subprocesses (in API mode) inherit it
    os.environ["CODEBASE_CONFIG_FILE"] = config_file

    # Dynamically update the current process global settings singleton
    new_settings = load_settings(config_file)
    for field in type(settings).model_fields:
        setattr(settings, field, getattr(new_settings, field))

    configure_logger(settings.log_level, settings.log_serialize)


def _build_embedder() -> IEmbedder:
    config = settings.embedder
    EmbedderClass = ComponentRegistry.get_embedder(config.provider)

    if config.provider == "mlx":
        return EmbedderClass(
            model_name=config.model_name,
            max_token_length=config.max_token_length,
            dimension=config.dimension,
            passage_prefix=config.passage_prefix,
            query_prefix=config.query_prefix,
            batch_size=config.batch_size,
        )
    return EmbedderClass(
        model_name=config.model_name,
        api_key=config.resolved_api_key(),
        base_url=config.resolved_base_url(),
        timeout=config.timeout,
    )


def _build_dependencies(with_classifier: bool | None = None) -> EngineDeps:
    """Dependency Injection Factory driven by config.yaml configuration."""
    if with_classifier is None:
        with_classifier = settings.classifier.enabled

    classifier = None
    if with_classifier:
        config = settings.classifier
        classifier = OpenAIPairClassifier(
            model_name=config.model_name,
            api_key=config.resolved_api_key(),
            base_url=config.resolved_base_url(),
            timeout=config.timeout,
        )

    return EngineDeps(
        embedder=_build_embedder(),
        store=LanceDBStore(db_path=settings.db_path),
        extractors=ComponentRegistry.build_extractors(),
        state_store=HashStateStore(settings.state_dir),
        classifier=classifier,
    )


def _build_indexing_service(deps: EngineDeps) -> IndexingService:
    return IndexingService(
        extractors=deps.extractors,
        embedder=deps.embedder,
        vector_store=deps.store,
        state_store=deps.state_store,
        num_workers=settings.num_workers,
        store_max_retries=settings.store_max_retries,
        store_retry_backoff=settings.store_retry_backoff,
        retry_failed_files=settings.retry_failed_files,
    )


def _build_duplicate_service(deps: EngineDeps) -> DuplicateService:
    return DuplicateService(
        deps.store, classifier=deps.classifier, page_size=settings.scroll_page_size
    )


def _build_filter(
    root: str,
    languages: list[str] | None,
    node_types: list[str] | None,
    path_prefixes: list[str] | None,
    min_lines: int,
    max_lines: int,
) -> QueryFilter:
    return QueryFilter(
        languages=languages or [],
        node_types=node_types or [],
        path_prefixes=resolve_path_prefixes(root, path_prefixes or []),
        min_lines=min_lines,
        max_lines=max_lines,
    )


def _fail(e: Exception) -> typer.Exit:
    typer.echo(f"Error: {e}", err=True)
    return typer.Exit(code=1)


PathArg = Annotated[str, typer.Argument(help="Project root directory.")]
LanguageOpt = Annotated[
    list[str] | None, typer.Option("--language", "-L", help="Only include this language.")
]
NodeTypeOpt = Annotated[
    list[str] | None, typer.Option("--node-type", help="Only include this node type.")
]
PrefixOpt = Annotated[
    list[str] | None, typer.Option("--path-prefix", help="Only include files under this path.")
]
MinLinesOpt = Annotated[int, typer.Option("--min-lines", min=0, help="Minimum unit length.")]
MaxLinesOpt = Annotated[int, typer.Option("--max-lines", min=0, help="Maximum unit length.")]


@app.command()
def index(path: PathArg = ".") -> None:
    """Incrementally indexes a project into its vector collection."""
    try:
        deps = _build_dependencies(with_classifier=False)
        summary = _build_indexing_service(deps).index_project(path)
    except CodebaseVectorError as e:
        raise _fail(e) from e

    if summary.up_to_date:
        typer.echo(f"Index is up to date ({summary.files_seen} files).")
        return
    typer.echo(
        f"Indexed {summary.files_indexed} files ({summary.units_indexed} units), "
        f"{summary.files_deleted} deleted, {summary.files_failed} failed "
        f"-> {summary.collection}"
    )


@app.command()
def search(
    query: Annotated[str, typer.Argument(help="Natural-language description of the code.")],
    path: Annotated[str, typer.Option("--path", "-p", help="Project root directory.")] = ".",
    limit: Annotated[
        int, typer.Option("--limit", "-l", min=1, help="Maximum number of search results.")
    ] = 10,
    languages: LanguageOpt = None,
    node_types: NodeTypeOpt = None,
    path_prefixes: PrefixOpt = None,
    min_lines: MinLinesOpt = 0,
    max_lines: MaxLinesOpt = 0,
) -> None:
    """Searches a project's indexed code units by meaning."""
    try:
        root = normalize_root(path)
        deps = _build_dependencies(with_classifier=False)
        service = SearchService(deps.embedder, deps.store, collection_for_root(root))
        query_filter = _build_filter(
            root, languages, node_types, path_prefixes, min_lines, max_lines
        )
        results = service.search(query, limit=limit, query_filter=query_filter)
    except CodebaseVectorError as e:
        raise _fail(e) from e

    service.print_results(results)


@app.command()
def duplicates(
    path: PathArg = ".",
    threshold: Annotated[
        float | None,
        typer.Option("--threshold", "-t", min=0.0, max=1.0, help="Minimum cosine similarity."),
    ] = None,
    classify: Annotated[
        bool | None,
        typer.Option("--classify/--no-classify", help="Confirm candidate pairs with the LLM."),
    ] = None,
    languages: LanguageOpt = None,
    node_types: NodeTypeOpt = None,
    path_prefixes: PrefixOpt = None,
    min_lines: MinLinesOpt = 0,
    max_lines: MaxLinesOpt = 0,
) -> None:
    """Finds groups of near-duplicate functions in an indexed project."""
    threshold = settings.duplicate_threshold if threshold is None else threshold
    try:
        root = normalize_root(path)
        deps = _build_dependencies(with_classifier=classify)
        query_filter = _build_filter(
            root, languages, node_types, path_prefixes, min_lines, max_lines
        )
        groups = _build_duplicate_service(deps).find_duplicates(
            query_filter, threshold, collection=collection_for_root(root)
        )
    except CodebaseVectorError as e:
        raise _fail(e) from e

    if not groups:
        typer.echo("No duplicates found.")
        return

    groups.sort(key=lambda g: (-g.avg_score, -len(g.chunks)))
    for i, group in enumerate(groups, start=1):
        typer.echo(f"Group {i}: {len(group.chunks)} chunks, avg score {group.avg_score:.4f}")
        if group.reason:
            typer.echo(f"  Reason: {group.reason}")
        for chunk in group.chunks:
            typer.echo(
                f"  - {chunk.file_path}:{chunk.start_line}-{chunk.end_line} "
                f"({chunk.node_type} {chunk.node_name})"
            )


@app.command("clear-state")
def clear_state(path: PathArg = ".") -> None:
    """Forgets the stored file hashes so the next index run re-embeds everything."""
    try:
        project_id = compute_project_id(normalize_root(path))
        removed = HashStateStore(settings.state_dir).clear(project_id)
    except CodebaseVectorError as e:
        raise _fail(e) from e

    typer.echo("Cleared index state." if removed else "No index state to clear.")


@app.command("clear-index")
def clear_index(
    path: PathArg = ".",
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Bypass confirmation prompt."),
    ] = False,
) -> None:
    """Drops the project's vector collection and its stored file hashes."""
    try:
        root = normalize_root(path)
    except CodebaseVectorError as e:
        raise _fail(e) from e

    if not force:
        typer.confirm(
            f"Are you sure you want to delete the index of '{root}'? This will erase all indexed vectors.",
            abort=True,
        )

    try:
        project_id = compute_project_id(root)
        LanceDBStore(db_path=settings.db_path).drop_collection(collection_for_root(root))
        HashStateStore(settings.state_dir).clear(project_id)
    except CodebaseVectorError as e:
        raise _fail(e) from e

    typer.echo(f"Deleted index of {root}.")


@app.command()
def watch(
    path: PathArg = ".",
    debounce: Annotated[
        float | None,
        typer.Option("--debounce", "-d", min=0.0, help="Seconds of quiet before re-indexing."),
    ] = None,
) -> None:
    """Indexes a project, then keeps re-indexing it as files change."""
    import time

    from codebase_vector.services.watcher import ProjectWatcher

    try:
        deps = _build_dependencies(with_classifier=False)
        service = _build_indexing_service(deps)
        watcher = ProjectWatcher(
            path,
            service.index_project,
            debounce_seconds=settings.watch_debounce_seconds if debounce is None else debounce,
        )
    except CodebaseVectorError as e:
        raise _fail(e) from e

    watcher.run_once()
    watcher.start()
    typer.echo(f"Watching {watcher.root} for changes (Ctrl+C to stop)...")
    try:
        while watcher.is_watching:
            time.sleep(1.0)
    except KeyboardInterrupt:
        pass
    finally:
        watcher.stop()


@app.command()
def serve(
    host: Annotated[
        str, typer.Option("--host", "-h", help="Host to bind the API server to.")
    ] = "127.0.0.1",
    port: Annotated[
        int, typer.Option("--port", "-p", help="Port to bind the API server to.")
    ] = 8000,
    reload: Annotated[
        bool, typer.Option("--reload", help="Enable auto-reload for development.")
    ] = False,
) -> None:
    """Starts the asynchronous FastAPI search server."""
    import uvicorn

    print(f"Starting codebase-vector API server at http://{host}:{port}...")
    uvicorn.run("codebase_vector.api.main:app", host=host, port=port, reload=reload)


@app.command()
def mcp() -> None:
    """Starts the FastMCP standard input/output (stdio) server for integrations."""
    import sys

    from codebase_vector.api.mcp_server import mcp as mcp_server
    from codebase_vector.api.state import init_services

    print("[MCP Startup] Initializing embedder and LanceDB connection...", file=sys.stderr)
    try:
        init_services(_build_dependencies())
    except Exception as e:
        print(f"[MCP Startup] Failed to initialize services: {e}", file=sys.stderr)
        raise

    mcp_server.run()


if __name__ == "__main__":
    app()

import queue
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import TypeVar

import numpy as np
from loguru import logger

from codebase_vector.core.errors import CodebaseVectorError, EmbeddingError, StoreError
from codebase_vector.core.fingerprint import fingerprint, fingerprint_file, to_point_id
from codebase_vector.core.identity import (
    canonicalize_hash_keys,
    collection_name,
    compute_project_id,
    normalize_file_path,
    normalize_root,
)
from codebase_vector.core.languages import detect_language
from codebase_vector.core.models import ChunkPayload, CodeUnit, IndexSummary
from codebase_vector.core.ports import ICodeUnitExtractor, IEmbedder, IVectorStore
from codebase_vector.infrastructure.filesystem.walker import SourceFileWalker
from codebase_vector.infrastructure.state.hash_store import HashStateStore

T = TypeVar("T")

DEFAULT_NUM_WORKERS = 4


def build_embedding_text(file_path: str, language: str, unit: CodeUnit) -> str:
    """Metadata header, a blank line, then the raw unit text.

    Only non-empty metadata fields are included in the header.
    """
    meta = [
        f"file_path: {file_path}",
        f"language: {language}",
        f"node_name: {unit.name}",
        f"node_type: {unit.node_type}",
    ]
    if unit.package_name:
        meta.append(f"package: {unit.package_name}")
    if unit.imports:
        meta.append(f"imports: {', '.join(unit.imports)}")
    if unit.signature:
        meta.append(f"signature: {unit.signature}")
    if unit.receiver:
        meta.append(f"receiver: {unit.receiver}")
    if unit.doc:
        meta.append(f"doc: {unit.doc}")
    if unit.callees:
        meta.append(f"callees: {', '.join(unit.callees)}")
    if unit.param_types:
        meta.append(f"param_types: {', '.join(unit.param_types)}")
    if unit.return_types:
        meta.append(f"return_types: {', '.join(unit.return_types)}")
    if unit.has_error_return:
        meta.append("has_error_return: true")

    return "\n".join(meta) + "\n\n" + unit.content


def build_payload(file_path: str, language: str, unit: CodeUnit, code_hash: str) -> ChunkPayload:
    return ChunkPayload(
        file_path=file_path,
        language=language,
        node_type=unit.node_type,
        node_name=unit.name,
        start_line=unit.start_line,
        end_line=unit.end_line,
        code_hash=code_hash,
        content=unit.content,
        package_name=unit.package_name,
        imports=list(unit.imports),
        signature=unit.signature,
        receiver=unit.receiver,
        doc=unit.doc,
        callees=list(unit.callees),
        param_types=list(unit.param_types),
        return_types=list(unit.return_types),
        has_error_return=unit.has_error_return,
    )


@dataclass
class _RunContext:
    """State shared by the workers of a single run."""

    collection: str
    dimension: int | None = None
    lock: threading.Lock = field(default_factory=threading.Lock)
    failed: set[str] = field(default_factory=set)
    processed: list[str] = field(default_factory=list)
    units_indexed: int = 0
    collection_reset: bool = False


class IndexingService:
    """Keeps a project's vector collection in step with its files on disk.

    A run walks the project, diffs whole-file fingerprints against the hash
    state persisted by the previous run, removes points of deleted files,
    re-embeds changed files on a fixed-size worker pool and finally writes the
    new hash state. Runs for the same project must not overlap; the caller
    (CLI, watcher) is responsible for that.
    """

    def __init__(
        self,
        extractors: Mapping[str, ICodeUnitExtractor],
        embedder: IEmbedder,
        vector_store: IVectorStore,
        state_store: HashStateStore,
        walker: SourceFileWalker | None = None,
        num_workers: int = DEFAULT_NUM_WORKERS,
        store_max_retries: int = 3,
        store_retry_backoff: float = 0.5,
        retry_failed_files: bool = True,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.extractors = extractors
        self.embedder = embedder
        self.vector_store = vector_store
        self.state_store = state_store
        self.walker = walker or SourceFileWalker()
        self.num_workers = max(1, num_workers)
        self.store_max_retries = max(1, store_max_retries)
        self.store_retry_backoff = store_retry_backoff
        self.retry_failed_files = retry_failed_files
        self._sleep = sleep

    def index_project(self, root: str) -> IndexSummary:
        """Runs one incremental indexing pass over ``root``.

        Raises InvalidPathError, WalkError or StateError; every per-file
        problem is logged and counted instead.
        """
        normalized_root = normalize_root(root)
        project_id = compute_project_id(normalized_root)
        collection = collection_name(project_id)
        logger.info("Project fingerprint: {}", project_id[:12])
        logger.info("Using collection: {}", collection)

        # Walking
        files = self.walker.enumerate(normalized_root)
        logger.info("Found {} source files", len(files))

        # Diffing
        previous = canonicalize_hash_keys(self.state_store.load(project_id), normalized_root)
        current: dict[str, str] = {}
        changed: list[str] = []

        for path in files:
            if detect_language(path) not in self.extractors:
                logger.debug("No extractor registered for {}, skipping", path)
                continue
            key = normalize_file_path(path)
            try:
                digest = fingerprint_file(path)
            except OSError as e:
                logger.warning("Failed to hash {}: {}", path, e)
                # Unreadable this time; keep the old entry so the file is not treated as deleted
                if key in previous:
                    current[key] = previous[key]
                continue
            current[key] = digest
            if previous.get(key) != digest:
                changed.append(path)

        deleted = [key for key in previous if key not in current]

        summary = IndexSummary(
            project_id=project_id,
            collection=collection,
            files_seen=len(files),
            files_changed=len(changed),
            files_deleted=len(deleted),
        )
        logger.info(
            "Incremental index: {} added/modified, {} deleted, {} total files",
            len(changed),
            len(deleted),
            len(files),
        )

        if not changed and not deleted:
            logger.info("No changes detected, index is already up to date")
            return summary

        # Processing
        failed_deletes: set[str] = set()
        for key in deleted:
            try:
                self._delete_file_points(collection, key)
                logger.info("Deleted vectors for removed file {}", key)
            except StoreError as e:
                logger.error("Error deleting vectors for removed file {}: {}", key, e)
                failed_deletes.add(key)

        ctx = _RunContext(collection=collection)
        if changed:
            self._run_workers(changed, ctx)

        if ctx.collection_reset:
            # The collection came back empty, so unchanged files lost their points too
            changed_keys = {normalize_file_path(path) for path in changed}
            unchanged = [
                path
                for path in files
                if normalize_file_path(path) in current
                and normalize_file_path(path) not in changed_keys
            ]
            if unchanged:
                logger.warning(
                    "Collection {} was recreated, re-indexing {} unchanged files",
                    collection,
                    len(unchanged),
                )
                summary.files_changed += len(unchanged)
                self._run_workers(unchanged, ctx)

        summary.files_indexed = len(ctx.processed)
        summary.files_failed = len(ctx.failed)
        summary.units_indexed = ctx.units_indexed

        # Persisting
        new_state = dict(current)
        if self.retry_failed_files:
            for key in ctx.failed:
                new_state.pop(key, None)
            for key in failed_deletes:
                new_state[key] = previous[key]
        self.state_store.save(project_id, new_state)

        logger.info(
            "Indexing completed: {} files indexed ({} units), {} failed",
            summary.files_indexed,
            summary.units_indexed,
            summary.files_failed,
        )
        return summary

    def clear_project_state(self, project_id: str) -> bool:
        """Forgets the persisted hash state; the vector store is untouched."""
        return self.state_store.clear(project_id)

    def _run_workers(self, paths: list[str], ctx: _RunContext) -> None:
        work: queue.Queue[str] = queue.Queue()
        for path in paths:
            work.put(path)

        workers = [
            threading.Thread(target=self._worker, args=(work, ctx), name=f"indexer-{i}", daemon=True)
            for i in range(min(self.num_workers, len(paths)))
        ]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join()

    def _worker(self, work: "queue.Queue[str]", ctx: _RunContext) -> None:
        while True:
            try:
                path = work.get_nowait()
            except queue.Empty:
                return

            key = normalize_file_path(path)
            try:
                units = self._process_file(path, ctx)
            except (CodebaseVectorError, OSError) as e:
                logger.error("Error processing {}: {}", path, e)
                with ctx.lock:
                    ctx.failed.add(key)
            except Exception:
                logger.exception("Unexpected error processing {}", path)
                with ctx.lock:
                    ctx.failed.add(key)
            else:
                with ctx.lock:
                    ctx.processed.append(key)
                    ctx.units_indexed += units
            finally:
                work.task_done()

    def _process_file(self, path: str, ctx: _RunContext) -> int:
        """Delete, extract, embed and upsert one file. Returns the number of units stored."""
        file_path = normalize_file_path(path)

        # Clear stale points first so removed functions do not linger
        try:
            self._delete_file_points(ctx.collection, file_path)
        except StoreError as e:
            logger.warning("Error deleting existing vectors for {}: {}", path, e)

        language = detect_language(path)
        extractor = self.extractors[language]

        with open(path, "rb") as f:
            data = f.read()

        units = extractor.extract(path, data)
        if not units:
            return 0

        logger.info("Processing {} ({} units)", path, len(units))

        texts = [build_embedding_text(file_path, language, unit) for unit in units]
        vectors = np.asarray(self.embedder.embed_batch(texts), dtype=np.float32)
        if vectors.ndim != 2 or vectors.shape[0] == 0 or vectors.shape[1] == 0:
            raise EmbeddingError(f"No embedding vectors returned for {path}")
        if vectors.shape[0] != len(units):
            raise EmbeddingError(
                f"Expected {len(units)} vectors for {path}, got {vectors.shape[0]}"
            )

        self._ensure_collection(ctx, int(vectors.shape[1]))

        ids: list[int] = []
        payloads: list[ChunkPayload] = []
        rows: list[int] = []
        seen: set[int] = set()
        for i, unit in enumerate(units):
            code_hash = fingerprint(unit.content)
            point_id = to_point_id(code_hash)
            # Identical units in one file collapse onto one point
            if point_id in seen:
                continue
            seen.add(point_id)
            ids.append(point_id)
            payloads.append(build_payload(file_path, language, unit, code_hash))
            rows.append(i)

        self._with_retries(
            f"upsert {path}",
            lambda: self.vector_store.upsert(ctx.collection, ids, payloads, vectors[rows]),
        )
        logger.info("Indexed {} ({} vectors)", path, len(payloads))
        return len(payloads)

    def _ensure_collection(self, ctx: _RunContext, dimension: int) -> None:
        """Creates the collection on the first successful embedding of the run."""
        with ctx.lock:
            if ctx.dimension is None:
                ctx.collection_reset = self._with_retries(
                    f"ensure collection {ctx.collection}",
                    lambda: self.vector_store.ensure_collection(ctx.collection, dimension),
                )
                ctx.dimension = dimension
            elif ctx.dimension != dimension:
                raise EmbeddingError(
                    f"Embedding dimension changed mid-run ({ctx.dimension} -> {dimension})"
                )

    def _delete_file_points(self, collection: str, file_path: str) -> None:
        self._with_retries(
            f"delete points of {file_path}",
            lambda: self.vector_store.delete_by_filter(collection, {"file_path": file_path}),
        )

    def _with_retries(self, description: str, operation: Callable[[], T]) -> T:
        """Runs a store operation, retrying StoreError with linear backoff."""
        for attempt in range(1, self.store_max_retries + 1):
            try:
                return operation()
            except StoreError as e:
                if attempt == self.store_max_retries:
                    raise
                delay = self.store_retry_backoff * attempt
                logger.warning(
                    "Store call failed ({}), attempt {}/{}: {}; retrying in {:.1f}s",
                    description,
                    attempt,
                    self.store_max_retries,
                    e,
                    delay,
                )
                self._sleep(delay)
        raise AssertionError("unreachable")

import numpy as np
from loguru import logger
from numpy.typing import NDArray

from codebase_vector.core.errors import ClassificationError
from codebase_vector.core.identity import DEFAULT_COLLECTION_NAME
from codebase_vector.core.models import ChunkPayload, DuplicateGroup, PairCandidate, QueryFilter
from codebase_vector.core.ports import IPairClassifier, IVectorStore

DEFAULT_THRESHOLD = 0.92
DEFAULT_PAGE_SIZE = 100

# Spans shorter than this are never duplicate candidates
MIN_PAIR_LINES = 3


def is_trivial_pair(a: ChunkPayload, b: ChunkPayload) -> bool:
    """Pairs that are positionally coincident or too small to be meaningful."""
    if a.file_path == b.file_path and (a.start_line == b.start_line or a.end_line == b.end_line):
        return True
    return a.line_count < MIN_PAIR_LINES or b.line_count < MIN_PAIR_LINES


def cosine_similarity_matrix(vectors: NDArray[np.float32]) -> NDArray[np.float32]:
    """Pairwise cosine similarity of the rows. Zero vectors score 0 against everything."""
    norms = np.linalg.norm(vectors, axis=1, keepdims=True)
    safe = np.where(norms == 0, 1.0, norms)
    unit = vectors / safe
    return (unit @ unit.T).astype(np.float32)


class UnionFind:
    """Disjoint sets over dense integer indices with path compression and union by rank."""

    def __init__(self, size: int) -> None:
        self.parent = list(range(size))
        self.rank = [0] * size

    def find(self, x: int) -> int:
        root = x
        while self.parent[root] != root:
            root = self.parent[root]
        while self.parent[x] != root:
            self.parent[x], x = root, self.parent[x]
        return root

    def union(self, x: int, y: int) -> int:
        px, py = self.find(x), self.find(y)
        if px == py:
            return px
        if self.rank[px] < self.rank[py]:
            px, py = py, px
        self.parent[py] = px
        if self.rank[px] == self.rank[py]:
            self.rank[px] += 1
        return px


def build_duplicate_groups(pairs: list[PairCandidate]) -> list[DuplicateGroup]:
    """Merges confirmed pairs into connected components keyed by content fingerprint.

    Each distinct fingerprint contributes one chunk (the first one seen). The
    group score is the mean of the edge scores inside the component and the
    group reason is the first non-empty reason among those edges.
    """
    if not pairs:
        return []

    index: dict[str, int] = {}
    chunks: list[ChunkPayload] = []
    for pair in pairs:
        for chunk in (pair.a, pair.b):
            if chunk.code_hash not in index:
                index[chunk.code_hash] = len(chunks)
                chunks.append(chunk)

    uf = UnionFind(len(chunks))
    for pair in pairs:
        uf.union(index[pair.a.code_hash], index[pair.b.code_hash])

    scores: dict[int, list[float]] = {}
    reasons: dict[int, str | None] = {}
    for pair in pairs:
        root = uf.find(index[pair.a.code_hash])
        scores.setdefault(root, []).append(pair.score)
        if not reasons.get(root) and pair.reason:
            reasons[root] = pair.reason

    members: dict[int, list[ChunkPayload]] = {}
    for i, chunk in enumerate(chunks):
        members.setdefault(uf.find(i), []).append(chunk)

    return [
        DuplicateGroup(
            chunks=members[root],
            avg_score=sum(edge_scores) / len(edge_scores),
            reason=reasons.get(root),
        )
        for root, edge_scores in scores.items()
    ]


class DuplicateService:
    """Finds clusters of near-duplicate code units in one collection."""

    def __init__(
        self,
        vector_store: IVectorStore,
        collection: str = DEFAULT_COLLECTION_NAME,
        classifier: IPairClassifier | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self.vector_store = vector_store
        self.collection = collection
        self.classifier = classifier
        self.page_size = page_size

    def find_duplicates(
        self,
        query_filter: QueryFilter | None = None,
        threshold: float = DEFAULT_THRESHOLD,
        collection: str | None = None,
    ) -> list[DuplicateGroup]:
        collection = collection or self.collection
        query_filter = query_filter or QueryFilter()
        chunks, vectors = self.fetch_vectors(query_filter, collection)
        logger.info("Comparing {} chunks from {}", len(chunks), collection)

        candidates = self.find_candidates(chunks, vectors, threshold)
        logger.info("Found {} candidate pairs at threshold {:.2f}", len(candidates), threshold)

        confirmed = self.confirm_pairs(candidates)
        groups = build_duplicate_groups(confirmed)
        logger.info("Built {} duplicate groups", len(groups))
        return groups

    def fetch_vectors(
        self, query_filter: QueryFilter, collection: str | None = None
    ) -> tuple[list[ChunkPayload], NDArray[np.float32]]:
        """Scrolls the whole collection, keeping matching points that carry a vector."""
        collection = collection or self.collection
        chunks: list[ChunkPayload] = []
        rows: list[list[float]] = []

        token: int | None = None
        while True:
            points, token = self.vector_store.scroll(collection, self.page_size, token)
            for point in points:
                if point.vector is None or not query_filter.matches(point.payload):
                    continue
                chunks.append(point.payload)
                rows.append(point.vector)
            if token is None:
                break

        if not rows:
            return chunks, np.empty((0, 0), dtype=np.float32)
        return chunks, np.asarray(rows, dtype=np.float32)

    def find_candidates(
        self, chunks: list[ChunkPayload], vectors: NDArray[np.float32], threshold: float
    ) -> list[PairCandidate]:
        if len(chunks) < 2:
            return []

        similarity = cosine_similarity_matrix(vectors)
        rows, cols = np.triu_indices(len(chunks), k=1)
        keep = similarity[rows, cols] >= threshold

        candidates: list[PairCandidate] = []
        for i, j in zip(rows[keep].tolist(), cols[keep].tolist()):
            if is_trivial_pair(chunks[i], chunks[j]):
                continue
            candidates.append(
                PairCandidate(a=chunks[i], b=chunks[j], score=float(similarity[i, j]))
            )
        return candidates

    def confirm_pairs(self, candidates: list[PairCandidate]) -> list[PairCandidate]:
        """Runs the optional classifier; rejected or failed pairs are dropped."""
        if self.classifier is None:
            return candidates

        confirmed: list[PairCandidate] = []
        for candidate in candidates:
            try:
                is_duplicate, reason = self.classifier.classify_pair(
                    candidate.a, candidate.b, candidate.score
                )
            except ClassificationError as e:
                logger.warning(
                    "Classification failed for {} / {}: {}",
                    candidate.a.node_name,
                    candidate.b.node_name,
                    e,
                )
                continue
            if is_duplicate:
                confirmed.append(candidate.model_copy(update={"reason": reason or None}))
        return confirmed

from loguru import logger

from codebase_vector.core.identity import DEFAULT_COLLECTION_NAME
from codebase_vector.core.models import QueryFilter, SearchHit
from codebase_vector.core.ports import IEmbedder, IVectorStore

# Over-fetch factor so post-filtering still leaves enough hits
OVERFETCH_FACTOR = 2


class SearchService:
    """Semantic search over one project's code units."""

    def __init__(
        self,
        embedder: IEmbedder,
        vector_store: IVectorStore,
        collection: str = DEFAULT_COLLECTION_NAME,
    ) -> None:
        self.embedder = embedder
        self.vector_store = vector_store
        self.collection = collection

    def search(
        self,
        query: str,
        limit: int = 10,
        query_filter: QueryFilter | None = None,
        collection: str | None = None,
    ) -> list[SearchHit]:
        """Embeds the query and returns up to ``limit`` hits that pass the filter."""
        collection = collection or self.collection
        logger.info("Executing query in {}: {}", collection, query)

        query_vector = self.embedder.embed(query)
        hits = self.vector_store.search(collection, query_vector, limit=limit * OVERFETCH_FACTOR)

        if query_filter is not None:
            hits = [hit for hit in hits if query_filter.matches(hit.payload)]
        return hits[:limit]

    def print_results(self, results: list[SearchHit]) -> None:
        """Formats and prints the search hits."""
        if not results:
            logger.info("No results found")
            return

        logger.info("Top Results:")
        for hit in results:
            chunk = hit.payload
            logger.info(
                "[Score: {:.4f} | {}:{}-{} | {} {}]",
                hit.score,
                chunk.file_path,
                chunk.start_line,
                chunk.end_line,
                chunk.node_type,
                chunk.node_name,
            )
            snippet = chunk.content[:100].replace("\n", " ")
            logger.info('  --> "{}..."', snippet)

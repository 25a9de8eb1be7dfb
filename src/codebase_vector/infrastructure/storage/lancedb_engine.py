import re
import threading
from pathlib import Path
from typing import Any

import lancedb
import numpy as np
import pyarrow as pa
from loguru import logger
from numpy.typing import NDArray

from codebase_vector.core.errors import StoreError
from codebase_vector.core.models import ChunkPayload, SearchHit, StoredPoint
from codebase_vector.infrastructure.storage.mappers import ChunkMapper, vector_dimension_of

_COLUMN_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_STORE_ERRORS = (OSError, RuntimeError, ValueError)


class LanceDBStore:
    """
    Concrete implementation of IVectorStore on an embedded LanceDB database.
    Each collection is one table; points are keyed by the unsigned 64-bit `id` column.
    """

    def __init__(self, db_path: str, mapper_class: type[ChunkMapper] = ChunkMapper) -> None:
        self.db_path = str(Path(db_path).expanduser())
        self.mapper_class = mapper_class
        self.db = lancedb.connect(self.db_path)
        self._tables: dict[str, Any] = {}
        self._mappers: dict[str, ChunkMapper] = {}
        self._lock = threading.Lock()

    def _table_names(self) -> set[str]:
        names: set[str] = set()
        page_token = None
        while True:
            response = self.db.list_tables(page_token=page_token)
            names.update(response.tables)
            page_token = response.page_token
            if not page_token:
                return names

    def _open(self, name: str) -> Any | None:
        """Returns the cached table handle, or None if the collection does not exist."""
        with self._lock:
            if name in self._tables:
                return self._tables[name]
            try:
                if name not in self._table_names():
                    return None
                table = self.db.open_table(name)
            except _STORE_ERRORS as e:
                raise StoreError(f"Failed to open collection '{name}': {e}") from e
            self._tables[name] = table
            return table

    def _mapper_for(self, name: str, table: Any) -> ChunkMapper:
        mapper = self._mappers.get(name)
        if mapper is None:
            dimension = vector_dimension_of(table.schema) or 0
            mapper = self.mapper_class(vector_dimension=dimension)
            self._mappers[name] = mapper
        return mapper

    def ensure_collection(self, name: str, dimension: int) -> bool:
        """Returns True when the collection was (re)created and so holds no points."""
        with self._lock:
            mapper = self._mappers.get(name)
            if mapper is not None and mapper.vector_dimension == dimension:
                return False

            try:
                if name in self._table_names():
                    table = self.db.open_table(name)
                    existing = vector_dimension_of(table.schema)
                    if existing == dimension:
                        self._tables[name] = table
                        self._mappers[name] = self.mapper_class(vector_dimension=dimension)
                        return False
                    logger.warning(
                        "Collection '{}' has dimension {} (expected {}), recreating it",
                        name,
                        existing,
                        dimension,
                    )
                    self.db.drop_table(name, ignore_missing=True)

                mapper = self.mapper_class(vector_dimension=dimension)
                self._tables[name] = self.db.create_table(name, schema=mapper.schema, exist_ok=True)
                self._mappers[name] = mapper
            except _STORE_ERRORS as e:
                raise StoreError(f"Failed to ensure collection '{name}': {e}") from e

        logger.info("Created collection '{}' (dimension {})", name, dimension)
        return True

    def drop_collection(self, name: str) -> None:
        with self._lock:
            try:
                self.db.drop_table(name, ignore_missing=True)
            except _STORE_ERRORS as e:
                raise StoreError(f"Failed to drop collection '{name}': {e}") from e
            self._tables.pop(name, None)
            self._mappers.pop(name, None)

    def upsert(
        self,
        name: str,
        ids: list[int],
        payloads: list[ChunkPayload],
        vectors: NDArray[np.float32],
    ) -> None:
        if not payloads:
            return

        table = self._open(name)
        if table is None:
            raise StoreError(f"Collection '{name}' does not exist")

        batch = self._mapper_for(name, table).to_record_batch(ids, payloads, vectors)
        try:
            (
                table.merge_insert("id")
                .when_matched_update_all()
                .when_not_matched_insert_all()
                .execute(pa.Table.from_batches([batch]))
            )
        except _STORE_ERRORS as e:
            raise StoreError(f"Failed to upsert {len(payloads)} points into '{name}': {e}") from e

    def delete_by_filter(self, name: str, conditions: dict[str, str]) -> None:
        if not conditions:
            raise ValueError("Refusing to delete without conditions")

        table = self._open(name)
        if table is None:
            return

        try:
            table.delete(_build_predicate(conditions))
        except _STORE_ERRORS as e:
            raise StoreError(f"Failed to delete from '{name}': {e}") from e

    def scroll(
        self, name: str, page_size: int, page_token: int | None = None
    ) -> tuple[list[StoredPoint], int | None]:
        table = self._open(name)
        if table is None:
            return [], None

        offset = page_token or 0
        try:
            rows = table.search().offset(offset).limit(page_size).to_list()
        except _STORE_ERRORS as e:
            raise StoreError(f"Failed to scroll '{name}' at offset {offset}: {e}") from e

        mapper = self._mapper_for(name, table)
        points = [mapper.from_row(row) for row in rows]
        next_token = offset + len(rows) if len(rows) == page_size else None
        return points, next_token

    def search(
        self, name: str, vector: NDArray[np.float32], limit: int = 10
    ) -> list[SearchHit]:
        table = self._open(name)
        if table is None:
            return []

        try:
            rows = table.search(vector).distance_type("cosine").limit(limit).to_list()
        except _STORE_ERRORS as e:
            raise StoreError(f"Failed to search '{name}': {e}") from e

        mapper = self._mapper_for(name, table)
        hits = []
        for row in rows:
            point = mapper.from_row(row, with_vector=False)
            # Cosine distance is 1 - similarity
            hits.append(SearchHit(payload=point.payload, score=1.0 - float(row.get("_distance", 1.0))))
        return hits


def _build_predicate(conditions: dict[str, str]) -> str:
    clauses = []
    for column, value in conditions.items():
        if not _COLUMN_NAME.match(column):
            raise ValueError(f"Invalid column name: '{column}'")
        escaped = str(value).replace("'", "''")
        clauses.append(f"{column} = '{escaped}'")
    return " AND ".join(clauses)

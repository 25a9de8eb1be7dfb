from typing import Any

import numpy as np
import pyarrow as pa
from numpy.typing import NDArray

from codebase_vector.core.models import ChunkPayload, StoredPoint

_LIST_FIELDS = ("imports", "callees", "param_types", "return_types")


class ChunkMapper:
    """Mapper for mapping code chunk payloads to PyArrow structures and vice versa."""

    def __init__(self, vector_dimension: int) -> None:
        self.vector_dimension = vector_dimension
        self._schema = pa.schema(
            [
                pa.field("id", pa.uint64()),
                pa.field("vector", pa.list_(pa.float32(), self.vector_dimension)),
                pa.field("file_path", pa.string()),
                pa.field("language", pa.string()),
                pa.field("node_type", pa.string()),
                pa.field("node_name", pa.string()),
                pa.field("start_line", pa.int32()),
                pa.field("end_line", pa.int32()),
                pa.field("code_hash", pa.string()),
                pa.field("content", pa.string()),
                pa.field("package_name", pa.string()),
                pa.field("imports", pa.list_(pa.string())),
                pa.field("signature", pa.string()),
                pa.field("receiver", pa.string()),
                pa.field("doc", pa.string()),
                pa.field("callees", pa.list_(pa.string())),
                pa.field("param_types", pa.list_(pa.string())),
                pa.field("return_types", pa.list_(pa.string())),
                pa.field("has_error_return", pa.bool_()),
            ]
        )

    @property
    def schema(self) -> Any:
        return self._schema

    def to_record_batch(
        self, ids: list[int], payloads: list[ChunkPayload], vectors: NDArray[np.float32]
    ) -> Any:
        if len(ids) != len(payloads) or len(payloads) != len(vectors):
            raise ValueError(
                f"Length mismatch: {len(ids)} ids, {len(payloads)} payloads, {len(vectors)} vectors"
            )

        flat = np.ascontiguousarray(vectors, dtype=np.float32).ravel()

        def column(name: str, type_: Any = None) -> Any:
            values = [getattr(p, name) for p in payloads]
            return pa.array(values, type=type_) if type_ is not None else pa.array(values)

        return pa.RecordBatch.from_arrays(
            [
                pa.array(ids, type=pa.uint64()),
                pa.FixedSizeListArray.from_arrays(flat, list_size=self.vector_dimension),
                column("file_path", pa.string()),
                column("language", pa.string()),
                column("node_type", pa.string()),
                column("node_name", pa.string()),
                column("start_line", pa.int32()),
                column("end_line", pa.int32()),
                column("code_hash", pa.string()),
                column("content", pa.string()),
                column("package_name", pa.string()),
                column("imports", pa.list_(pa.string())),
                column("signature", pa.string()),
                column("receiver", pa.string()),
                column("doc", pa.string()),
                column("callees", pa.list_(pa.string())),
                column("param_types", pa.list_(pa.string())),
                column("return_types", pa.list_(pa.string())),
                column("has_error_return", pa.bool_()),
            ],
            schema=self._schema,
        )

    def from_row(self, row: dict[str, Any], with_vector: bool = True) -> StoredPoint:
        fields = {name: row.get(name) for name in ChunkPayload.model_fields if name in row}
        for name in _LIST_FIELDS:
            fields[name] = list(fields.get(name) or [])
        payload = ChunkPayload(**{k: v for k, v in fields.items() if v is not None})

        vector = row.get("vector") if with_vector else None
        return StoredPoint(
            id=int(row["id"]),
            payload=payload,
            vector=[float(x) for x in vector] if vector is not None else None,
        )


def vector_dimension_of(schema: Any) -> int | None:
    """Reads the fixed vector width from a table schema, if it has one."""
    try:
        vector_type = schema.field("vector").type
    except KeyError:
        return None
    return getattr(vector_type, "list_size", None)

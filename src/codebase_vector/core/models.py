from pydantic import BaseModel, ConfigDict, Field


class CodeUnit(BaseModel):
    """A structural span (function, method, ...) extracted from one source file."""

    model_config = ConfigDict(frozen=True)

    name: str
    node_type: str
    start_line: int  # 1-indexed, inclusive
    end_line: int
    start_byte: int = 0
    end_byte: int = 0
    content: str

    # Language-specific metadata
    package_name: str = ""
    imports: list[str] = Field(default_factory=list)
    signature: str = ""
    receiver: str = ""
    doc: str = ""
    callees: list[str] = Field(default_factory=list)
    param_types: list[str] = Field(default_factory=list)
    return_types: list[str] = Field(default_factory=list)
    has_error_return: bool = False


class ChunkPayload(BaseModel):
    """The durable, non-vector data stored alongside an embedding."""

    file_path: str
    language: str
    node_type: str
    node_name: str
    start_line: int
    end_line: int
    code_hash: str
    content: str

    package_name: str = ""
    imports: list[str] = Field(default_factory=list)
    signature: str = ""
    receiver: str = ""
    doc: str = ""
    callees: list[str] = Field(default_factory=list)
    param_types: list[str] = Field(default_factory=list)
    return_types: list[str] = Field(default_factory=list)
    has_error_return: bool = False

    @property
    def line_count(self) -> int:
        return self.end_line - self.start_line + 1


class StoredPoint(BaseModel):
    """A point read back from the vector store (scroll)."""

    id: int
    payload: ChunkPayload
    vector: list[float] | None = None


class SearchHit(BaseModel):
    """A payload matched by a similarity search."""

    payload: ChunkPayload
    score: float


class QueryFilter(BaseModel):
    """Gates both search results and duplicate candidates. Empty lists and 0 bounds mean 'any'."""

    languages: list[str] = Field(default_factory=list)
    path_prefixes: list[str] = Field(default_factory=list)
    node_types: list[str] = Field(default_factory=list)
    min_lines: int = Field(0, ge=0)
    max_lines: int = Field(0, ge=0)

    def matches(self, payload: ChunkPayload) -> bool:
        if self.languages and payload.language not in self.languages:
            return False
        if self.path_prefixes and not any(
            payload.file_path.startswith(prefix) for prefix in self.path_prefixes
        ):
            return False
        if self.node_types and payload.node_type not in self.node_types:
            return False

        lines = payload.line_count
        if self.min_lines > 0 and lines < self.min_lines:
            return False
        if self.max_lines > 0 and lines > self.max_lines:
            return False
        return True


class PairCandidate(BaseModel):
    """Two payloads whose similarity passed the threshold."""

    model_config = ConfigDict(frozen=True)

    a: ChunkPayload
    b: ChunkPayload
    score: float
    reason: str | None = None


class DuplicateGroup(BaseModel):
    """A connected component of confirmed duplicate pairs."""

    model_config = ConfigDict(frozen=True)

    chunks: list[ChunkPayload]
    avg_score: float
    reason: str | None = None


class IndexSummary(BaseModel):
    """Aggregate counts reported by one indexing run."""

    project_id: str
    collection: str
    files_seen: int = 0
    files_changed: int = 0
    files_deleted: int = 0
    files_indexed: int = 0
    files_failed: int = 0
    units_indexed: int = 0

    @property
    def up_to_date(self) -> bool:
        return self.files_changed == 0 and self.files_deleted == 0

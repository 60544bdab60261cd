"""Domain models and shared enumerations for the RAG core."""
from enum import Enum

from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional, Tuple

# ============= Enums =============

class ErrorCode(str, Enum):
    """Error codes for user-facing error messages."""
    NO_TEXT_FOUND = "NO_TEXT_FOUND"
    NO_MATERIALS = "NO_MATERIALS"
    RATE_LIMITED = "RATE_LIMITED"
    PROVIDER_TIMEOUT = "PROVIDER_TIMEOUT"
    PROVIDER_ERROR = "PROVIDER_ERROR"
    PROCESSING_FAILED = "PROCESSING_FAILED"
    DOCUMENT_NOT_FOUND = "DOCUMENT_NOT_FOUND"


class ProcessingStatus(str, Enum):
    """Document processing lifecycle."""
    PENDING = "pending"
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @staticmethod
    def from_string(status: str) -> 'ProcessingStatus':
        """Convert string to ProcessingStatus enum."""
        try:
            return ProcessingStatus(status)
        except ValueError:
            return ProcessingStatus.FAILED


class QueryOutcome(str, Enum):
    """How a query was answered (real answer or one of the fallbacks)."""
    ANSWERED = "answered"
    NO_MATERIALS = "no_materials"
    RATE_LIMITED = "rate_limited"
    TIMED_OUT = "timed_out"
    PROVIDER_ERROR = "provider_error"
    FAILED = "failed"


class QueryStage(str, Enum):
    """Query orchestrator states, in order."""
    EMBEDDING_QUERY = "embedding_query"
    RETRIEVING = "retrieving"
    NO_CANDIDATES = "no_candidates"
    RANKING = "ranking"
    ASSEMBLING = "assembling"
    GENERATING = "generating"
    DONE = "done"


# ============= Domain Models =============

CHUNK_METADATA_VERSION = 1

@dataclass(frozen=True)
class ChunkMetadata:
    """Closed, versioned metadata carried by every chunk and retrieval result."""
    material_id: str
    material_title: str
    course_id: Optional[str]
    chunk_index: int
    source: Optional[str] = None
    page_number: Optional[int] = None
    version: int = CHUNK_METADATA_VERSION

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "materialId": self.material_id,
            "materialTitle": self.material_title,
            "courseId": self.course_id,
            "chunkIndex": self.chunk_index,
            "source": self.source,
            "pageNumber": self.page_number,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ChunkMetadata':
        """Rebuild from a persisted dict. Unknown keys are ignored; missing required keys raise KeyError."""
        return cls(
            material_id=data["materialId"],
            material_title=data["materialTitle"],
            course_id=data.get("courseId"),
            chunk_index=int(data["chunkIndex"]),
            source=data.get("source"),
            page_number=data.get("pageNumber"),
            version=int(data.get("version", CHUNK_METADATA_VERSION)),
        )


@dataclass
class Document:
    """Domain model for an uploaded course material"""
    id: str
    title: str
    course_id: Optional[str] = None
    source: Optional[str] = None
    processed: bool = False
    processing_status: ProcessingStatus = ProcessingStatus.PENDING


@dataclass
class Chunk:
    """Domain model for a persisted document chunk"""
    id: str
    document_id: str
    content: str
    embedding: List[float]
    ordinal: int
    metadata: ChunkMetadata

    @staticmethod
    def make_id(document_id: str, ordinal: int) -> str:
        return f"{document_id}_chunk_{ordinal}"


@dataclass(frozen=True)
class EmbeddingBatch:
    """Up to B texts sent to the provider in one request. Never persisted."""
    batch_index: int
    start: int
    texts: Tuple[str, ...]

    def __len__(self) -> int:
        return len(self.texts)


def make_batches(texts: List[str], batch_size: int) -> List[EmbeddingBatch]:
    """Group texts into consecutive batches of at most batch_size."""
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")
    return [
        EmbeddingBatch(batch_index=i // batch_size, start=i, texts=tuple(texts[i:i + batch_size]))
        for i in range(0, len(texts), batch_size)
    ]


@dataclass(frozen=True)
class RetrievalScope:
    """Document-or-course boundary for candidate chunks. Neither set means all chunks."""
    document_id: Optional[str] = None
    course_id: Optional[str] = None

    @classmethod
    def for_document(cls, document_id: str) -> 'RetrievalScope':
        return cls(document_id=document_id)

    @classmethod
    def for_course(cls, course_id: str) -> 'RetrievalScope':
        return cls(course_id=course_id)

    def __str__(self):
        if self.document_id:
            return f"document:{self.document_id}"
        if self.course_id:
            return f"course:{self.course_id}"
        return "all"


@dataclass(frozen=True)
class ChatExchange:
    """One human/assistant turn pair, oldest-to-newest in a history list."""
    human: str
    ai: str


@dataclass
class RetrievalResult:
    """A ranked chunk returned by the retriever (transient)."""
    chunk_id: str
    content: str
    metadata: ChunkMetadata
    relevance_score: float


@dataclass
class GeneratedAnswer:
    answer: str
    follow_up_questions: List[str] = field(default_factory=list)


@dataclass
class RAGAnswer:
    """Result of answer_query. Fallbacks are returned here too, never raised."""
    answer: str
    source_documents: List[RetrievalResult] = field(default_factory=list)
    follow_up_questions: List[str] = field(default_factory=list)
    outcome: QueryOutcome = QueryOutcome.ANSWERED


@dataclass(frozen=True)
class IngestMetadata:
    """Caller-supplied chunk metadata. The course always comes from the document record."""
    title: str
    course_id: Optional[str] = None
    source: Optional[str] = None


@dataclass
class IngestResult:
    document_id: str
    success: bool
    chunks_created: int = 0
    error: Optional[str] = None
    error_code: Optional[ErrorCode] = None


@dataclass
class RAGStats:
    total_documents: int
    processed_documents: int
    total_chunks: int
    average_chunks_per_document: float

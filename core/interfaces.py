"""Core interfaces for the RAG core"""
from abc import ABC, abstractmethod
from typing import List, Dict, Optional

from core.domain import (
    Chunk, Document, EmbeddingBatch, ProcessingStatus, RetrievalResult, RetrievalScope
)

# ============= Provider Interface =============
class IProviderClient(ABC):
    """
    Interface for the external embedding + chat-completion provider.

    Implementations raise the core/errors taxonomy:
    RateLimitError (never retried here), ProviderTimeoutError (terminal),
    ProviderError (after retries or for non-retryable statuses).
    """

    @abstractmethod
    async def embed(self, texts: List[str]) -> List[List[float]]:
        """Embed texts in a single request, preserving input order."""
        pass

    async def embed_batch(self, batch: EmbeddingBatch) -> List[List[float]]:
        """Embed one EmbeddingBatch."""
        return await self.embed(list(batch.texts))

    @abstractmethod
    async def complete(
        self,
        messages: List[Dict[str, str]],
        temperature: float,
        max_tokens: int
    ) -> str:
        """Return the first choice's message content."""
        pass

    async def test_connection(self) -> bool:
        """Cheap health check. Never raises."""
        return False

# ============= Chunk Store Interface =============
class IChunkStore(ABC):
    """
    Read/write contract over persisted chunks.

    Implementations: SQLChunkStore, InMemoryChunkStore.
    """

    @abstractmethod
    async def delete_chunks(self, document_id: str) -> int:
        """Delete all chunks of a document. Returns number deleted."""
        pass

    @abstractmethod
    async def bulk_insert_chunks(self, chunks: List[Chunk]) -> int:
        """Insert chunks in one write. Returns number inserted."""
        pass

    @abstractmethod
    async def find_chunks(self, scope: RetrievalScope) -> List[Chunk]:
        """All chunks within the scope (course scope = union of its documents)."""
        pass

    @abstractmethod
    async def count_chunks(self, scope: RetrievalScope) -> int:
        """Number of chunks within the scope"""
        pass

    async def replace_chunks(self, document_id: str, chunks: List[Chunk]) -> int:
        """
        Delete-all-then-recreate for one document.
        Stores that support transactions should override this to do both in one unit.
        """
        await self.delete_chunks(document_id)
        return await self.bulk_insert_chunks(chunks)

# ============= Repository Interfaces =============
class IDocumentRepository(ABC):
    """
    Interface for document records and their processing status.

    Does NOT handle chunks (see IChunkStore).
    Implementations: SQLDocumentRepository, InMemoryDocumentRepository.
    """

    @abstractmethod
    async def create(self, document: Document) -> Document:
        pass

    @abstractmethod
    async def get_by_id(self, document_id: str) -> Optional[Document]:
        pass

    @abstractmethod
    async def update_status(
        self,
        document_id: str,
        processing_status: ProcessingStatus,
        processed: Optional[bool] = None
    ) -> bool:
        """Set processing_status (and processed, when given). False if the document is unknown."""
        pass

    @abstractmethod
    async def list_by_scope(self, course_id: Optional[str] = None) -> List[Document]:
        """Documents of a course, or all documents when course_id is None"""
        pass

    @abstractmethod
    async def delete(self, document_id: str) -> bool:
        pass

# ============= Follow-up Questions =============
class FollowUpExtractor(ABC):
    """
    Derives suggested follow-up questions from a finished exchange.
    Must not raise: the fixed generic list is the designed failure mode.
    """

    @abstractmethod
    async def extract(
        self,
        query: str,
        answer: str,
        sources: List[RetrievalResult]
    ) -> List[str]:
        pass

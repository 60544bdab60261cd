"""In-memory chunk store and document repository"""
import logging
from dataclasses import replace
from typing import Dict, Iterable, List, Optional

from config import settings
from core.domain import Chunk, Document, ProcessingStatus, RetrievalScope
from core.interfaces import IChunkStore, IDocumentRepository

logger = logging.getLogger(settings.LOGGER_NAME)


class InMemoryChunkStore(IChunkStore):
    """
    Process-local chunk storage keyed by document id.

    With a document repository, course scope is resolved through the document
    records, like the SQL store's join. Without one it falls back to chunk
    metadata (course_id). Lost on restart.
    """

    def __init__(self, document_repo: Optional[IDocumentRepository] = None):
        self._chunks: Dict[str, List[Chunk]] = {}
        self._document_repo = document_repo

    async def delete_chunks(self, document_id: str) -> int:
        return len(self._chunks.pop(document_id, []))

    async def bulk_insert_chunks(self, chunks: List[Chunk]) -> int:
        for chunk in chunks:
            self._chunks.setdefault(chunk.document_id, []).append(chunk)
        return len(chunks)

    async def replace_chunks(self, document_id: str, chunks: List[Chunk]) -> int:
        # No await between delete and insert: atomic with respect to other tasks
        deleted = len(self._chunks.pop(document_id, []))
        if chunks:
            self._chunks[document_id] = list(chunks)
        logger.debug(f"Replaced chunks for document {document_id}: {deleted} deleted, {len(chunks)} inserted")
        return len(chunks)

    async def find_chunks(self, scope: RetrievalScope) -> List[Chunk]:
        if scope.document_id:
            return list(self._chunks.get(scope.document_id, []))
        if not scope.course_id:
            return [c for doc_chunks in self._chunks.values() for c in doc_chunks]

        if self._document_repo is None:
            return [
                c for doc_chunks in self._chunks.values() for c in doc_chunks
                if c.metadata.course_id == scope.course_id
            ]
        course_docs = {doc.id for doc in await self._document_repo.list_by_scope(scope.course_id)}
        return [
            c for doc_id, doc_chunks in self._chunks.items() if doc_id in course_docs
            for c in doc_chunks
        ]

    async def count_chunks(self, scope: RetrievalScope) -> int:
        return len(await self.find_chunks(scope))


class InMemoryDocumentRepository(IDocumentRepository):
    """Process-local document records. Returned objects are copies."""

    def __init__(self, documents: Iterable[Document] = ()):
        self._documents: Dict[str, Document] = {doc.id: replace(doc) for doc in documents}

    async def create(self, document: Document) -> Document:
        self._documents[document.id] = replace(document)
        return replace(document)

    async def get_by_id(self, document_id: str) -> Optional[Document]:
        doc = self._documents.get(document_id)
        return replace(doc) if doc else None

    async def update_status(
        self,
        document_id: str,
        processing_status: ProcessingStatus,
        processed: Optional[bool] = None
    ) -> bool:
        doc = self._documents.get(document_id)
        if not doc:
            return False
        doc.processing_status = processing_status
        if processed is not None:
            doc.processed = processed
        return True

    async def list_by_scope(self, course_id: Optional[str] = None) -> List[Document]:
        return [
            replace(doc) for doc in self._documents.values()
            if course_id is None or doc.course_id == course_id
        ]

    async def delete(self, document_id: str) -> bool:
        return self._documents.pop(document_id, None) is not None

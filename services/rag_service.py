# services/rag_service.py
import logging
from typing import List, Optional

from config import settings
from core.domain import (
    ChatExchange, ErrorCode, IngestMetadata, IngestResult, RAGAnswer, RAGStats, RetrievalScope
)
from core.errors import RAGError
from core.interfaces import IChunkStore, IDocumentRepository, IProviderClient
from services.ingestion import IngestionOrchestrator
from services.query_orchestrator import QueryOrchestrator

logger = logging.getLogger(settings.LOGGER_NAME)


class RAGService:
    """
    Caller-facing entry point: ingestion, question answering, stats, cleanup.

    ingest_document() reports failures in an IngestResult;
    answer_query() reports them as fallback answers. Neither raises for
    provider or content problems.
    """

    def __init__(
        self,
        provider: IProviderClient,
        chunk_store: IChunkStore,
        document_repo: IDocumentRepository,
        ingestion: IngestionOrchestrator,
        query_orchestrator: QueryOrchestrator
    ):
        self.provider = provider
        self.chunk_store = chunk_store
        self.document_repo = document_repo
        self.ingestion = ingestion
        self.query_orchestrator = query_orchestrator

    # ============ INGESTION ============

    async def ingest_document(
        self,
        document_id: str,
        raw_text: str,
        metadata: IngestMetadata
    ) -> IngestResult:
        try:
            chunks_created = await self.ingestion.ingest(document_id, raw_text, metadata)
            return IngestResult(document_id=document_id, success=True, chunks_created=chunks_created)

        except RAGError as e:
            return IngestResult(
                document_id=document_id,
                success=False,
                error=e.message,
                error_code=e.error_code
            )

        except Exception as e:
            logger.exception(f"[INGEST] Unexpected error processing {document_id}")
            return IngestResult(
                document_id=document_id,
                success=False,
                error=f"System error: {str(e)[:100]}",
                error_code=ErrorCode.PROCESSING_FAILED
            )

    # ============ QUERY ============

    async def answer_query(
        self,
        query: str,
        history: Optional[List[ChatExchange]] = None,
        scope: Optional[RetrievalScope] = None
    ) -> RAGAnswer:
        return await self.query_orchestrator.answer_query(query, history, scope)

    # ============ MANAGEMENT ============

    async def get_stats(self, course_id: Optional[str] = None) -> RAGStats:
        """Document and chunk counts for a course, or for everything."""
        # Sequential: SQL stores may share one AsyncSession
        documents = await self.document_repo.list_by_scope(course_id)
        scope = RetrievalScope.for_course(course_id) if course_id else RetrievalScope()
        total_chunks = await self.chunk_store.count_chunks(scope)

        processed = sum(1 for d in documents if d.processed)
        return RAGStats(
            total_documents=len(documents),
            processed_documents=processed,
            total_chunks=total_chunks,
            average_chunks_per_document=total_chunks / processed if processed else 0.0
        )

    async def remove_document(self, document_id: str) -> int:
        """Delete a document's chunks. The document record itself is left to its owner."""
        deleted = await self.chunk_store.delete_chunks(document_id)
        logger.info(f"[DELETE] Removed {deleted} chunk(s) of {document_id}")
        return deleted

    async def test_connection(self) -> bool:
        return await self.provider.test_connection()

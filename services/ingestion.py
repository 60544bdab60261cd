# services/ingestion.py
import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional

from config import settings
from core.domain import (
    Chunk, ChunkMetadata, Document, EmbeddingBatch, IngestMetadata, ProcessingStatus, make_batches
)
from core.errors import DocumentNotFoundError, EmptyContentError, RateLimitError
from core.interfaces import IChunkStore, IDocumentRepository, IProviderClient
from services.chunker import split_text
from utils.common import Stopwatch, is_blank

logger = logging.getLogger(settings.LOGGER_NAME)


class IngestionOrchestrator:
    """
    text → chunks → embeddings → delete+insert → status, for one document.

    Embedding happens before any write, so a failed run leaves the previous
    chunk set searchable. Batches go out one at a time so a 429 on batch i is
    waited out before batch i+1 is sent.
    """

    def __init__(
        self,
        provider: IProviderClient,
        chunk_store: IChunkStore,
        document_repo: IDocumentRepository,
        chunk_size: int = settings.CHUNK_SIZE,
        chunk_overlap: int = settings.CHUNK_OVERLAP,
        batch_size: int = settings.EMBEDDING_BATCH_SIZE,
        batch_delay: float = settings.EMBEDDING_BATCH_DELAY_SECONDS,
        max_rate_limit_waits: int = settings.MAX_RATE_LIMIT_WAITS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        self.provider = provider
        self.chunk_store = chunk_store
        self.document_repo = document_repo
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self.max_rate_limit_waits = max_rate_limit_waits
        self._sleep = sleep

    # ============ MAIN PROCESSING METHOD ============

    async def ingest(self, document_id: str, raw_text: str, metadata: IngestMetadata) -> int:
        """
        Returns the number of chunks created.

        Raises DocumentNotFoundError, before any provider or store call, when the
        document has no record. On any other failure the document is marked failed
        (best-effort) and the error is re-raised.
        """
        timer = Stopwatch()
        document = await self.document_repo.get_by_id(document_id)
        if document is None:
            logger.error(f"[INGEST] Document {document_id} does not exist, nothing ingested")
            raise DocumentNotFoundError(f"Document {document_id} not found")

        try:
            if is_blank(raw_text):
                raise EmptyContentError("No text content found in document")

            await self._set_status(document_id, ProcessingStatus.PROCESSING)

            texts = split_text(raw_text, self.chunk_size, self.chunk_overlap)
            if not texts:
                raise EmptyContentError("Document text produced no chunks")
            logger.info(f"[INGEST] {document_id}: {len(raw_text)} chars → {len(texts)} chunk(s)")

            embeddings = await self._embed_all(document_id, texts)
            chunks = self._build_chunks(document, texts, embeddings, metadata)

            await self.chunk_store.replace_chunks(document_id, chunks)
            await self._set_status(document_id, ProcessingStatus.COMPLETED, processed=True)

            logger.info(f"[INGEST] Successfully processed {document_id} ({len(chunks)} chunks) in {timer}")
            return len(chunks)

        except Exception as e:
            logger.error(
                f"[INGEST] Processing failed for {document_id} after {timer}: "
                f"{type(e).__name__}: {e}"
            )
            await self._set_status(document_id, ProcessingStatus.FAILED)
            raise

    # ============ EMBEDDINGS ============

    async def _embed_all(self, document_id: str, texts: List[str]) -> List[List[float]]:
        batches = make_batches(texts, self.batch_size)
        embeddings: List[List[float]] = []

        for batch in batches:
            embeddings.extend(await self._embed_batch_with_rate_limit(document_id, batch))
            if batch.batch_index < len(batches) - 1 and self.batch_delay > 0:
                await self._sleep(self.batch_delay)  # Stay under steady-state quotas

        return embeddings

    async def _embed_batch_with_rate_limit(
        self, document_id: str, batch: EmbeddingBatch
    ) -> List[List[float]]:
        """Resubmit only this batch after each 429, waiting the provider's Retry-After."""
        waits = 0
        while True:
            try:
                return await self.provider.embed_batch(batch)
            except RateLimitError as e:
                if waits >= self.max_rate_limit_waits:
                    logger.error(
                        f"[INGEST] {document_id}: batch {batch.batch_index} still rate limited "
                        f"after {waits} wait(s), giving up"
                    )
                    raise
                waits += 1
                logger.warning(
                    f"[INGEST] {document_id}: rate limit on batch {batch.batch_index}, "
                    f"waiting {e.retry_after_seconds}s (wait {waits}/{self.max_rate_limit_waits})"
                )
                await self._sleep(e.retry_after_seconds)

    # ============ HELPERS ============

    def _build_chunks(
        self,
        document: Document,
        texts: List[str],
        embeddings: List[List[float]],
        metadata: IngestMetadata
    ) -> List[Chunk]:
        """Course comes from the document record, never from the caller's metadata."""
        if len(embeddings) != len(texts):
            raise ValueError(f"Got {len(embeddings)} embeddings for {len(texts)} chunks")

        document_id = document.id
        if metadata.course_id and metadata.course_id != document.course_id:
            logger.warning(
                f"[INGEST] {document_id}: ignoring course '{metadata.course_id}' from metadata, "
                f"document belongs to '{document.course_id}'"
            )

        return [
            Chunk(
                id=Chunk.make_id(document_id, ordinal),
                document_id=document_id,
                content=text,
                embedding=list(vector),
                ordinal=ordinal,
                metadata=ChunkMetadata(
                    material_id=document_id,
                    material_title=metadata.title or document.title,
                    course_id=document.course_id,
                    chunk_index=ordinal,
                    source=metadata.source
                )
            )
            for ordinal, (text, vector) in enumerate(zip(texts, embeddings))
        ]

    async def _set_status(
        self,
        document_id: str,
        status: ProcessingStatus,
        processed: Optional[bool] = None
    ) -> None:
        """Status writes are best-effort: failures are logged, never raised."""
        try:
            updated = await self.document_repo.update_status(document_id, status, processed=processed)
            if not updated:
                logger.warning(f"[INGEST] Document {document_id} not found while setting status '{status.value}'")
        except Exception as e:
            logger.error(f"[INGEST] Failed to update status of {document_id} to '{status.value}': {e}")

"""Database repository implementations"""
import logging
from typing import List, Optional
from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from core.interfaces import IChunkStore, IDocumentRepository
from core.domain import Chunk, ChunkMetadata, Document, ProcessingStatus, RetrievalScope
from database.models import ChunkEntity, DocumentEntity
from config import settings

logger = logging.getLogger(settings.LOGGER_NAME)

class SQLChunkStore(IChunkStore):
    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_domain(self, entity: ChunkEntity) -> Chunk:
        """Converts an SQLAlchemy entity to a domain model."""
        return Chunk(
            id=entity.id,  # type: ignore
            document_id=entity.document_id,  # type: ignore
            content=entity.content,  # type: ignore
            embedding=list(entity.embedding or []),
            ordinal=entity.chunk_index,  # type: ignore
            metadata=ChunkMetadata.from_dict(entity.meta or {})
        )

    def _to_entity(self, chunk: Chunk) -> ChunkEntity:
        return ChunkEntity(
            id=chunk.id,
            document_id=chunk.document_id,
            content=chunk.content,
            embedding=list(chunk.embedding),
            chunk_index=chunk.ordinal,
            page_number=chunk.metadata.page_number,
            meta=chunk.metadata.to_dict()
        )

    def _scoped(self, statement, scope: RetrievalScope):
        if scope.document_id:
            return statement.where(ChunkEntity.document_id == scope.document_id)
        if scope.course_id:
            return statement.join(
                DocumentEntity, DocumentEntity.id == ChunkEntity.document_id
            ).where(DocumentEntity.course_id == scope.course_id)
        return statement

    async def delete_chunks(self, document_id: str) -> int:
        result = await self.session.execute(
            delete(ChunkEntity).where(ChunkEntity.document_id == document_id)
        )
        await self.session.commit()
        return result.rowcount or 0

    async def bulk_insert_chunks(self, chunks: List[Chunk]) -> int:
        if not chunks:
            return 0
        self.session.add_all([self._to_entity(c) for c in chunks])
        await self.session.commit()
        return len(chunks)

    async def replace_chunks(self, document_id: str, chunks: List[Chunk]) -> int:
        """Delete + insert in one transaction so readers never see an empty gap on failure."""
        try:
            result = await self.session.execute(
                delete(ChunkEntity).where(ChunkEntity.document_id == document_id)
            )
            self.session.add_all([self._to_entity(c) for c in chunks])
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        logger.info(
            f"Replaced chunks for document {document_id}: "
            f"{result.rowcount or 0} deleted, {len(chunks)} inserted"
        )
        return len(chunks)

    async def find_chunks(self, scope: RetrievalScope) -> List[Chunk]:
        statement = self._scoped(select(ChunkEntity), scope).order_by(
            ChunkEntity.document_id, ChunkEntity.chunk_index
        )
        result = await self.session.execute(statement)
        return [self._to_domain(entity) for entity in result.scalars().all()]

    async def count_chunks(self, scope: RetrievalScope) -> int:
        statement = self._scoped(select(func.count(ChunkEntity.id)), scope)
        result = await self.session.execute(statement)
        return int(result.scalar_one())

class SQLDocumentRepository(IDocumentRepository):
    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_domain(self, db_doc: Optional[DocumentEntity]) -> Optional[Document]:
        """Converts an SQLAlchemy entity to a domain model."""
        if db_doc is None:
            return None
        return Document(
            id=db_doc.id,  # type: ignore
            title=db_doc.title,  # type: ignore
            course_id=db_doc.course_id,  # type: ignore
            source=db_doc.source,  # type: ignore
            processed=bool(db_doc.processed),
            processing_status=ProcessingStatus.from_string(db_doc.processing_status)  # type: ignore
        )

    async def create(self, document: Document) -> Document:
        db_doc = DocumentEntity(
            id=document.id,
            title=document.title,
            course_id=document.course_id,
            source=document.source,
            processed=document.processed,
            processing_status=document.processing_status.value
        )
        self.session.add(db_doc)
        await self.session.commit()
        await self.session.refresh(db_doc)
        logger.info(f"Created document {document.id} in database")

        result = self._to_domain(db_doc)
        assert result is not None, "Created document should never be None"
        return result

    async def get_by_id(self, document_id: str) -> Optional[Document]:
        db_doc = await self.session.get(DocumentEntity, document_id)
        return self._to_domain(db_doc)

    async def update_status(
        self,
        document_id: str,
        processing_status: ProcessingStatus,
        processed: Optional[bool] = None
    ) -> bool:
        db_doc = await self.session.get(DocumentEntity, document_id)
        if not db_doc:
            return False
        db_doc.processing_status = processing_status.value  # type: ignore
        if processed is not None:
            db_doc.processed = processed  # type: ignore
        await self.session.commit()
        return True

    async def list_by_scope(self, course_id: Optional[str] = None) -> List[Document]:
        statement = select(DocumentEntity).order_by(DocumentEntity.timestamp.desc())
        if course_id:
            statement = statement.where(DocumentEntity.course_id == course_id)
        result = await self.session.execute(statement)
        docs = [self._to_domain(doc) for doc in result.scalars().all()]
        return [d for d in docs if d is not None]

    async def delete(self, document_id: str) -> bool:
        doc = await self.session.get(DocumentEntity, document_id)
        if not doc:
            return False
        # SQLite does not enforce ON DELETE CASCADE unless foreign keys are enabled
        await self.session.execute(
            delete(ChunkEntity).where(ChunkEntity.document_id == document_id)
        )
        await self.session.delete(doc)
        await self.session.commit()
        return True

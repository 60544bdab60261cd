"""
Tests for the SQLAlchemy chunk store and document repository (in-memory SQLite).
"""

from contextlib import asynccontextmanager

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from core.domain import Chunk, ChunkMetadata, Document, ProcessingStatus, RetrievalScope
from database.session import enable_sqlite_foreign_keys, init_db
from infrastructure.memory_stores import InMemoryChunkStore, InMemoryDocumentRepository
from infrastructure.repositories import SQLChunkStore, SQLDocumentRepository


@asynccontextmanager
async def sqlite_session():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    enable_sqlite_foreign_keys(engine)
    await init_db(engine)
    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    try:
        async with session_factory() as session:
            yield session
    finally:
        await engine.dispose()


def make_chunks(document_id, course_id, count, offset=0.0):
    return [
        Chunk(
            id=Chunk.make_id(document_id, i),
            document_id=document_id,
            content=f"{document_id} part {i}",
            embedding=[1.0 + offset, float(i)],
            ordinal=i,
            metadata=ChunkMetadata(
                material_id=document_id,
                material_title=f"{document_id} title",
                course_id=course_id,
                chunk_index=i,
                source="notes.pdf",
            ),
        )
        for i in range(count)
    ]


class TestSQLDocumentRepository:

    @pytest.mark.asyncio
    async def test_create_get_update(self):
        async with sqlite_session() as session:
            repo = SQLDocumentRepository(session)
            await repo.create(Document(id="d1", title="Lecture 1", course_id="c1"))

            assert await repo.update_status("d1", ProcessingStatus.COMPLETED, processed=True) is True
            assert await repo.update_status("missing", ProcessingStatus.FAILED) is False

            doc = await repo.get_by_id("d1")
            assert doc.title == "Lecture 1"
            assert doc.processed is True
            assert doc.processing_status == ProcessingStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_list_by_scope(self):
        async with sqlite_session() as session:
            repo = SQLDocumentRepository(session)
            await repo.create(Document(id="d1", title="A", course_id="c1"))
            await repo.create(Document(id="d2", title="B", course_id="c2"))

            assert [d.id for d in await repo.list_by_scope("c1")] == ["d1"]
            assert {d.id for d in await repo.list_by_scope()} == {"d1", "d2"}

    @pytest.mark.asyncio
    async def test_delete_removes_chunks(self):
        async with sqlite_session() as session:
            repo = SQLDocumentRepository(session)
            store = SQLChunkStore(session)
            await repo.create(Document(id="d1", title="A", course_id="c1"))
            await store.bulk_insert_chunks(make_chunks("d1", "c1", 2))

            assert await repo.delete("d1") is True
            assert await repo.get_by_id("d1") is None
            assert await store.count_chunks(RetrievalScope()) == 0
            assert await repo.delete("d1") is False


class TestSQLChunkStore:

    @pytest.mark.asyncio
    async def test_round_trip_keeps_metadata_and_order(self):
        async with sqlite_session() as session:
            await SQLDocumentRepository(session).create(Document(id="d1", title="A", course_id="c1"))
            store = SQLChunkStore(session)
            await store.bulk_insert_chunks(list(reversed(make_chunks("d1", "c1", 3))))

            chunks = await store.find_chunks(RetrievalScope.for_document("d1"))

            assert [c.ordinal for c in chunks] == [0, 1, 2]
            assert chunks[1].embedding == [1.0, 1.0]
            assert chunks[1].metadata == ChunkMetadata(
                material_id="d1", material_title="d1 title", course_id="c1", chunk_index=1, source="notes.pdf"
            )

    @pytest.mark.asyncio
    async def test_course_scope_joins_documents(self):
        async with sqlite_session() as session:
            docs = SQLDocumentRepository(session)
            await docs.create(Document(id="d1", title="A", course_id="c1"))
            await docs.create(Document(id="d2", title="B", course_id="c2"))
            store = SQLChunkStore(session)
            await store.bulk_insert_chunks(make_chunks("d1", "c1", 2) + make_chunks("d2", "c2", 3))

            assert await store.count_chunks(RetrievalScope.for_course("c1")) == 2
            assert await store.count_chunks(RetrievalScope.for_course("c2")) == 3
            assert await store.count_chunks(RetrievalScope()) == 5
            assert {c.document_id for c in await store.find_chunks(RetrievalScope.for_course("c2"))} == {"d2"}

    @pytest.mark.asyncio
    async def test_replace_chunks_leaves_no_orphans(self):
        async with sqlite_session() as session:
            await SQLDocumentRepository(session).create(Document(id="d1", title="A", course_id="c1"))
            store = SQLChunkStore(session)
            await store.replace_chunks("d1", make_chunks("d1", "c1", 4))

            await store.replace_chunks("d1", make_chunks("d1", "c1", 2, offset=1.0))

            chunks = await store.find_chunks(RetrievalScope.for_document("d1"))
            assert [c.id for c in chunks] == ["d1_chunk_0", "d1_chunk_1"]
            assert chunks[0].embedding == [2.0, 0.0]

    @pytest.mark.asyncio
    async def test_delete_chunks_returns_count(self):
        async with sqlite_session() as session:
            await SQLDocumentRepository(session).create(Document(id="d1", title="A", course_id="c1"))
            store = SQLChunkStore(session)
            await store.bulk_insert_chunks(make_chunks("d1", "c1", 3))

            assert await store.delete_chunks("d1") == 3
            assert await store.delete_chunks("d1") == 0

    @pytest.mark.asyncio
    async def test_chunks_for_missing_document_rejected(self):
        async with sqlite_session() as session:
            store = SQLChunkStore(session)

            with pytest.raises(IntegrityError):
                await store.replace_chunks("ghost", make_chunks("ghost", "c1", 2))

            assert await store.count_chunks(RetrievalScope()) == 0


class TestCourseScopeAcrossStores:

    @pytest.mark.asyncio
    async def test_course_follows_document_record_in_both_stores(self):
        documents = [
            Document(id="d1", title="A", course_id="c1"),
            Document(id="d2", title="B", course_id="c2"),
        ]
        # chunk metadata disagrees with the records on purpose
        chunks = make_chunks("d1", None, 2) + make_chunks("d2", "c1", 3)

        memory_store = InMemoryChunkStore(InMemoryDocumentRepository(documents))
        await memory_store.bulk_insert_chunks(chunks)
        memory_ids = [c.id for c in await memory_store.find_chunks(RetrievalScope.for_course("c1"))]

        async with sqlite_session() as session:
            repo = SQLDocumentRepository(session)
            for document in documents:
                await repo.create(document)
            sql_store = SQLChunkStore(session)
            await sql_store.bulk_insert_chunks(chunks)
            sql_ids = [c.id for c in await sql_store.find_chunks(RetrievalScope.for_course("c1"))]

        assert memory_ids == sql_ids == ["d1_chunk_0", "d1_chunk_1"]

    @pytest.mark.asyncio
    async def test_memory_store_without_repository_uses_chunk_metadata(self):
        store = InMemoryChunkStore()
        await store.bulk_insert_chunks(make_chunks("d1", "c1", 2) + make_chunks("d2", "c2", 1))

        assert await store.count_chunks(RetrievalScope.for_course("c2")) == 1

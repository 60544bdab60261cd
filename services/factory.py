# services/factory.py
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from core.interfaces import IChunkStore, IDocumentRepository, IProviderClient
from database.session import get_session
from infrastructure.memory_stores import InMemoryChunkStore, InMemoryDocumentRepository
from infrastructure.provider_client import ProviderClient
from infrastructure.repositories import SQLChunkStore, SQLDocumentRepository
from services.answer_generator import AnswerGenerator
from services.follow_ups import LLMFollowUpExtractor
from services.ingestion import IngestionOrchestrator
from services.query_orchestrator import QueryOrchestrator
from services.rag_service import RAGService
from services.retriever import Retriever


# Provider functions for each component
@lru_cache(maxsize=1)
def get_provider_client() -> ProviderClient:
    """One provider client per process, built from settings on first use."""
    return ProviderClient.from_settings()


def build_rag_service_from(
    provider: IProviderClient,
    chunk_store: IChunkStore,
    document_repo: IDocumentRepository
) -> RAGService:
    """Wire the pipeline around the given provider and stores."""
    retriever = Retriever(provider, chunk_store)
    generator = AnswerGenerator(provider, LLMFollowUpExtractor(provider))
    return RAGService(
        provider=provider,
        chunk_store=chunk_store,
        document_repo=document_repo,
        ingestion=IngestionOrchestrator(provider, chunk_store, document_repo),
        query_orchestrator=QueryOrchestrator(retriever, generator)
    )


def build_rag_service(session: AsyncSession, provider: Optional[IProviderClient] = None) -> RAGService:
    """SQL-backed service bound to one session (one request or one job)."""
    return build_rag_service_from(
        provider or get_provider_client(),
        SQLChunkStore(session),
        SQLDocumentRepository(session)
    )


@asynccontextmanager
async def rag_service_session(
    provider: Optional[IProviderClient] = None
) -> AsyncGenerator[RAGService, None]:
    """
    SQL-backed service with its own session, for background work.

    Usage:
        async with rag_service_session() as service:
            await service.ingest_document(...)
    """
    async with get_session() as session:
        yield build_rag_service(session, provider)


def build_in_memory_rag_service(provider: IProviderClient) -> RAGService:
    """Process-local stores. Used by tests and single-process setups."""
    document_repo = InMemoryDocumentRepository()
    return build_rag_service_from(provider, InMemoryChunkStore(document_repo), document_repo)

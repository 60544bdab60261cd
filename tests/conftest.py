"""
Shared fakes and fixtures for the RAG core tests.
"""

from typing import Callable, Dict, List

import pytest

from core.domain import Document, IngestMetadata
from core.interfaces import IProviderClient
from infrastructure.memory_stores import InMemoryChunkStore, InMemoryDocumentRepository


KEYWORD_VECTORS = {
    "photosynthesis": [1.0, 0.0, 0.0, 0.0],
    "mitochondria": [0.0, 1.0, 0.0, 0.0],
    "gravity": [0.0, 0.0, 1.0, 0.0],
}
FALLBACK_VECTOR = [0.0, 0.0, 0.0, 1.0]

THREE_TOPIC_TEXT = (
    "Photosynthesis turns sunlight into chemical energy. "
    "Mitochondria produce most of the energy in cells. "
    "Gravity pulls every mass toward every other mass."
)

FOLLOW_UP_TEXT = (
    "1. How does the electron transport chain work?\n"
    "2. Why do muscle cells contain more mitochondria?\n"
    "3. What happens when mitochondria are damaged?"
)


def keyword_vector(text: str) -> List[float]:
    lowered = text.lower()
    for keyword, vector in KEYWORD_VECTORS.items():
        if keyword in lowered:
            return list(vector)
    return list(FALLBACK_VECTOR)


class FakeProvider(IProviderClient):
    """
    Deterministic provider. Queue exceptions in embed_errors / complete_errors
    to have the next calls raise them, in order.
    """

    def __init__(self, answer: str = "Mitochondria are the powerhouse of the cell."):
        self.vector_for: Callable[[str], List[float]] = keyword_vector
        self.answer = answer
        self.follow_up_text = FOLLOW_UP_TEXT
        self.embed_errors: List[Exception] = []
        self.complete_errors: List[Exception] = []
        self.embed_calls: List[List[str]] = []
        self.complete_calls: List[Dict] = []

    async def embed(self, texts: List[str]) -> List[List[float]]:
        self.embed_calls.append(list(texts))
        if self.embed_errors:
            raise self.embed_errors.pop(0)
        return [self.vector_for(t) for t in texts]

    async def complete(self, messages, temperature, max_tokens) -> str:
        self.complete_calls.append(
            {"messages": messages, "temperature": temperature, "max_tokens": max_tokens}
        )
        if self.complete_errors:
            raise self.complete_errors.pop(0)
        if messages[-1]["content"].startswith("Based on this educational Q&A"):
            return self.follow_up_text
        return self.answer

    async def test_connection(self) -> bool:
        return True


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def chunk_store():
    return InMemoryChunkStore()


@pytest.fixture
def document_repo(biology_document):
    """Holds the biology document, so ingestion of "mat-1" has an owner record."""
    return InMemoryDocumentRepository([biology_document])


@pytest.fixture
def biology_document():
    return Document(id="mat-1", title="Cell Biology", course_id="bio-101")


@pytest.fixture
def biology_metadata():
    return IngestMetadata(title="Cell Biology", course_id="bio-101", source="cells.pdf")


@pytest.fixture
def three_topic_text():
    return THREE_TOPIC_TEXT

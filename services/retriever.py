"""Query embedding + brute-force cosine ranking over scoped chunks"""
import logging
from typing import Callable, List, Optional, Sequence

import numpy as np

from config import settings
from core.domain import Chunk, QueryStage, RetrievalResult, RetrievalScope
from core.errors import NoMaterialsError
from core.interfaces import IChunkStore, IProviderClient
from utils.common import Stopwatch, truncate

logger = logging.getLogger(settings.LOGGER_NAME)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    dot(a, b) / (|a| * |b|), in [-1, 1].

    Mismatched lengths or a zero-norm vector score 0.0.
    """
    va = np.asarray(a, dtype="float64")
    vb = np.asarray(b, dtype="float64")
    if va.shape != vb.shape or va.size == 0:
        return 0.0
    denom = np.linalg.norm(va) * np.linalg.norm(vb)
    if denom == 0:
        return 0.0
    return float(np.clip(np.dot(va, vb) / denom, -1.0, 1.0))


def rank_candidates(
    query_vector: Sequence[float],
    chunks: List[Chunk],
    threshold: float,
    top_k: int
) -> List[RetrievalResult]:
    """
    Score every candidate, keep score >= threshold, sort descending, cut to top_k.

    Ties keep the store's order (stable sort).
    """
    if not chunks or top_k <= 0:
        return []

    dim = len(query_vector)
    scored: List[RetrievalResult] = []
    mismatched = 0

    for chunk in chunks:
        if len(chunk.embedding) != dim:
            mismatched += 1
            score = 0.0
        else:
            score = cosine_similarity(query_vector, chunk.embedding)
        if score >= threshold:
            scored.append(RetrievalResult(
                chunk_id=chunk.id,
                content=chunk.content,
                metadata=chunk.metadata,
                relevance_score=score
            ))

    if mismatched:
        logger.warning(
            f"[RETRIEVE] {mismatched} chunk(s) have embeddings of a different "
            f"dimensionality than the query ({dim}); scored as 0.0"
        )

    scored.sort(key=lambda r: r.relevance_score, reverse=True)
    return scored[:top_k]


class Retriever:
    """
    Embeds the query and scans the scope's chunks by cosine similarity.

    The scan goes through rank_candidates() so an index-backed retriever can
    replace it without changing callers.
    """

    def __init__(
        self,
        provider: IProviderClient,
        chunk_store: IChunkStore,
        threshold: float = settings.SIMILARITY_THRESHOLD,
        top_k: int = settings.TOP_K
    ):
        self.provider = provider
        self.chunk_store = chunk_store
        self.threshold = threshold
        self.top_k = top_k

    async def embed_query(self, query: str) -> List[float]:
        vectors = await self.provider.embed([query])
        return vectors[0]

    async def load_candidates(self, scope: RetrievalScope) -> List[Chunk]:
        """Raises NoMaterialsError when the scope holds no chunks at all."""
        chunks = await self.chunk_store.find_chunks(scope)
        if not chunks:
            raise NoMaterialsError(f"No processed materials found for scope {scope}")
        return chunks

    async def retrieve(
        self,
        query: str,
        scope: RetrievalScope,
        threshold: Optional[float] = None,
        top_k: Optional[int] = None,
        on_stage: Optional[Callable[[QueryStage], None]] = None
    ) -> List[RetrievalResult]:
        """
        Ranked results for the query within scope.

        Returns [] when chunks exist but none clears the threshold. on_stage is
        called as each of EMBEDDING_QUERY, RETRIEVING and RANKING begins.
        """
        timer = Stopwatch()
        threshold = self.threshold if threshold is None else threshold
        top_k = self.top_k if top_k is None else top_k
        on_stage = on_stage or (lambda stage: None)

        on_stage(QueryStage.EMBEDDING_QUERY)
        query_vector = await self.embed_query(query)

        on_stage(QueryStage.RETRIEVING)
        candidates = await self.load_candidates(scope)

        on_stage(QueryStage.RANKING)
        results = rank_candidates(query_vector, candidates, threshold, top_k)

        logger.info(
            f"[RETRIEVE] '{truncate(query)}' scope={scope}: {len(results)}/{len(candidates)} "
            f"chunk(s) >= {threshold} in {timer}"
        )
        return results

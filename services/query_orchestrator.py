# services/query_orchestrator.py
import asyncio
import logging
from typing import List, Optional

from config import settings
from core.domain import (
    ChatExchange, QueryOutcome, QueryStage, RAGAnswer, RetrievalScope
)
from core.errors import NoMaterialsError, ProviderError, ProviderTimeoutError, RateLimitError
from services.answer_generator import AnswerGenerator
from services.context_assembler import assemble_context
from services.retriever import Retriever
from utils.common import Stopwatch, is_blank, truncate

logger = logging.getLogger(settings.LOGGER_NAME)

# ============= Fallback answers =============

NO_MATERIALS_ANSWER = (
    "I don't have any relevant information to answer your question. Please make sure "
    "some materials have been uploaded and processed for this course."
)
RATE_LIMITED_ANSWER = (
    "The AI service is currently experiencing high demand. Please try again in a few moments."
)
TIMED_OUT_ANSWER = (
    "The request timed out. Please try again with a shorter question or check your connection."
)
GENERIC_ERROR_ANSWER = (
    "I'm sorry, I encountered an error while processing your question. "
    "Please try again or rephrase your question."
)

NO_MATERIALS_FOLLOW_UPS = [
    "How do I upload course materials?",
    "What file formats are supported?",
    "How long does material processing take?",
]


class QueryOrchestrator:
    """
    Runs one question through retrieval, context assembly and generation.

    Always returns a RAGAnswer. Provider and store failures are turned into
    fixed fallback answers with a matching QueryOutcome.
    """

    def __init__(
        self,
        retriever: Retriever,
        generator: AnswerGenerator,
        max_context_length: int = settings.MAX_CONTEXT_LENGTH,
        query_timeout: Optional[float] = settings.QUERY_TIMEOUT_SECONDS
    ):
        self.retriever = retriever
        self.generator = generator
        self.max_context_length = max_context_length
        self.query_timeout = query_timeout

    async def answer_query(
        self,
        query: str,
        history: Optional[List[ChatExchange]] = None,
        scope: Optional[RetrievalScope] = None
    ) -> RAGAnswer:
        scope = scope or RetrievalScope()
        timer = Stopwatch()

        if is_blank(query):
            logger.warning(f"[QUERY] Empty query for scope={scope}, returning fallback")
            return RAGAnswer(answer=GENERIC_ERROR_ANSWER, outcome=QueryOutcome.FAILED)

        try:
            if self.query_timeout:
                return await asyncio.wait_for(
                    self._run(query, history or [], scope), timeout=self.query_timeout
                )
            return await self._run(query, history or [], scope)

        except NoMaterialsError:
            logger.info(f"[QUERY] {QueryStage.NO_CANDIDATES.value}: no materials for scope={scope} ({timer})")
            return RAGAnswer(
                answer=NO_MATERIALS_ANSWER,
                follow_up_questions=list(NO_MATERIALS_FOLLOW_UPS),
                outcome=QueryOutcome.NO_MATERIALS
            )
        except RateLimitError as e:
            self._log_fallback(scope, e, timer)
            return RAGAnswer(answer=RATE_LIMITED_ANSWER, outcome=QueryOutcome.RATE_LIMITED)
        except (ProviderTimeoutError, asyncio.TimeoutError) as e:
            self._log_fallback(scope, e, timer)
            return RAGAnswer(answer=TIMED_OUT_ANSWER, outcome=QueryOutcome.TIMED_OUT)
        except ProviderError as e:
            self._log_fallback(scope, e, timer)
            return RAGAnswer(answer=GENERIC_ERROR_ANSWER, outcome=QueryOutcome.PROVIDER_ERROR)
        except Exception:
            logger.exception(f"[QUERY] Unexpected failure for scope={scope} after {timer}")
            return RAGAnswer(answer=GENERIC_ERROR_ANSWER, outcome=QueryOutcome.FAILED)

    async def _run(self, query: str, history: List[ChatExchange], scope: RetrievalScope) -> RAGAnswer:
        timer = Stopwatch()
        logger.info(f"[QUERY] '{truncate(query)}' scope={scope}")

        results = await self.retriever.retrieve(
            query, scope, on_stage=lambda stage: self._stage(stage, scope)
        )

        self._stage(QueryStage.ASSEMBLING, scope)
        context = assemble_context(results, self.max_context_length)

        self._stage(QueryStage.GENERATING, scope)
        generated = await self.generator.generate(query, context, history, results)

        self._stage(QueryStage.DONE, scope)
        logger.info(f"[QUERY] Answered in {timer} with {len(results)} source(s)")
        return RAGAnswer(
            answer=generated.answer,
            source_documents=results,
            follow_up_questions=generated.follow_up_questions,
            outcome=QueryOutcome.ANSWERED
        )

    @staticmethod
    def _stage(stage: QueryStage, scope: RetrievalScope) -> None:
        logger.debug(f"[QUERY] stage={stage.value} scope={scope}")

    @staticmethod
    def _log_fallback(scope: RetrievalScope, error: Exception, timer: Stopwatch) -> None:
        logger.warning(
            f"[QUERY] Falling back for scope={scope}: {type(error).__name__}: {error} (after {timer})"
        )

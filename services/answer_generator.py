"""Prompt building and grounded answer generation"""
import logging
from typing import Dict, List, Optional

from config import settings
from core.domain import ChatExchange, GeneratedAnswer, RetrievalResult
from core.interfaces import FollowUpExtractor, IProviderClient

logger = logging.getLogger(settings.LOGGER_NAME)

EMPTY_COMPLETION_ANSWER = (
    "I'm sorry, I couldn't generate a response. Please try rephrasing your question."
)

SYSTEM_PROMPT = """You are an expert AI tutor helping students learn from their course materials.
Use the provided context to answer the student's question accurately and helpfully.

Guidelines:
- Base your answer primarily on the provided context
- Be educational and explain concepts clearly
- If the context doesn't fully answer the question, say so clearly
- Keep responses concise but comprehensive
- Always mention which material you're referencing

Context from course materials:
{context}{history}"""

NO_CONTEXT_NOTICE = (
    "(No course material matched this question closely. Tell the student that the "
    "uploaded materials don't seem to cover it, then answer cautiously if you can.)"
)


def format_history(history: List[ChatExchange], limit: int) -> str:
    """Last `limit` exchanges, oldest first. Empty string when there are none."""
    recent = history[-limit:] if limit > 0 else []
    if not recent:
        return ""
    lines = ["\n\nRecent conversation:\n"]
    for exchange in recent:
        lines.append(f"Human: {exchange.human}\nAssistant: {exchange.ai}\n\n")
    return "".join(lines)


def build_messages(
    query: str,
    context: str,
    history: List[ChatExchange],
    history_limit: int
) -> List[Dict[str, str]]:
    system_prompt = SYSTEM_PROMPT.format(
        context=context if context.strip() else NO_CONTEXT_NOTICE,
        history=format_history(history, history_limit)
    )
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": query},
    ]


class AnswerGenerator:
    """
    Main completion at low temperature, then best-effort follow-ups.

    Provider errors from the main completion propagate to the caller;
    the follow-up extractor never raises.
    """

    def __init__(
        self,
        provider: IProviderClient,
        follow_up_extractor: FollowUpExtractor,
        history_limit: int = settings.CHAT_HISTORY_LIMIT,
        temperature: float = settings.ANSWER_TEMPERATURE,
        max_tokens: int = settings.ANSWER_MAX_TOKENS
    ):
        self.provider = provider
        self.follow_up_extractor = follow_up_extractor
        self.history_limit = history_limit
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def generate(
        self,
        query: str,
        context: str,
        history: Optional[List[ChatExchange]] = None,
        sources: Optional[List[RetrievalResult]] = None
    ) -> GeneratedAnswer:
        messages = build_messages(query, context, history or [], self.history_limit)
        answer = await self.provider.complete(
            messages, temperature=self.temperature, max_tokens=self.max_tokens
        )
        answer = (answer or "").strip()
        if not answer:
            logger.warning("[QUERY] Provider returned an empty completion")
            answer = EMPTY_COMPLETION_ANSWER

        follow_ups = await self.follow_up_extractor.extract(query, answer, sources or [])
        return GeneratedAnswer(answer=answer, follow_up_questions=follow_ups)

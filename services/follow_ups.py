# services/follow_ups.py
import logging
import re
from typing import List

from config import settings
from core.domain import RetrievalResult
from core.interfaces import FollowUpExtractor, IProviderClient

logger = logging.getLogger(settings.LOGGER_NAME)

FOLLOW_UP_COUNT = 3
MIN_QUESTION_LENGTH = 10

DEFAULT_FOLLOW_UP_QUESTIONS = [
    "Can you explain this concept further?",
    "What are some practical applications?",
    "Are there related topics I should study?",
]

_NUMBERED = re.compile(r"^\d+\.\s*")
_BULLETED = re.compile(r"^-\s*")


def parse_follow_up_questions(text: str, limit: int = FOLLOW_UP_COUNT) -> List[str]:
    """
    Pull questions out of free LLM text.

    Accepts "1. ..." and "- ..." lines, strips the marker, drops fragments
    shorter than 10 characters, keeps at most `limit`.
    """
    questions: List[str] = []
    for raw in (text or "").splitlines():
        line = raw.strip()
        if _NUMBERED.match(line):
            question = _NUMBERED.sub("", line, count=1).strip()
        elif line.startswith("-"):
            question = _BULLETED.sub("", line, count=1).strip()
        else:
            continue
        if len(question) < MIN_QUESTION_LENGTH:
            continue
        questions.append(question)
        if len(questions) >= limit:
            break
    return questions


def build_follow_up_prompt(query: str, answer: str, sources: List[RetrievalResult]) -> str:
    materials = list(dict.fromkeys(r.metadata.material_title for r in sources))
    materials_line = f"\nMaterials: {', '.join(materials[:2])}" if materials else ""
    return (
        f"Based on this educational Q&A, suggest {FOLLOW_UP_COUNT} relevant follow-up questions:\n\n"
        f"Original Question: {query}\n"
        f"Answer: {answer}{materials_line}\n\n"
        f"Generate {FOLLOW_UP_COUNT} specific, educational follow-up questions that would help "
        f"the student learn more about this topic. Write each one on its own line as a numbered list."
    )


class LLMFollowUpExtractor(FollowUpExtractor):
    """Asks the provider for follow-ups at a higher temperature; falls back to a fixed set."""

    def __init__(
        self,
        provider: IProviderClient,
        temperature: float = settings.FOLLOW_UP_TEMPERATURE,
        max_tokens: int = settings.FOLLOW_UP_MAX_TOKENS
    ):
        self.provider = provider
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def extract(self, query: str, answer: str, sources: List[RetrievalResult]) -> List[str]:
        try:
            text = await self.provider.complete(
                [{"role": "user", "content": build_follow_up_prompt(query, answer, sources)}],
                temperature=self.temperature,
                max_tokens=self.max_tokens
            )
        except Exception as e:
            logger.warning(f"[QUERY] Follow-up generation failed, using defaults: {e}")
            return list(DEFAULT_FOLLOW_UP_QUESTIONS)

        questions = parse_follow_up_questions(text)
        if len(questions) < FOLLOW_UP_COUNT:
            logger.warning(
                f"[QUERY] Parsed {len(questions)} follow-up question(s), expected {FOLLOW_UP_COUNT}; using defaults"
            )
            return list(DEFAULT_FOLLOW_UP_QUESTIONS)
        return questions

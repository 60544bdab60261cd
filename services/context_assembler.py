"""Packs ranked retrieval results into a bounded prompt context"""
from typing import List

from core.domain import RetrievalResult


def format_block(result: RetrievalResult) -> str:
    return f"[From: {result.metadata.material_title}]\n{result.content}\n\n"


def assemble_context(results: List[RetrievalResult], max_context_length: int) -> str:
    """
    Append labeled blocks in ranked order until the next one would overflow.

    Greedy: stops at the first block that does not fit instead of looking for
    a smaller, lower-ranked one. Blocks are never cut.
    """
    parts: List[str] = []
    current_length = 0

    for result in results:
        block = format_block(result)
        if current_length + len(block) > max_context_length:
            break
        parts.append(block)
        current_length += len(block)

    return "".join(parts)

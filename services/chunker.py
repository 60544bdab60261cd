"""Sentence-boundary text chunking with word overlap"""
import re
from typing import List

_SENTENCE_SPLIT = re.compile(r"[.!?]+")

# Overlap is given in characters and converted to words assuming ~6 chars per word
CHARS_PER_WORD = 6


def split_sentences(text: str) -> List[str]:
    """Split on runs of . ! ? and drop blank pieces. Each sentence is re-terminated with '.'."""
    return [s.strip() + "." for s in _SENTENCE_SPLIT.split(text) if s.strip()]


def split_text(text: str, chunk_size: int, overlap: int) -> List[str]:
    """
    Greedily pack sentences into chunks of about chunk_size characters.

    When the next sentence would overflow a non-empty buffer, the buffer is
    emitted and the next one is seeded with the last overlap // 6 words of
    the emitted chunk. A sentence longer than chunk_size becomes its own
    oversized chunk. Blank input yields no chunks.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if overlap < 0:
        raise ValueError("overlap must be >= 0")

    overlap_words = overlap // CHARS_PER_WORD
    chunks: List[str] = []
    buffer = ""
    # False while the buffer holds only the overlap seed; a seed is never emitted on its own
    has_new_text = False

    for sentence in split_sentences(text):
        if has_new_text and len(buffer) + len(sentence) > chunk_size:
            emitted = buffer.strip()
            chunks.append(emitted)
            tail = emitted.split()[-overlap_words:] if overlap_words else []
            buffer = " ".join(tail) + " " if tail else ""
            has_new_text = False
        buffer += sentence + " "
        has_new_text = True

    if has_new_text:
        chunks.append(buffer.strip())

    return chunks

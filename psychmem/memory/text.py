"""Lexical similarity helpers shared by scoring and retrieval."""

import math

MIN_WORD_LENGTH = 3
CHARS_PER_TOKEN = 4


def word_set(text: str) -> set[str]:
    """Case-folded whitespace tokens, dropping words of two characters or fewer."""
    if not text:
        return set()
    return {w for w in text.casefold().split() if len(w) >= MIN_WORD_LENGTH}


def jaccard(a: str, b: str) -> float:
    """Jaccard index of the two texts' word sets; 0.0 when either is empty."""
    words_a = word_set(a)
    words_b = word_set(b)
    if not words_a or not words_b:
        return 0.0
    return len(words_a & words_b) / len(words_a | words_b)


def query_keywords(query: str) -> list[str]:
    """Query words longer than two characters, in order (duplicates kept)."""
    if not query:
        return []
    return [w for w in query.casefold().split() if len(w) >= MIN_WORD_LENGTH]


def estimate_tokens(text: str) -> int:
    """Rough token estimate (~4 chars per token)."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def truncate(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."

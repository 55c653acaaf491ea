"""Memory retrieval: ranking and context formatting."""

from psychmem.retrieval.formatting import (
    format_index_for_context,
    format_memories_with_scope,
    format_session_context,
    format_strength_bar,
)
from psychmem.retrieval.ranker import RetrievalRanker, calculate_relevance

__all__ = [
    "RetrievalRanker",
    "calculate_relevance",
    "format_index_for_context",
    "format_memories_with_scope",
    "format_session_context",
    "format_strength_bar",
]

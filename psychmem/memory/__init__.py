"""
Selective memory for coding-agent sessions.

Types and text helpers are exported here; the store, scorer and engine live
in their own modules (``psychmem.memory.store``, ``.scoring``, ``.selective``).
"""

from psychmem.memory.text import jaccard
from psychmem.memory.types import (
    USER_LEVEL_CLASSIFICATIONS,
    Classification,
    ConsolidationResult,
    DecayResult,
    FeedbackKind,
    FeedbackResult,
    ImportanceSignal,
    MemoryCandidate,
    MemoryFeatureVector,
    MemoryStats,
    MemoryStatus,
    MemoryStoreKind,
    MemoryUnit,
    ReconsolidationResult,
    RetrievalDetail,
    RetrievalFilters,
    RetrievalIndexItem,
    RetrievalQuery,
    is_user_level_classification,
)

__all__ = [
    "USER_LEVEL_CLASSIFICATIONS",
    "Classification",
    "ConsolidationResult",
    "DecayResult",
    "FeedbackKind",
    "FeedbackResult",
    "ImportanceSignal",
    "MemoryCandidate",
    "MemoryFeatureVector",
    "MemoryStats",
    "MemoryStatus",
    "MemoryStoreKind",
    "MemoryUnit",
    "ReconsolidationResult",
    "RetrievalDetail",
    "RetrievalFilters",
    "RetrievalIndexItem",
    "RetrievalQuery",
    "is_user_level_classification",
    "jaccard",
]

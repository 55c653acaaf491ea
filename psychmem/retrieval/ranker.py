"""Progressive-disclosure retrieval: a ranked lightweight index first, full details on request."""

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from loguru import logger

from psychmem.config.loader import coerce_memory_config
from psychmem.config.schema import Config, MemoryConfig
from psychmem.memory.store import MemoryStore
from psychmem.memory.text import estimate_tokens, jaccard, query_keywords
from psychmem.memory.types import (
    MemoryUnit,
    RetrievalDetail,
    RetrievalFilters,
    RetrievalIndexItem,
    RetrievalQuery,
    clamp01,
)

# Over-fetch so ranking can surface relevant memories that are not the strongest
MIN_POOL_SIZE = 50
MAX_POOL_SIZE = 200
POOL_MULTIPLIER = 10

TEXT_WEIGHT = 2.0
TAG_BONUS = 0.15
RECENCY_BONUS = 0.05
RECENCY_BONUS_HOURS = 2000.0


def pool_size(limit: int) -> int:
    return min(MAX_POOL_SIZE, max(MIN_POOL_SIZE, limit * POOL_MULTIPLIER))


def calculate_relevance(memory: MemoryUnit, query: str, now: datetime | None = None) -> float:
    """
    Query-first relevance in [0, 1].

    Text similarity dominates (x2.0); strength only scales it between 0.5x
    and 1x, so a weak but relevant memory beats a strong irrelevant one.
    """
    summary = memory.summary.casefold()
    keywords = query_keywords(query)

    keyword_hits = sum(1 for kw in keywords if kw in summary)
    keyword_score = keyword_hits / len(keywords) if keywords else 0.0
    text_similarity = 0.5 * jaccard(memory.summary, query) + 0.5 * keyword_score

    tag_matches = sum(1 for tag in memory.tags if any(kw in tag.casefold() for kw in keywords))
    recency_bonus = max(0.0, RECENCY_BONUS - memory.age_hours(now) / RECENCY_BONUS_HOURS)

    score = (
        text_similarity * TEXT_WEIGHT * (0.5 + memory.strength * 0.5)
        + tag_matches * TAG_BONUS
        + recency_bonus
    )
    return clamp01(score)


class RetrievalRanker:
    """Ranks stored memories for context injection and search."""

    def __init__(self, store: MemoryStore, config: Config | MemoryConfig | Mapping[str, Any] | None = None):
        self.store = store
        self.config = coerce_memory_config(config)

    def retrieve_index(self, query: RetrievalQuery | None = None) -> list[RetrievalIndexItem]:
        """
        Ranked index of memories.

        With query text, memories are ordered by relevance; without, by
        strength. Equal scores keep the store's strength order.
        """
        query = query or RetrievalQuery()
        limit = query.limit or self.config.default_retrieval_limit

        memories = self.store.get_top_memories(pool_size(limit))
        if query.filters:
            memories = self.apply_filters(memories, query.filters)
        return self._rank(memories, query.text, limit)

    def search(
        self, text: str, filters: RetrievalFilters | None = None, limit: int | None = None
    ) -> list[RetrievalIndexItem]:
        return self.retrieve_index(RetrievalQuery(text=text, filters=filters, limit=limit))

    def retrieve_details(self, memory_ids: list[str], session_id: str | None = None) -> list[RetrievalDetail]:
        """
        Full memories for the given ids. Unknown ids are skipped.

        With a session id the access is logged and counted as a repetition.
        """
        details: list[RetrievalDetail] = []
        for memory_id in memory_ids:
            memory = self.store.get_memory(memory_id)
            if memory is None:
                logger.debug(f"Detail request for unknown memory {memory_id[:8]}")
                continue

            if session_id:
                with self.store.transaction():
                    self.store.log_retrieval(session_id, memory_id, "detail_request", memory.strength)
                    self.store.increment_frequency(memory_id)
                memory.frequency += 1

            details.append(RetrievalDetail(memory=memory, relevance_score=memory.strength))
        return details

    def get_memory(self, memory_id: str) -> MemoryUnit | None:
        return self.store.get_memory(memory_id)

    # ------------------------------------------------------------------
    # Scope-aware retrieval
    # ------------------------------------------------------------------

    def retrieve_by_scope(self, current_project: str | None = None, limit: int | None = None) -> list[MemoryUnit]:
        """User-level memories plus those of ``current_project``, strongest first."""
        return self.store.get_memories_by_scope(current_project, limit or self.config.default_retrieval_limit)

    def retrieve_user_level(self, limit: int | None = None) -> list[MemoryUnit]:
        return self.store.get_user_level_memories(limit or self.config.default_retrieval_limit)

    def retrieve_project_level(self, project: str, limit: int | None = None) -> list[MemoryUnit]:
        return self.store.get_project_memories(project, limit or self.config.default_retrieval_limit)

    def search_by_scope(
        self, text: str, current_project: str | None = None, limit: int | None = None
    ) -> list[RetrievalIndexItem]:
        """Same ranking as ``search`` over the scope-filtered pool."""
        limit = limit or self.config.default_retrieval_limit
        memories = self.store.get_memories_by_scope(current_project, pool_size(limit))
        return self._rank(memories, text, limit)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def apply_filters(memories: list[MemoryUnit], filters: RetrievalFilters) -> list[MemoryUnit]:
        if filters.store:
            memories = [m for m in memories if m.store == filters.store]
        if filters.classifications:
            memories = [m for m in memories if m.classification in filters.classifications]
        if filters.min_strength is not None:
            memories = [m for m in memories if m.strength >= filters.min_strength]
        if filters.tags:
            wanted = set(filters.tags)
            memories = [m for m in memories if wanted.intersection(m.tags)]
        if filters.since:
            memories = [m for m in memories if m.created_at >= filters.since]
        return memories

    def _rank(self, memories: list[MemoryUnit], text: str | None, limit: int) -> list[RetrievalIndexItem]:
        now = datetime.now()
        if text:
            scored = [(calculate_relevance(m, text, now), m) for m in memories]
            # sort is stable: ties keep strength order
            scored.sort(key=lambda pair: pair[0], reverse=True)
        else:
            scored = [(m.strength, m) for m in memories]
        return [self._to_index_item(m, score) for score, m in scored[:limit]]

    @staticmethod
    def _to_index_item(memory: MemoryUnit, relevance: float) -> RetrievalIndexItem:
        return RetrievalIndexItem(
            id=memory.id,
            summary=memory.summary,
            classification=memory.classification,
            store=memory.store,
            strength=memory.strength,
            estimated_tokens=estimate_tokens(memory.summary),
            relevance_score=relevance,
        )

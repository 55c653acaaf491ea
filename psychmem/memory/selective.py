"""
Selective memory engine: intake scoring, STM/LTM allocation, consolidation,
reconsolidation and decay.
"""

from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any

from loguru import logger

from psychmem.config.loader import coerce_memory_config
from psychmem.config.schema import Config, MemoryConfig
from psychmem.errors import ErrorKind
from psychmem.memory.scoring import FeatureScorer
from psychmem.memory.store import MemoryStore
from psychmem.memory.text import jaccard
from psychmem.memory.types import (
    ConsolidationResult,
    DecayResult,
    MemoryCandidate,
    MemoryFeatureVector,
    MemoryStatus,
    MemoryStoreKind,
    MemoryUnit,
    ReconsolidationResult,
    clamp01,
    is_user_level_classification,
)

# Novelty and interference only look at the strongest memories
CORPUS_SCAN_LIMIT = 50

INITIAL_UTILITY = 0.5
UTILITY_REWARD = 0.1
UTILITY_PENALTY = 0.05

# STM memories weaker than this are marked decayed during consolidation
DECAYED_STRENGTH = 0.1

CONFLICT_SIMILARITY = 0.3
REINFORCE_SIMILARITY = 0.7
CONFLICT_CONFIDENCE_FACTOR = 0.8
REINFORCE_CONFIDENCE_FACTOR = 0.1


class SelectiveMemoryEngine:
    """Scores candidates into the store and moves memories between STM and LTM."""

    def __init__(self, store: MemoryStore, config: Config | MemoryConfig | Mapping[str, Any] | None = None):
        self.store = store
        self.config = coerce_memory_config(config)
        self.scorer = FeatureScorer(self.config.scoring_weights)

    # ------------------------------------------------------------------
    # Intake (STM vs LTM allocation)
    # ------------------------------------------------------------------

    def process_candidates(
        self,
        candidates: Iterable[MemoryCandidate | Mapping[str, Any]],
        session_id: str | None = None,
        project_scope: str | None = None,
    ) -> list[MemoryUnit]:
        """
        Score candidates and persist one memory per candidate.

        Args:
            candidates: Extractor output; mappings are validated into MemoryCandidate.
            session_id: Session the candidates came from.
            project_scope: Current project. Ignored for user-level classifications.

        Returns:
            The created memories, in candidate order.
        """
        candidates = [
            c if isinstance(c, MemoryCandidate) else MemoryCandidate.model_validate(c) for c in candidates
        ]
        if not candidates:
            return []

        # Snapshot once: candidates in the same call never see each other
        corpus = self.store.get_top_memories(CORPUS_SCAN_LIMIT)

        created: list[MemoryUnit] = []
        for candidate in candidates:
            features = self.calculate_features(candidate, corpus)
            strength = self.calculate_strength(features)
            interference = self.scorer.interference(candidate.summary, corpus)

            auto_promote = candidate.classification in self.config.auto_promote_to_ltm
            store_kind = MemoryStoreKind.LTM if auto_promote else MemoryStoreKind.STM
            scope = None if is_user_level_classification(candidate.classification) else project_scope

            with self.store.transaction():
                memory = self.store.create_memory(
                    store_kind,
                    candidate.classification,
                    candidate.summary,
                    candidate.source_event_ids,
                    session_id=session_id,
                    project_scope=scope,
                    strength=strength,
                    importance=features.importance,
                    utility=features.utility,
                    novelty=features.novelty,
                    confidence=features.confidence,
                    interference=interference,
                    frequency=features.frequency,
                    tags=self.extract_tags(candidate),
                )
                if interference > 0:
                    memory.strength = self.scorer.dampen(strength, interference)
                    self.store.update_memory_strength(memory.id, memory.strength)

            created.append(memory)

        logger.info(f"Processed {len(created)} memory candidates")
        return created

    def calculate_features(self, candidate: MemoryCandidate, corpus: list[MemoryUnit]) -> MemoryFeatureVector:
        """Feature vector of a brand-new candidate."""
        return MemoryFeatureVector(
            recency=0.0,
            frequency=1,
            importance=candidate.preliminary_importance,
            utility=INITIAL_UTILITY,
            novelty=self.scorer.novelty(candidate.summary, corpus),
            confidence=candidate.confidence,
            interference=0.0,  # applied post-hoc as dampening
        )

    def calculate_strength(self, features: MemoryFeatureVector) -> float:
        return self.scorer.score(features)

    @staticmethod
    def extract_tags(candidate: MemoryCandidate) -> list[str]:
        """Classification first, then each distinct importance-signal type."""
        tags = [candidate.classification.value]
        for signal in candidate.importance_signals:
            if signal.type not in tags:
                tags.append(signal.type)
        return tags

    # ------------------------------------------------------------------
    # Consolidation (STM -> LTM)
    # ------------------------------------------------------------------

    def run_consolidation(self) -> ConsolidationResult:
        """Promote eligible STM memories, mark weak ones decayed, leave the rest."""
        result = ConsolidationResult()
        with self.store.transaction():
            for memory in self.store.get_memories_by_store(MemoryStoreKind.STM):
                if self.should_promote_to_ltm(memory):
                    self.store.promote_to_ltm(memory.id)
                    result.promoted.append(memory.id)
                elif memory.strength < DECAYED_STRENGTH and not memory.is_pinned:
                    self.store.update_memory_status(memory.id, MemoryStatus.DECAYED)
                    result.decayed.append(memory.id)
                else:
                    result.unchanged.append(memory.id)

        logger.info(
            f"Consolidation: {len(result.promoted)} promoted, "
            f"{len(result.decayed)} decayed, {len(result.unchanged)} unchanged"
        )
        return result

    def should_promote_to_ltm(self, memory: MemoryUnit) -> bool:
        if memory.classification in self.config.auto_promote_to_ltm:
            return True
        if memory.strength >= self.config.stm_to_ltm_strength_threshold:
            return True
        # Spaced repetition
        return memory.frequency >= self.config.stm_to_ltm_frequency_threshold

    # ------------------------------------------------------------------
    # Decay
    # ------------------------------------------------------------------

    def apply_decay(self, now: datetime | None = None) -> DecayResult:
        """strength_t = strength_0 * exp(-lambda * dt) for every active, unpinned memory."""
        now = now or datetime.now()
        decayed = self.store.apply_decay(self.config.decay_rate, now)
        return DecayResult(memories_decayed=decayed, timestamp=now)

    def run_session_end(self, now: datetime | None = None) -> tuple[DecayResult, ConsolidationResult]:
        """
        Decay then consolidate as one transaction.

        Consolidation sees the decayed strengths; on any failure both steps are
        rolled back and the error propagates.
        """
        try:
            with self.store.transaction():
                decay = self.apply_decay(now)
                consolidation = self.run_consolidation()
        except Exception as e:
            logger.error(f"Session-end decay/consolidation rolled back: {e}")
            raise
        return decay, consolidation

    # ------------------------------------------------------------------
    # Reconsolidation (updating LTM)
    # ------------------------------------------------------------------

    def reconsolidate(
        self,
        memory_id: str,
        content: str,
        confidence: float,
        source_event_id: str | None = None,
    ) -> ReconsolidationResult:
        """
        Check a memory against new evidence.

        Conflicting evidence (similarity < 0.3) lowers confidence and annotates
        the summary, keeping the original text. Reinforcing evidence
        (similarity > 0.7) raises confidence and counts as a repetition.
        Anything in between leaves the memory alone.
        """
        memory = self.store.get_memory(memory_id)
        if memory is None:
            return ReconsolidationResult(success=False, reason="Memory not found", error=ErrorKind.NOT_FOUND)
        if memory.is_pinned:
            return ReconsolidationResult(
                success=False,
                reason="Memory is pinned and cannot be reconsolidated",
                error=ErrorKind.INVALID_STATE,
            )

        confidence = clamp01(confidence)
        similarity = jaccard(content, memory.summary)
        source_event_ids = memory.source_event_ids + ([source_event_id] if source_event_id else [])

        if similarity < CONFLICT_SIMILARITY:
            new_confidence = clamp01((memory.confidence + confidence) / 2 * CONFLICT_CONFIDENCE_FACTOR)
            self.store.update_memory_fields(
                memory_id,
                summary=f"{memory.summary} [Updated: {content}]",
                confidence=new_confidence,
                source_event_ids=source_event_ids,
            )
            logger.info(f"Reconsolidation conflict on {memory_id[:8]} (similarity {similarity:.2f})")
            return ReconsolidationResult(
                success=True,
                updated=True,
                old_confidence=memory.confidence,
                new_confidence=new_confidence,
                conflict=True,
            )

        if similarity > REINFORCE_SIMILARITY:
            new_confidence = min(1.0, memory.confidence + confidence * REINFORCE_CONFIDENCE_FACTOR)
            with self.store.transaction():
                self.store.update_memory_fields(
                    memory_id, confidence=new_confidence, source_event_ids=source_event_ids
                )
                self.store.increment_frequency(memory_id)
            logger.debug(f"Reconsolidation reinforced {memory_id[:8]} (similarity {similarity:.2f})")
            return ReconsolidationResult(
                success=True,
                updated=True,
                old_confidence=memory.confidence,
                new_confidence=new_confidence,
                reinforced=True,
            )

        return ReconsolidationResult(success=True, updated=False, reason="No significant update needed")

    # ------------------------------------------------------------------
    # Utility
    # ------------------------------------------------------------------

    def update_utility(self, memory_id: str, was_used: bool, now: datetime | None = None) -> MemoryUnit | None:
        """Reward or penalise a retrieved memory, then recompute its strength."""
        memory = self.store.get_memory(memory_id)
        if memory is None:
            logger.debug(f"Utility update skipped, memory {memory_id[:8]} not found")
            return None

        delta = UTILITY_REWARD if was_used else -UTILITY_PENALTY
        memory.utility = clamp01(memory.utility + delta)
        memory.strength = self.calculate_strength(MemoryFeatureVector(
            recency=memory.age_hours(now),
            frequency=memory.frequency,
            importance=memory.importance,
            utility=memory.utility,
            novelty=memory.novelty,
            confidence=memory.confidence,
            interference=memory.interference,
        ))
        self.store.update_memory_fields(memory_id, utility=memory.utility, strength=memory.strength)
        return memory

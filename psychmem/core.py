"""PsychMem facade: one config, one store, every component wired together."""

from collections.abc import Iterable, Mapping
from datetime import datetime
from pathlib import Path
from typing import Any

from loguru import logger

from psychmem.config.loader import get_db_path, load_config
from psychmem.config.schema import Config
from psychmem.memory.selective import SelectiveMemoryEngine
from psychmem.memory.store import MemoryStore
from psychmem.memory.types import (
    ConsolidationResult,
    DecayResult,
    FeedbackKind,
    FeedbackResult,
    MemoryCandidate,
    MemoryStats,
    MemoryUnit,
    ReconsolidationResult,
    RetrievalDetail,
    RetrievalIndexItem,
)
from psychmem.retrieval.ranker import RetrievalRanker
from psychmem.session.lifecycle import SessionEndResult, SessionLifecycle


class PsychMem:
    """Entry point for host adapters."""

    def __init__(self, config: Config | None = None, store: MemoryStore | None = None, owns_store: bool = False):
        self.config = config or Config()
        # A store built here, or handed over with owns_store, is closed by close()
        self._owns_store = store is None or owns_store
        self.store = store or MemoryStore(get_db_path(self.config))
        self.engine = SelectiveMemoryEngine(self.store, self.config.memory)
        self.retrieval = RetrievalRanker(self.store, self.config.memory)
        self.lifecycle = SessionLifecycle(self.store, self.engine)

    def close(self) -> None:
        if self._owns_store:
            self.store.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    # Intake / lifecycle

    def process_candidates(
        self,
        candidates: Iterable[MemoryCandidate | Mapping[str, Any]],
        session_id: str | None = None,
        project_scope: str | None = None,
    ) -> list[MemoryUnit]:
        return self.engine.process_candidates(candidates, session_id=session_id, project_scope=project_scope)

    def start_session(self, session_id: str, project: str | None = None) -> str:
        return self.lifecycle.start(session_id, project)

    def end_session(self, session_id: str, reason: str = "completed") -> SessionEndResult:
        return self.lifecycle.end(session_id, reason)

    def apply_decay(self, now: datetime | None = None) -> DecayResult:
        return self.engine.apply_decay(now)

    def run_consolidation(self) -> ConsolidationResult:
        return self.engine.run_consolidation()

    def reconsolidate(
        self, memory_id: str, content: str, confidence: float, source_event_id: str | None = None
    ) -> ReconsolidationResult:
        return self.engine.reconsolidate(memory_id, content, confidence, source_event_id)

    # Queries

    def search(self, query: str, limit: int | None = None) -> list[RetrievalIndexItem]:
        return self.retrieval.search(query, limit=limit)

    def get_memory(self, memory_id: str) -> MemoryUnit | None:
        return self.retrieval.get_memory(memory_id)

    def get_memories(self, memory_ids: list[str], session_id: str | None = None) -> list[RetrievalDetail]:
        return self.retrieval.retrieve_details(memory_ids, session_id)

    def get_stats(self) -> MemoryStats:
        return self.store.get_stats()

    # Feedback

    def pin_memory(self, memory_id: str) -> FeedbackResult:
        """Pin a memory so it no longer decays."""
        return self._feedback(FeedbackKind.PIN, memory_id)

    def forget_memory(self, memory_id: str) -> FeedbackResult:
        return self._feedback(FeedbackKind.FORGET, memory_id)

    def remember_memory(self, memory_id: str) -> FeedbackResult:
        """Boost importance and move to LTM."""
        return self._feedback(FeedbackKind.REMEMBER, memory_id)

    def _feedback(self, kind: FeedbackKind, memory_id: str) -> FeedbackResult:
        result = self.store.add_feedback(kind, memory_id)
        if not result.success:
            logger.warning(f"Feedback '{kind.value}' failed for {memory_id}: {result.reason}")
        return result


def create_psychmem(config: Config | None = None, db_path: Path | str | None = None) -> PsychMem:
    """
    Build a PsychMem backed by ``db_path`` (or the configured / default database).

    Without an explicit config, ``~/.psychmem/config.json`` is loaded.
    """
    config = config or load_config()
    store = MemoryStore(db_path) if db_path is not None else MemoryStore(get_db_path(config))
    return PsychMem(config, store, owns_store=True)

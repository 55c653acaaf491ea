"""Session lifecycle: context injection at start, decay and consolidation at end."""

from dataclasses import dataclass
from datetime import datetime

from loguru import logger

from psychmem.memory.selective import SelectiveMemoryEngine
from psychmem.memory.store import MemoryStore
from psychmem.memory.text import estimate_tokens, truncate
from psychmem.memory.types import MemoryStatus, MemoryUnit, RetrievalIndexItem
from psychmem.retrieval.formatting import format_empty_context, format_session_context

MAX_SUMMARY_CHARS = 100


@dataclass
class SessionEndResult:
    """Counts reported when a session closes."""
    promoted: int
    decayed: int
    cleaned: int


class SessionLifecycle:
    """
    Session start/end sequencing for one store.

    Host adapters call ``start`` when a session opens and ``end`` when it
    closes; nothing here runs on a timer.
    """

    def __init__(self, store: MemoryStore, engine: SelectiveMemoryEngine):
        self.store = store
        self.engine = engine
        self.config = engine.config

    def start(self, session_id: str, project: str | None = None) -> str:
        """
        Record the session and build its memory context.

        Returns:
            Markdown index of user-level and project memories, strongest first.
        """
        project_scope = (project or "").strip() or None
        self.store.create_session(session_id, project_scope)

        limit = self.config.default_retrieval_limit
        memories = self.store.get_memories_by_scope(project_scope, limit)
        if not memories:
            memories = self.store.get_top_memories(limit)
        if not memories:
            return format_empty_context()

        logger.debug(f"Session {session_id} starts with {len(memories)} memories")
        return format_session_context([self._index_item(m) for m in memories], project)

    def end(self, session_id: str, reason: str = "completed", now: datetime | None = None) -> SessionEndResult:
        """
        Close the session, then decay and consolidate in one transaction.

        Raises:
            Whatever the store raised; nothing is committed in that case.
        """
        status = "abandoned" if reason == "abandoned" else "completed"
        try:
            with self.store.transaction():
                self.store.end_session(session_id, status)
                decay, consolidation = self.engine.run_session_end(now)
        except Exception as e:
            logger.error(f"Session {session_id} end failed, changes rolled back: {e}")
            raise

        # Decayed memories are only counted, never archived or deleted
        cleaned = self.store.count_by_status(MemoryStatus.DECAYED)
        logger.info(
            f"Session {session_id} {status}: {len(consolidation.promoted)} promoted, "
            f"{decay.memories_decayed} decayed"
        )
        return SessionEndResult(
            promoted=len(consolidation.promoted),
            decayed=decay.memories_decayed,
            cleaned=cleaned,
        )

    @staticmethod
    def _index_item(memory: MemoryUnit) -> RetrievalIndexItem:
        return RetrievalIndexItem(
            id=memory.id,
            summary=truncate(memory.summary, MAX_SUMMARY_CHARS),
            classification=memory.classification,
            store=memory.store,
            strength=memory.strength,
            estimated_tokens=estimate_tokens(memory.summary),
            relevance_score=memory.strength,
        )

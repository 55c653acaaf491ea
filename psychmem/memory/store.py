"""SQLite memory store with explicit transactions for decay and consolidation."""

import json
import math
import sqlite3
import threading
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

from loguru import logger

from psychmem.errors import ErrorKind, InvalidStateError, NotFoundError
from psychmem.memory.types import (
    Classification,
    FeedbackKind,
    FeedbackResult,
    MemoryStats,
    MemoryStatus,
    MemoryStoreKind,
    MemoryUnit,
    StoreStats,
    clamp01,
    is_user_level_classification,
)

REMEMBER_IMPORTANCE_BOOST = 0.2

# Statuses visible to retrieval; decayed and forgotten memories stay in the table
VISIBLE_STATUSES = (MemoryStatus.ACTIVE.value, MemoryStatus.PINNED.value)

# Deterministic ordering so identical queries produce identical pools
STRENGTH_ORDER = "ORDER BY strength DESC, updated_at DESC, id ASC"

_SCORE_FIELDS = {"strength", "importance", "utility", "novelty", "confidence", "interference"}
_UPDATABLE_FIELDS = _SCORE_FIELDS | {
    "store", "summary", "status", "frequency", "tags", "source_event_ids",
}


class MemoryStore:
    """
    Durable repository of memory units.

    Every single-call mutation is atomic. ``transaction()`` (or
    ``begin``/``commit``/``rollback``) groups several calls; mutations made
    while a transaction is open run in a savepoint of it instead of
    committing on their own, so decay and consolidation can run inside one
    caller-managed transaction. A failed inner scope undoes only its own
    work; nothing reaches disk until the outermost scope commits.
    """

    def __init__(self, db_path: Path | str = ":memory:"):
        if str(db_path) != ":memory:":
            db_path = Path(db_path).expanduser()
            db_path.parent.mkdir(parents=True, exist_ok=True)
        self.db_path = db_path

        self._lock = threading.RLock()
        self._tx_depth = 0
        # Autocommit mode: BEGIN/COMMIT are issued explicitly
        self._conn: sqlite3.Connection | None = sqlite3.connect(
            str(db_path), check_same_thread=False, isolation_level=None
        )
        self._conn.row_factory = sqlite3.Row
        self._init_db()

    def close(self) -> None:
        with self._lock:
            if self._conn:
                if self._tx_depth:
                    logger.warning("Closing memory store with an open transaction; rolling back")
                    self._conn.execute("ROLLBACK")
                    self._tx_depth = 0
                self._conn.close()
                self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def _init_db(self) -> None:
        with self._lock:
            self._conn.executescript("""
                CREATE TABLE IF NOT EXISTS memories (
                    id TEXT PRIMARY KEY,
                    store TEXT NOT NULL,
                    classification TEXT NOT NULL,
                    summary TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'active',
                    strength REAL NOT NULL DEFAULT 0.5,
                    importance REAL NOT NULL DEFAULT 0.5,
                    utility REAL NOT NULL DEFAULT 0.5,
                    novelty REAL NOT NULL DEFAULT 1.0,
                    confidence REAL NOT NULL DEFAULT 0.5,
                    interference REAL NOT NULL DEFAULT 0.0,
                    frequency INTEGER NOT NULL DEFAULT 1,
                    tags TEXT NOT NULL DEFAULT '[]',
                    project_scope TEXT,
                    source_event_ids TEXT NOT NULL DEFAULT '[]',
                    session_id TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    last_decay_at TEXT
                );
                CREATE INDEX IF NOT EXISTS idx_memories_status_strength ON memories(status, strength DESC);
                CREATE INDEX IF NOT EXISTS idx_memories_store ON memories(store);
                CREATE INDEX IF NOT EXISTS idx_memories_scope ON memories(project_scope);

                CREATE TABLE IF NOT EXISTS meta (
                    key TEXT PRIMARY KEY,
                    value TEXT
                );

                CREATE TABLE IF NOT EXISTS sessions (
                    id TEXT PRIMARY KEY,
                    project TEXT,
                    status TEXT NOT NULL DEFAULT 'active',
                    started_at TEXT NOT NULL,
                    ended_at TEXT
                );

                CREATE TABLE IF NOT EXISTS retrievals (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    session_id TEXT NOT NULL,
                    memory_id TEXT NOT NULL,
                    kind TEXT NOT NULL,
                    score REAL,
                    created_at TEXT NOT NULL
                );
                CREATE INDEX IF NOT EXISTS idx_retrievals_session ON retrievals(session_id);

                CREATE TABLE IF NOT EXISTS feedback (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    kind TEXT NOT NULL,
                    memory_id TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );
            """)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @property
    def in_transaction(self) -> bool:
        return self._tx_depth > 0

    def begin(self) -> None:
        """Open a transaction, or a savepoint inside the one already open."""
        with self._lock:
            if self._tx_depth == 0:
                self._conn.execute("BEGIN IMMEDIATE")
            else:
                self._conn.execute(f"SAVEPOINT sp_{self._tx_depth}")
            self._tx_depth += 1

    def commit(self) -> None:
        """End the innermost scope; the outermost one commits to disk."""
        with self._lock:
            if self._tx_depth == 0:
                raise InvalidStateError("commit() without an open transaction")
            self._tx_depth -= 1
            if self._tx_depth == 0:
                self._conn.execute("COMMIT")
            else:
                self._conn.execute(f"RELEASE SAVEPOINT sp_{self._tx_depth}")

    def rollback(self) -> None:
        """
        Undo the innermost scope only.

        Nested scopes roll back to their savepoint and leave the enclosing
        transaction open; the outermost scope rolls back everything.
        """
        with self._lock:
            if self._tx_depth == 0:
                return
            self._tx_depth -= 1
            if self._tx_depth == 0:
                self._conn.execute("ROLLBACK")
                logger.warning("Memory store transaction rolled back")
            else:
                self._conn.execute(f"ROLLBACK TO SAVEPOINT sp_{self._tx_depth}")
                self._conn.execute(f"RELEASE SAVEPOINT sp_{self._tx_depth}")
                logger.debug(f"Memory store savepoint sp_{self._tx_depth} rolled back")

    @contextmanager
    def transaction(self) -> Iterator["MemoryStore"]:
        self.begin()
        try:
            yield self
        except BaseException:
            self.rollback()
            raise
        else:
            self.commit()

    @contextmanager
    def _write(self) -> Iterator[sqlite3.Connection]:
        with self._lock, self.transaction():
            yield self._conn

    # ------------------------------------------------------------------
    # Create / read
    # ------------------------------------------------------------------

    def create_memory(
        self,
        store: MemoryStoreKind | str,
        classification: Classification | str,
        summary: str,
        source_event_ids: list[str] | None = None,
        *,
        session_id: str | None = None,
        project_scope: str | None = None,
        strength: float = 0.5,
        importance: float = 0.5,
        utility: float = 0.5,
        novelty: float = 1.0,
        confidence: float = 0.5,
        interference: float = 0.0,
        frequency: int = 1,
        tags: list[str] | None = None,
        status: MemoryStatus | str = MemoryStatus.ACTIVE,
        now: datetime | None = None,
    ) -> MemoryUnit:
        """Insert a new memory and return it."""
        classification = Classification(classification)
        project_scope = (project_scope or "").strip() or None
        if project_scope and is_user_level_classification(classification):
            logger.debug(f"Dropping project scope '{project_scope}' for user-level {classification.value} memory")
            project_scope = None

        now = now or datetime.now()
        memory = MemoryUnit(
            id=str(uuid.uuid4()),
            store=MemoryStoreKind(store),
            classification=classification,
            summary=summary,
            status=MemoryStatus(status),
            strength=clamp01(strength),
            importance=clamp01(importance),
            utility=clamp01(utility),
            novelty=clamp01(novelty),
            confidence=clamp01(confidence),
            interference=clamp01(interference),
            frequency=max(0, int(frequency)),
            tags=list(dict.fromkeys(tags or [])),
            project_scope=project_scope,
            source_event_ids=list(source_event_ids or []),
            session_id=session_id,
            created_at=now,
            updated_at=now,
            last_decay_at=now,
        )

        with self._write() as conn:
            conn.execute(
                "INSERT INTO memories (id, store, classification, summary, status, strength, importance, utility, "
                "novelty, confidence, interference, frequency, tags, project_scope, source_event_ids, session_id, "
                "created_at, updated_at, last_decay_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    memory.id, memory.store.value, memory.classification.value, memory.summary,
                    memory.status.value, memory.strength, memory.importance, memory.utility, memory.novelty,
                    memory.confidence, memory.interference, memory.frequency, json.dumps(memory.tags),
                    memory.project_scope, json.dumps(memory.source_event_ids), memory.session_id,
                    now.isoformat(), now.isoformat(), now.isoformat(),
                ),
            )
        logger.debug(f"Created {memory.store.value} memory {memory.id[:8]}: {summary[:50]}")
        return memory

    def get_memory(self, memory_id: str) -> MemoryUnit | None:
        with self._lock:
            row = self._conn.execute("SELECT * FROM memories WHERE id = ?", (memory_id,)).fetchone()
        return self._row_to_memory(row) if row else None

    def get_memories_by_store(self, store: MemoryStoreKind | str) -> list[MemoryUnit]:
        """All active and pinned memories in one store."""
        return self._select(
            f"WHERE store = ? AND status IN (?, ?) {STRENGTH_ORDER}",
            (MemoryStoreKind(store).value, *VISIBLE_STATUSES),
        )

    def get_top_memories(self, limit: int = 50) -> list[MemoryUnit]:
        """Strongest active and pinned memories."""
        return self._select(
            f"WHERE status IN (?, ?) {STRENGTH_ORDER} LIMIT ?",
            (*VISIBLE_STATUSES, max(0, limit)),
        )

    def get_memories_by_scope(self, project_scope: str | None = None, limit: int = 20) -> list[MemoryUnit]:
        """
        User-level memories plus memories scoped to ``project_scope``.

        Without a project only user-level memories are returned.
        """
        project_scope = (project_scope or "").strip() or None
        if project_scope is None:
            return self.get_user_level_memories(limit)
        return self._select(
            f"WHERE status IN (?, ?) AND (project_scope IS NULL OR project_scope = ?) {STRENGTH_ORDER} LIMIT ?",
            (*VISIBLE_STATUSES, project_scope, max(0, limit)),
        )

    def get_user_level_memories(self, limit: int = 20) -> list[MemoryUnit]:
        return self._select(
            f"WHERE status IN (?, ?) AND project_scope IS NULL {STRENGTH_ORDER} LIMIT ?",
            (*VISIBLE_STATUSES, max(0, limit)),
        )

    def get_project_memories(self, project: str, limit: int = 20) -> list[MemoryUnit]:
        return self._select(
            f"WHERE status IN (?, ?) AND project_scope = ? {STRENGTH_ORDER} LIMIT ?",
            (*VISIBLE_STATUSES, project, max(0, limit)),
        )

    def count_by_status(self, status: MemoryStatus | str) -> int:
        with self._lock:
            row = self._conn.execute(
                "SELECT COUNT(*) FROM memories WHERE status = ?", (MemoryStatus(status).value,)
            ).fetchone()
        return row[0]

    def get_stats(self) -> MemoryStats:
        """Per-store counts and average strength of visible memories, plus status counts."""
        stats = MemoryStats()
        with self._lock:
            rows = self._conn.execute(
                "SELECT store, COUNT(*), AVG(strength) FROM memories WHERE status IN (?, ?) GROUP BY store",
                VISIBLE_STATUSES,
            ).fetchall()
            status_rows = self._conn.execute("SELECT status, COUNT(*) FROM memories GROUP BY status").fetchall()
        for store, count, avg in rows:
            store_stats = StoreStats(count=count, avg_strength=avg or 0.0)
            if store == MemoryStoreKind.STM.value:
                stats.stm = store_stats
            else:
                stats.ltm = store_stats
        counts = {status: count for status, count in status_rows}
        stats.pinned = counts.get(MemoryStatus.PINNED.value, 0)
        stats.decayed = counts.get(MemoryStatus.DECAYED.value, 0)
        stats.forgotten = counts.get(MemoryStatus.FORGOTTEN.value, 0)
        return stats

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def promote_to_ltm(self, memory_id: str) -> bool:
        return self._update(memory_id, {"store": MemoryStoreKind.LTM.value})

    def update_memory_status(self, memory_id: str, status: MemoryStatus | str) -> bool:
        return self._update(memory_id, {"status": MemoryStatus(status).value})

    def update_memory_strength(self, memory_id: str, strength: float) -> bool:
        return self._update(memory_id, {"strength": clamp01(strength)})

    def update_memory_fields(self, memory_id: str, **fields: Any) -> None:
        """
        Update several columns at once; scores are clamped, lists stored as JSON.

        Raises:
            ValueError: for columns that cannot change after creation (scope, classification).
            NotFoundError: if no memory has this id.
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update memory fields: {sorted(unknown)}")

        values: dict[str, Any] = {}
        for name, value in fields.items():
            if name in _SCORE_FIELDS:
                value = clamp01(value)
            elif name in ("tags", "source_event_ids"):
                value = json.dumps(list(value))
            elif name == "frequency":
                value = max(0, int(value))
            elif name == "status":
                value = MemoryStatus(value).value
            elif name == "store":
                value = MemoryStoreKind(value).value
            values[name] = value
        if not self._update(memory_id, values):
            raise NotFoundError(f"Memory {memory_id} not found")

    def increment_frequency(self, memory_id: str) -> bool:
        with self._write() as conn:
            cursor = conn.execute(
                "UPDATE memories SET frequency = frequency + 1, updated_at = ? WHERE id = ?",
                (datetime.now().isoformat(), memory_id),
            )
        return cursor.rowcount > 0

    def apply_decay(self, decay_rate: float, now: datetime | None = None) -> int:
        """
        Exponentially decay every active memory: s <- s * exp(-rate * hours).

        Elapsed time is measured from each memory's previous decay, so
        repeated calls compound rather than recompute from creation. The
        watermark never moves backwards: a ``now`` at or before a memory's
        last decay leaves that memory untouched.
        Pinned, decayed and forgotten memories are untouched.

        Returns:
            Number of memories whose strength went down.
        """
        now = now or datetime.now()
        decayed = 0
        with self._write() as conn:
            rows = conn.execute(
                "SELECT id, strength, created_at, last_decay_at FROM memories WHERE status = ?",
                (MemoryStatus.ACTIVE.value,),
            ).fetchall()
            for row in rows:
                since = datetime.fromisoformat(row["last_decay_at"] or row["created_at"])
                if now <= since:
                    continue
                hours = (now - since).total_seconds() / 3600
                strength = row["strength"]
                new_strength = clamp01(strength * math.exp(-decay_rate * hours))
                conn.execute(
                    "UPDATE memories SET strength = ?, last_decay_at = ? WHERE id = ?",
                    (new_strength, now.isoformat(), row["id"]),
                )
                if new_strength < strength:
                    decayed += 1
            previous = conn.execute("SELECT value FROM meta WHERE key = 'last_decay_at'").fetchone()
            if previous is None or datetime.fromisoformat(previous[0]) < now:
                conn.execute(
                    "INSERT OR REPLACE INTO meta (key, value) VALUES ('last_decay_at', ?)", (now.isoformat(),)
                )
        logger.debug(f"Decay applied to {len(rows)} memories ({decayed} weakened)")
        return decayed

    def add_feedback(self, kind: FeedbackKind | str, memory_id: str) -> FeedbackResult:
        """
        Apply explicit user feedback.

        pin -> status pinned; forget -> status forgotten; remember -> moved to
        LTM with boosted importance (and revived if decayed or forgotten).
        """
        kind = FeedbackKind(kind)
        with self._write() as conn:
            row = conn.execute("SELECT importance, status FROM memories WHERE id = ?", (memory_id,)).fetchone()
            if row is None:
                return FeedbackResult(
                    success=False, kind=kind, memory_id=memory_id,
                    reason="Memory not found", error=ErrorKind.NOT_FOUND,
                )

            now = datetime.now().isoformat()
            if kind == FeedbackKind.PIN:
                conn.execute(
                    "UPDATE memories SET status = ?, updated_at = ? WHERE id = ?",
                    (MemoryStatus.PINNED.value, now, memory_id),
                )
            elif kind == FeedbackKind.FORGET:
                conn.execute(
                    "UPDATE memories SET status = ?, updated_at = ? WHERE id = ?",
                    (MemoryStatus.FORGOTTEN.value, now, memory_id),
                )
            else:
                status = row["status"]
                if status in (MemoryStatus.DECAYED.value, MemoryStatus.FORGOTTEN.value):
                    status = MemoryStatus.ACTIVE.value
                conn.execute(
                    "UPDATE memories SET store = ?, importance = ?, status = ?, updated_at = ? WHERE id = ?",
                    (
                        MemoryStoreKind.LTM.value,
                        clamp01(row["importance"] + REMEMBER_IMPORTANCE_BOOST),
                        status,
                        now,
                        memory_id,
                    ),
                )
            conn.execute(
                "INSERT INTO feedback (kind, memory_id, created_at) VALUES (?, ?, ?)",
                (kind.value, memory_id, now),
            )
        logger.info(f"Feedback '{kind.value}' applied to memory {memory_id[:8]}")
        return FeedbackResult(success=True, kind=kind, memory_id=memory_id)

    # ------------------------------------------------------------------
    # Sessions and retrieval log
    # ------------------------------------------------------------------

    def create_session(self, session_id: str, project: str | None = None, now: datetime | None = None) -> None:
        now = now or datetime.now()
        with self._write() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO sessions (id, project, status, started_at) VALUES (?, ?, 'active', ?)",
                (session_id, project, now.isoformat()),
            )

    def end_session(self, session_id: str, status: str = "completed") -> bool:
        with self._write() as conn:
            cursor = conn.execute(
                "UPDATE sessions SET status = ?, ended_at = ? WHERE id = ?",
                (status, datetime.now().isoformat(), session_id),
            )
        return cursor.rowcount > 0

    def get_session(self, session_id: str) -> dict[str, Any] | None:
        with self._lock:
            row = self._conn.execute("SELECT * FROM sessions WHERE id = ?", (session_id,)).fetchone()
        return dict(row) if row else None

    def log_retrieval(self, session_id: str, memory_id: str, kind: str, score: float | None = None) -> None:
        with self._write() as conn:
            conn.execute(
                "INSERT INTO retrievals (session_id, memory_id, kind, score, created_at) VALUES (?, ?, ?, ?, ?)",
                (session_id, memory_id, kind, score, datetime.now().isoformat()),
            )

    def get_retrieval_log(self, session_id: str) -> list[dict[str, Any]]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT session_id, memory_id, kind, score, created_at FROM retrievals WHERE session_id = ? ORDER BY id",
                (session_id,),
            ).fetchall()
        return [dict(row) for row in rows]

    def get_meta(self, key: str) -> str | None:
        with self._lock:
            row = self._conn.execute("SELECT value FROM meta WHERE key = ?", (key,)).fetchone()
        return row[0] if row else None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _select(self, clause: str, params: tuple) -> list[MemoryUnit]:
        with self._lock:
            rows = self._conn.execute(f"SELECT * FROM memories {clause}", params).fetchall()
        return [self._row_to_memory(row) for row in rows]

    def _update(self, memory_id: str, values: dict[str, Any]) -> bool:
        values = {**values, "updated_at": datetime.now().isoformat()}
        assignments = ", ".join(f"{name} = ?" for name in values)
        with self._write() as conn:
            cursor = conn.execute(
                f"UPDATE memories SET {assignments} WHERE id = ?", (*values.values(), memory_id)
            )
        if cursor.rowcount == 0:
            logger.debug(f"Update skipped, memory {memory_id[:8]} not found")
        return cursor.rowcount > 0

    @staticmethod
    def _row_to_memory(row: sqlite3.Row) -> MemoryUnit:
        return MemoryUnit(
            id=row["id"],
            store=MemoryStoreKind(row["store"]),
            classification=Classification(row["classification"]),
            summary=row["summary"],
            status=MemoryStatus(row["status"]),
            strength=row["strength"],
            importance=row["importance"],
            utility=row["utility"],
            novelty=row["novelty"],
            confidence=row["confidence"],
            interference=row["interference"],
            frequency=row["frequency"],
            tags=json.loads(row["tags"] or "[]"),
            project_scope=row["project_scope"],
            source_event_ids=json.loads(row["source_event_ids"] or "[]"),
            session_id=row["session_id"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
            last_decay_at=datetime.fromisoformat(row["last_decay_at"]) if row["last_decay_at"] else None,
        )

"""Types for the selective memory system."""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from psychmem.errors import ErrorKind


class MemoryStoreKind(str, Enum):
    """Short-term vs long-term store."""
    STM = "stm"
    LTM = "ltm"


class Classification(str, Enum):
    """What kind of fact a memory records."""
    BUGFIX = "bugfix"
    LEARNING = "learning"
    DECISION = "decision"
    PREFERENCE = "preference"
    CONSTRAINT = "constraint"
    PROCEDURAL = "procedural"
    SEMANTIC = "semantic"
    EPISODIC = "episodic"


class MemoryStatus(str, Enum):
    """Lifecycle status. Memories are never deleted, only re-labelled."""
    ACTIVE = "active"
    PINNED = "pinned"
    DECAYED = "decayed"
    FORGOTTEN = "forgotten"


class FeedbackKind(str, Enum):
    """Explicit user feedback on a memory."""
    PIN = "pin"
    FORGET = "forget"
    REMEMBER = "remember"


# Facts about the user that apply in every project; never carry a project scope
USER_LEVEL_CLASSIFICATIONS = frozenset({
    Classification.CONSTRAINT,
    Classification.PREFERENCE,
    Classification.LEARNING,
    Classification.PROCEDURAL,
})


def is_user_level_classification(classification: Classification | str) -> bool:
    return Classification(classification) in USER_LEVEL_CLASSIFICATIONS


def clamp01(value: float) -> float:
    """Clamp a score into [0, 1]."""
    return max(0.0, min(1.0, float(value)))


@dataclass
class MemoryUnit:
    """A single persisted memory."""

    id: str
    store: MemoryStoreKind
    classification: Classification
    summary: str
    status: MemoryStatus = MemoryStatus.ACTIVE
    strength: float = 0.5
    importance: float = 0.5
    utility: float = 0.5
    novelty: float = 1.0
    confidence: float = 0.5
    interference: float = 0.0
    frequency: int = 1
    tags: list[str] = field(default_factory=list)
    project_scope: str | None = None
    source_event_ids: list[str] = field(default_factory=list)
    session_id: str | None = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
    last_decay_at: datetime | None = None

    @property
    def is_user_level(self) -> bool:
        return self.project_scope is None

    @property
    def is_pinned(self) -> bool:
        return self.status == MemoryStatus.PINNED

    def age_hours(self, now: datetime | None = None) -> float:
        """Hours since creation."""
        now = now or datetime.now()
        return max(0.0, (now - self.created_at).total_seconds() / 3600)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        data = asdict(self)
        data["store"] = self.store.value
        data["classification"] = self.classification.value
        data["status"] = self.status.value
        for key in ("created_at", "updated_at", "last_decay_at"):
            if data[key] is not None:
                data[key] = data[key].isoformat()
        return data


class ImportanceSignal(BaseModel):
    """Evidence the extractor found for why a candidate matters."""
    type: str = Field(..., min_length=1)
    evidence: str = ""


class MemoryCandidate(BaseModel):
    """
    A fact proposed by the extractor, validated on construction.

    Candidates are consumed once by intake and never stored as-is.
    """
    model_config = ConfigDict(populate_by_name=True)

    classification: Classification
    summary: str
    source_event_ids: list[str] = Field(default_factory=list, alias="sourceEventIds")
    preliminary_importance: float = Field(0.5, ge=0.0, le=1.0, alias="preliminaryImportance")
    confidence: float = Field(0.5, ge=0.0, le=1.0)
    importance_signals: list[ImportanceSignal] = Field(default_factory=list, alias="importanceSignals")


@dataclass(frozen=True)
class MemoryFeatureVector:
    """Inputs to the strength formula."""
    recency: float  # hours since creation
    frequency: int
    importance: float
    utility: float
    novelty: float
    confidence: float
    interference: float


@dataclass
class RetrievalFilters:
    """Optional narrowing applied to the ranking pool."""
    store: MemoryStoreKind | None = None
    classifications: list[Classification] = field(default_factory=list)
    min_strength: float | None = None
    tags: list[str] = field(default_factory=list)
    since: datetime | None = None


@dataclass
class RetrievalQuery:
    """Index retrieval request."""
    text: str | None = None
    filters: RetrievalFilters | None = None
    limit: int | None = None


@dataclass
class RetrievalIndexItem:
    """Lightweight view of a memory: enough to decide whether to fetch details."""
    id: str
    summary: str
    classification: Classification
    store: MemoryStoreKind
    strength: float
    estimated_tokens: int
    relevance_score: float


@dataclass
class RetrievalDetail:
    """Full view of a memory returned on explicit request."""
    memory: MemoryUnit
    relevance_score: float
    retrieval_reason: str = "Requested by ID"

    @property
    def id(self) -> str:
        return self.memory.id

    def to_dict(self) -> dict[str, Any]:
        data = self.memory.to_dict()
        data["relevance_score"] = self.relevance_score
        data["retrieval_reason"] = self.retrieval_reason
        return data


@dataclass
class ConsolidationResult:
    """Outcome of one STM -> LTM consolidation pass."""
    promoted: list[str] = field(default_factory=list)
    decayed: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)


@dataclass
class DecayResult:
    """Outcome of one decay application."""
    memories_decayed: int
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class ReconsolidationResult:
    """Outcome of checking a memory against new evidence."""
    success: bool
    updated: bool = False
    old_confidence: float | None = None
    new_confidence: float | None = None
    conflict: bool = False
    reinforced: bool = False
    reason: str = ""
    error: ErrorKind | None = None


@dataclass
class FeedbackResult:
    """Outcome of pin / forget / remember."""
    success: bool
    kind: FeedbackKind
    memory_id: str
    reason: str = ""
    error: ErrorKind | None = None


@dataclass
class StoreStats:
    count: int = 0
    avg_strength: float = 0.0


@dataclass
class MemoryStats:
    """Counts per store and status."""
    stm: StoreStats = field(default_factory=StoreStats)
    ltm: StoreStats = field(default_factory=StoreStats)
    pinned: int = 0
    decayed: int = 0
    forgotten: int = 0

    @property
    def total(self) -> int:
        return self.stm.count + self.ltm.count

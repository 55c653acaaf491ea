"""Shared fixtures for memory tests."""

from datetime import datetime

import pytest

from psychmem.config.schema import MemoryConfig
from psychmem.memory.selective import SelectiveMemoryEngine
from psychmem.memory.store import MemoryStore
from psychmem.memory.types import MemoryCandidate
from psychmem.retrieval.ranker import RetrievalRanker

T0 = datetime(2026, 1, 1, 12, 0, 0)


@pytest.fixture
def t0():
    """Fixed creation time for decay arithmetic."""
    return T0


@pytest.fixture
def store(tmp_path):
    """Memory store backed by a temporary SQLite file."""
    store = MemoryStore(tmp_path / "memory.db")
    yield store
    store.close()


@pytest.fixture
def config():
    return MemoryConfig()


@pytest.fixture
def engine(store, config):
    return SelectiveMemoryEngine(store, config)


@pytest.fixture
def ranker(store, config):
    return RetrievalRanker(store, config)


@pytest.fixture
def make_candidate():
    """Factory for validated candidates with neutral defaults."""
    def _make(summary, classification="episodic", importance=0.5, confidence=0.5, signals=()):
        return MemoryCandidate(
            classification=classification,
            summary=summary,
            source_event_ids=["evt-1"],
            preliminary_importance=importance,
            confidence=confidence,
            importance_signals=[{"type": t, "evidence": f"saw {t}"} for t in signals],
        )
    return _make

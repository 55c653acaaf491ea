"""Tests for session start context and session end maintenance."""

from datetime import timedelta
from unittest.mock import patch

import pytest

from psychmem.memory.types import MemoryStatus, MemoryStoreKind
from psychmem.retrieval.formatting import format_empty_context
from psychmem.session.lifecycle import SessionLifecycle


@pytest.fixture
def lifecycle(store, engine):
    return SessionLifecycle(store, engine)


def test_start_on_empty_store(lifecycle, store):
    context = lifecycle.start("s1", "alpha")

    assert context == format_empty_context()
    session = store.get_session("s1")
    assert session["status"] == "active"
    assert session["project"] == "alpha"


def test_start_injects_scope_memories(lifecycle, store):
    store.create_memory("ltm", "preference", "prefers tabs over spaces", strength=0.6)
    store.create_memory("ltm", "decision", "alpha uses redis", project_scope="alpha", strength=0.7)
    store.create_memory("ltm", "decision", "beta uses kafka", project_scope="beta", strength=0.9)

    context = lifecycle.start("s1", "alpha")

    assert "Project: alpha" in context
    assert "prefers tabs over spaces" in context
    assert "alpha uses redis" in context
    assert "beta uses kafka" not in context


def test_start_falls_back_to_strongest_memories(lifecycle, store):
    store.create_memory("ltm", "decision", "beta uses kafka", project_scope="beta", strength=0.9)

    context = lifecycle.start("s1", "alpha")

    assert "beta uses kafka" in context


def test_start_truncates_long_summaries(lifecycle, store):
    store.create_memory("ltm", "semantic", "x" * 150)

    context = lifecycle.start("s1")

    assert "x" * 97 + "..." in context
    assert "x" * 98 not in context


def test_end_decays_then_consolidates(lifecycle, store, t0):
    lifecycle.start("s1", "alpha")
    strong = store.create_memory("stm", "episodic", "strong event", strength=0.75, now=t0)
    weak = store.create_memory("stm", "episodic", "weak event", strength=0.05, now=t0)

    result = lifecycle.end("s1", now=t0 + timedelta(hours=1))

    # 0.75 * e^-0.01 stays above the promotion threshold
    assert result.promoted == 1
    assert result.decayed == 2
    assert result.cleaned == 1
    assert store.get_memory(strong.id).store == MemoryStoreKind.LTM
    assert store.get_memory(weak.id).status == MemoryStatus.DECAYED
    assert store.get_session("s1")["status"] == "completed"
    assert store.get_session("s1")["ended_at"] is not None


def test_end_abandoned(lifecycle, store):
    lifecycle.start("s1")
    lifecycle.end("s1", reason="abandoned")
    assert store.get_session("s1")["status"] == "abandoned"


def test_end_failure_rolls_back_everything(lifecycle, store, t0):
    lifecycle.start("s1")
    memory = store.create_memory("stm", "episodic", "untouched", strength=0.75, now=t0)

    with patch.object(lifecycle.engine, "run_consolidation", side_effect=RuntimeError("boom")):
        with pytest.raises(RuntimeError):
            lifecycle.end("s1", now=t0 + timedelta(hours=5))

    assert store.get_session("s1")["status"] == "active"
    assert store.get_memory(memory.id).strength == pytest.approx(0.75)
    assert not store.in_transaction

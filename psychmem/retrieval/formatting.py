"""Render retrieved memories as markdown for context injection."""

import re

from psychmem.memory.types import (
    Classification,
    MemoryStoreKind,
    MemoryUnit,
    RetrievalIndexItem,
    is_user_level_classification,
)

BAR_CELLS = 5

CLASSIFICATION_NAMES = {
    Classification.BUGFIX: "Bugs & Fixes",
    Classification.LEARNING: "Learnings",
    Classification.DECISION: "Decisions",
    Classification.PREFERENCE: "Preferences",
    Classification.CONSTRAINT: "Constraints",
    Classification.PROCEDURAL: "Procedures",
    Classification.SEMANTIC: "Knowledge",
    Classification.EPISODIC: "Events",
}

CLASSIFICATION_EMOJI = {
    Classification.BUGFIX: "🔴",
    Classification.LEARNING: "🎓",
    Classification.DECISION: "🤔",
    Classification.PREFERENCE: "⭐",
    Classification.CONSTRAINT: "🚫",
    Classification.PROCEDURAL: "📋",
    Classification.SEMANTIC: "💡",
    Classification.EPISODIC: "📅",
}


def format_strength_bar(strength: float) -> str:
    """Strength as a five-cell bar, e.g. ``[███░░]``."""
    filled = max(0, min(BAR_CELLS, int(strength * BAR_CELLS + 0.5)))
    return "[" + "█" * filled + "░" * (BAR_CELLS - filled) + "]"


def store_label(store: MemoryStoreKind) -> str:
    return "[LTM]" if store == MemoryStoreKind.LTM else "[STM]"


def format_index_for_context(items: list[RetrievalIndexItem]) -> str:
    """Compact index listing; details are fetched later by id."""
    if not items:
        return "No relevant memories found."

    lines = ["Available memories:"]
    for item in items:
        lines.append(f"{format_strength_bar(item.strength)} {store_label(item.store)} {item.summary}")
        lines.append(f"    ID: {item.id[:8]} | {item.classification.value} | ~{item.estimated_tokens} tokens")
    lines.append("")
    lines.append("Use memory ID to request full details.")
    return "\n".join(lines)


def format_memories_with_scope(memories: list[MemoryUnit], current_project: str | None = None) -> str:
    """Group memories into user-level and project sections."""
    if not memories:
        return "No relevant memories found."

    user_level = [m for m in memories if is_user_level_classification(m.classification)]
    project_level = [m for m in memories if not is_user_level_classification(m.classification)]

    lines: list[str] = []
    if user_level:
        lines += ["## User Preferences & Constraints", ""]
        lines += [_memory_line(m) for m in user_level]
        lines.append("")
    if project_level:
        project_name = re.split(r"[/\\]", current_project.rstrip("/\\"))[-1] if current_project else "Current Project"
        lines += [f"## {project_name} Context", ""]
        lines += [_memory_line(m) for m in project_level]
        lines.append("")
    return "\n".join(lines)


def format_session_context(items: list[RetrievalIndexItem], project: str | None = None) -> str:
    """Session-start context: index grouped by classification."""
    if not items:
        return format_empty_context()

    sections = [
        "# Memory Context",
        f"Project: {project or 'unknown'}",
        f"Retrieved {len(items)} relevant memories.\n",
    ]
    for classification in Classification:
        group = [item for item in items if item.classification == classification]
        if not group:
            continue
        sections.append(f"## {CLASSIFICATION_EMOJI[classification]} {CLASSIFICATION_NAMES[classification]}")
        for item in group:
            sections.append(f"- {format_strength_bar(item.strength)} {store_label(item.store)} {item.summary}")
            sections.append(f"  ID: {item.id[:8]}... | ~{item.estimated_tokens} tokens")
        sections.append("")

    sections.append("---")
    sections.append("*Use memory IDs to request full details if needed.*")
    return "\n".join(sections)


def format_empty_context() -> str:
    return "\n".join([
        "# Memory Context",
        "No relevant memories found for this session.",
        "",
        "*Memories will be captured as you work and available in future sessions.*",
    ])


def _memory_line(memory: MemoryUnit) -> str:
    return (
        f"{format_strength_bar(memory.strength)} {store_label(memory.store)} "
        f"[{memory.classification.value}] {memory.summary}"
    )

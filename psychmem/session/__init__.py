"""Session lifecycle module."""

from psychmem.session.lifecycle import SessionEndResult, SessionLifecycle

__all__ = ["SessionEndResult", "SessionLifecycle"]

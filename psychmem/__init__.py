"""
psychmem - selective memory for AI coding-agent sessions
"""

from __future__ import annotations
from pathlib import Path


def _get_version() -> str:
    """Read version from pyproject.toml."""
    pyproject_path = Path(__file__).parent.parent / "pyproject.toml"
    if pyproject_path.exists():
        import tomllib

        data = tomllib.loads(pyproject_path.read_text())
        return data["project"]["version"]
    return "0.0.0-unknown"


__version__ = _get_version()
__logo__ = "🧠"

from psychmem.core import PsychMem, create_psychmem  # noqa: E402

__all__ = ["PsychMem", "create_psychmem", "__version__"]

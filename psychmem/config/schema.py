"""Configuration schema using Pydantic."""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from psychmem.memory.types import Classification


class ScoringWeights(BaseModel):
    """Per-feature coefficients for the strength formula."""
    model_config = ConfigDict(frozen=True)

    recency: float = Field(default=0.20, ge=-1.0, le=1.0)
    frequency: float = Field(default=0.15, ge=-1.0, le=1.0)
    importance: float = Field(default=0.25, ge=-1.0, le=1.0)
    utility: float = Field(default=0.20, ge=-1.0, le=1.0)
    novelty: float = Field(default=0.10, ge=-1.0, le=1.0)
    confidence: float = Field(default=0.10, ge=-1.0, le=1.0)
    interference: float = Field(default=-0.10, ge=-1.0, le=1.0)  # Penalty, conventionally negative


class MemoryConfig(BaseModel):
    """Selective memory configuration."""
    model_config = ConfigDict(frozen=True)

    scoring_weights: ScoringWeights = Field(default_factory=ScoringWeights)
    auto_promote_to_ltm: frozenset[Classification] = Field(
        default=frozenset({Classification.BUGFIX, Classification.LEARNING, Classification.DECISION}),
        description="Classifications stored directly in LTM",
    )
    stm_to_ltm_strength_threshold: float = Field(default=0.7, ge=0.0, le=1.0, description="Strength needed for STM -> LTM")
    stm_to_ltm_frequency_threshold: int = Field(default=3, ge=1, description="Repetitions needed for STM -> LTM")
    default_retrieval_limit: int = Field(default=20, ge=1, le=200, description="Index size when no limit is given")
    decay_rate: float = Field(default=0.01, ge=0.0, le=10.0, description="Decay constant lambda, per hour")
    db_path: str | None = Field(default=None, description="SQLite file; defaults to ~/.psychmem/memory.db")

    @field_validator("auto_promote_to_ltm", mode="before")
    @classmethod
    def _coerce_classifications(cls, value):
        # JSON config files deliver a list of strings
        if isinstance(value, (list, tuple, set)):
            return frozenset(Classification(v) for v in value)
        return value


class Config(BaseSettings):
    """Root configuration for psychmem."""
    model_config = SettingsConfigDict(
        env_prefix="PSYCHMEM_",
        env_nested_delimiter="__",
        frozen=True,
        extra="ignore",
    )

    memory: MemoryConfig = Field(default_factory=MemoryConfig)
    log_level: str = "INFO"

    @property
    def db_file(self) -> Path | None:
        """Get expanded database path, if one is configured."""
        if self.memory.db_path:
            return Path(self.memory.db_path).expanduser()
        return None

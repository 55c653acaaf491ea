"""Configuration module for psychmem."""

from psychmem.config.loader import coerce_memory_config, get_config_path, get_data_dir, load_config
from psychmem.config.schema import Config, MemoryConfig, ScoringWeights

__all__ = [
    "Config",
    "MemoryConfig",
    "ScoringWeights",
    "coerce_memory_config",
    "get_config_path",
    "get_data_dir",
    "load_config",
]

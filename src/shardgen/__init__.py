"""Staged deterministic world generation for shards."""

from .config import ShardSeedInput, WorldGenConfig, WorldProfile, load_config
from .context import WorldGenContext
from .exceptions import ConfigurationError, WorldGenError
from .pipeline import WorldGenResult, generate_world

__all__ = [
    "ConfigurationError",
    "ShardSeedInput",
    "WorldGenConfig",
    "WorldGenContext",
    "WorldGenError",
    "WorldGenResult",
    "WorldProfile",
    "generate_world",
    "load_config",
]

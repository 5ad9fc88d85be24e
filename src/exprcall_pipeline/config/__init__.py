"""Configuration management for the call engine."""

from .loader import load_config, load_config_with_overrides
from .schema import (
    DiffExpressionSettings,
    EngineConfig,
    HomologySettings,
    PropagationSettings,
    ReleaseVersions,
    TieBreakPolicy,
)

__all__ = [
    "load_config",
    "load_config_with_overrides",
    "DiffExpressionSettings",
    "EngineConfig",
    "HomologySettings",
    "PropagationSettings",
    "ReleaseVersions",
    "TieBreakPolicy",
]

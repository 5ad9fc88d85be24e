"""Pydantic models for engine configuration."""

import hashlib
import json
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class ReleaseVersions(BaseModel):
    """Version information for the loaded snapshot."""

    release: str = Field(
        ...,
        description="Release identifier of the data snapshot",
    )
    anatomy_ontology_version: str = Field(
        default="unknown",
        description="Version of the anatomy ontology (e.g. Uberon release)",
    )
    stage_ontology_version: str = Field(
        default="unknown",
        description="Version of the developmental stage ontology",
    )
    oma_version: str = Field(
        default="unknown",
        description="Version of the OMA orthology groups",
    )


class TieBreakPolicy(str, Enum):
    """How differential expression votes with (near) equal weight are resolved."""

    BEST_P_VALUE = "best_p_value"
    PREFER_NOT_DIFF = "prefer_not_diff"
    RAISE = "raise"


class PropagationSettings(BaseModel):
    """Presence/absence call propagation."""

    propagate_calls: bool = Field(
        default=True,
        description="Propagate calls through anatomy and stage ontologies",
    )


class DiffExpressionSettings(BaseModel):
    """Differential expression p-value weighted voting."""

    tie_policy: TieBreakPolicy = Field(
        default=TieBreakPolicy.BEST_P_VALUE,
        description="Resolution of tied votes",
    )
    tie_tolerance: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        description="Relative weight difference under which two calls are tied",
    )
    p_value_floor: float = Field(
        default=1e-300,
        gt=0.0,
        le=1.0,
        description="Lower bound applied to p-values before computing vote weights",
    )
    use_absence_calls: bool = Field(
        default=True,
        description="Use presence/absence ABSENT calls as 'never expressed' evidence",
    )


class HomologySettings(BaseModel):
    """Cross-species comparability."""

    only_trusted: bool = Field(
        default=False,
        description="Keep only HIGH and MEDIUM confidence similarity annotations",
    )
    ancestors_max_steps: Optional[int] = Field(
        default=None,
        ge=1,
        description="Parent hops considered when checking annotation taxa consistency",
    )
    strict_taxon_consistency: bool = Field(
        default=False,
        description="Raise instead of warning when annotation taxa are not a lineage",
    )


class EngineConfig(BaseModel):
    """Main engine configuration."""

    snapshot_dir: Path = Field(
        ...,
        description="Directory holding the release snapshot TSV files",
    )
    output_dir: Path = Field(
        ...,
        description="Directory for exported call files",
    )
    duckdb_path: Path = Field(
        ...,
        description="Path to DuckDB database file",
    )
    release: ReleaseVersions = Field(
        ...,
        description="Snapshot release information",
    )
    propagation: PropagationSettings = Field(
        default_factory=PropagationSettings,
        description="Presence/absence propagation settings",
    )
    diff_expression: DiffExpressionSettings = Field(
        default_factory=DiffExpressionSettings,
        description="Differential expression voting settings",
    )
    homology: HomologySettings = Field(
        default_factory=HomologySettings,
        description="Cross-species comparability settings",
    )

    @field_validator("output_dir")
    @classmethod
    def create_directory(cls, v: Path) -> Path:
        """Create directory if it doesn't exist."""
        v.mkdir(parents=True, exist_ok=True)
        return v

    def config_hash(self) -> str:
        """
        Compute SHA-256 hash of the configuration.

        Deterministic over all config values, recorded in provenance so
        outputs can be traced back to the settings that produced them.
        """
        config_dict = self.model_dump(mode="python")
        config_json = json.dumps(
            config_dict,
            sort_keys=True,
            default=str,
        )
        return hashlib.sha256(config_json.encode()).hexdigest()

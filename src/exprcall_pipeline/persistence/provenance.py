"""Provenance tracking for reproducible call exports."""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


class ProvenanceTracker:
    """
    Tracks provenance metadata for engine runs.

    Records engine version, snapshot release versions, config hash and
    processing steps, so every exported file can be traced back to the
    release and settings that produced it.
    """

    def __init__(self, engine_version: str, config: "EngineConfig"):
        self.engine_version = engine_version
        self.config_hash = config.config_hash()
        self.release_versions = config.release.model_dump()
        self.processing_steps = []
        self.created_at = datetime.now(timezone.utc)

    def record_step(self, step_name: str, details: Optional[dict] = None) -> None:
        """
        Record a processing step.

        Args:
            step_name: Name of the processing step
            details: Optional dictionary of additional details
        """
        step = {
            "step_name": step_name,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if details:
            step["details"] = details
        self.processing_steps.append(step)

    def create_metadata(self) -> dict:
        """Create full provenance metadata dictionary."""
        return {
            "engine_version": self.engine_version,
            "release_versions": self.release_versions,
            "config_hash": self.config_hash,
            "created_at": self.created_at.isoformat(),
            "processing_steps": self.processing_steps,
        }

    def save_sidecar(self, output_path: Path) -> Path:
        """
        Save provenance metadata as a JSON sidecar file.

        Args:
            output_path: Path to the main output file.
                         Sidecar will be saved as {path}.provenance.json

        Returns:
            Path of the sidecar file
        """
        sidecar_path = output_path.with_suffix(".provenance.json")
        sidecar_path.parent.mkdir(parents=True, exist_ok=True)

        with open(sidecar_path, "w") as f:
            json.dump(self.create_metadata(), f, indent=2, default=str)
        return sidecar_path

    def save_to_store(self, store: "ResultStore") -> None:
        """Append provenance metadata to the _provenance table of a ResultStore."""
        metadata = self.create_metadata()

        store.conn.execute("""
            CREATE TABLE IF NOT EXISTS _provenance (
                version VARCHAR,
                release VARCHAR,
                config_hash VARCHAR,
                created_at TIMESTAMP,
                steps_json VARCHAR
            )
        """)

        store.conn.execute("""
            INSERT INTO _provenance (version, release, config_hash, created_at, steps_json)
            VALUES (?, ?, ?, ?, ?)
        """, [
            metadata["engine_version"],
            metadata["release_versions"]["release"],
            metadata["config_hash"],
            metadata["created_at"],
            json.dumps(metadata["processing_steps"]),
        ])

    @classmethod
    def from_config(
        cls,
        config: "EngineConfig",
        version: Optional[str] = None
    ) -> "ProvenanceTracker":
        """
        Create ProvenanceTracker from an EngineConfig.

        Args:
            config: EngineConfig instance
            version: Engine version string. If None, uses exprcall_pipeline.__version__
        """
        if version is None:
            from exprcall_pipeline import __version__
            version = __version__

        return cls(version, config)

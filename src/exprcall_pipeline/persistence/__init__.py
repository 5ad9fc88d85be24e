"""Persistence layer for computed call tables and provenance tracking."""

from exprcall_pipeline.persistence.duckdb_store import ResultStore
from exprcall_pipeline.persistence.provenance import ProvenanceTracker

__all__ = ["ResultStore", "ProvenanceTracker"]
